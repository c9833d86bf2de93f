from __future__ import annotations

from pathlib import Path

import pytest

from wasm_release.config import check_tag, load_config, version_from_tag
from wasm_release.errors import ConfigError, ManifestValidationError
from wasm_release.transforms import AddFilesStep, RenameStep

CONFIG_YAML = """\
artifact_dir: wasm/pkg
registry_url: https://npm.example.com/
dist_tag: next
steps:
  - kind: rename
    expected: "@swc/wasm"
    name: "@swc/wasm-web"
  - kind: add-files
    files: [wasm_bg.js, wasm_bg.wasm.d.ts]
"""


def test_load_config_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "wasm-release.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")

    config = load_config(path)

    assert config.artifact_dir == tmp_path / "wasm" / "pkg"
    assert config.manifest_path == tmp_path / "wasm" / "pkg" / "package.json"
    assert config.registry_url == "https://npm.example.com/"
    steps = config.build_steps()
    assert isinstance(steps[0], RenameStep)
    assert isinstance(steps[1], AddFilesStep)
    target = config.target()
    assert target.dist_tag == "next"
    assert target.access == "public"


def test_overrides_win_and_steps_append(tmp_path: Path) -> None:
    path = tmp_path / "wasm-release.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")

    config = load_config(
        path,
        {
            "dist_tag": "latest",
            "token_env": None,
            "steps": [{"kind": "set-field", "field": "sideEffects", "value": False}],
        },
    )

    assert config.dist_tag == "latest"
    assert config.token_env == "NPM_TOKEN"
    assert [step.kind for step in config.steps] == ["rename", "add-files", "set-field"]


@pytest.mark.parametrize(
    "overrides",
    [
        {},
        {"artifact_dir": "pkg", "access": "private"},
        {"artifact_dir": "pkg", "unknown": 1},
        {"artifact_dir": "pkg", "steps": [{"kind": "sed"}]},
        {"artifact_dir": "pkg", "steps": [{"files": ["a"]}]},
        {"artifact_dir": "pkg", "steps": ["rename"]},
    ],
)
def test_invalid_config(overrides: dict) -> None:
    with pytest.raises(ConfigError):
        load_config(overrides=overrides)


def test_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.parametrize("tag", ["v1.2.3", "refs/tags/v1.2.3", "v1.2.3-nightly-20210101"])
def test_check_tag_accepts(tag: str) -> None:
    assert check_tag(tag, "v*").startswith("v1.2.3")


@pytest.mark.parametrize("tag", [None, "", "1.2.3", "main"])
def test_check_tag_rejects(tag) -> None:
    with pytest.raises(ManifestValidationError) as excinfo:
        check_tag(tag, "v*")
    assert excinfo.value.stage == "trigger"


def test_version_from_tag() -> None:
    assert version_from_tag("v1.2.3") == "1.2.3"
    assert version_from_tag("refs/tags/v0.1.0-beta.1") == "0.1.0-beta.1"
