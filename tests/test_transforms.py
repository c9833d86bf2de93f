from __future__ import annotations

import pytest

from wasm_release.errors import ConfigError, ManifestValidationError
from wasm_release.manifest import Manifest
from wasm_release.transforms import (
    AddFilesStep,
    RenameStep,
    SetFieldStep,
    apply_steps,
    apply_transform,
    build_step,
)


def _manifest(**data: object) -> Manifest:
    return Manifest(data=dict(data))


def test_rename_changes_only_name() -> None:
    manifest = _manifest(name="@scope/pkg", version="1.0.0", files=["a.js"], license="MIT")

    renamed = apply_transform(manifest, RenameStep("@scope/pkg", "@scope/pkg-web"))

    assert renamed.data == {"name": "@scope/pkg-web", "version": "1.0.0", "files": ["a.js"], "license": "MIT"}
    assert manifest.name == "@scope/pkg"


def test_rename_twice_fails_on_second_application() -> None:
    step = RenameStep("@scope/pkg", "@scope/pkg-web")
    once = step.apply(_manifest(name="@scope/pkg"))

    with pytest.raises(ManifestValidationError) as excinfo:
        step.apply(once)

    assert excinfo.value.expected == "@scope/pkg"
    assert excinfo.value.actual == "@scope/pkg-web"
    assert excinfo.value.stage == "transform"


def test_rename_requires_exact_match() -> None:
    with pytest.raises(ManifestValidationError):
        RenameStep("@swc/wasm", "@swc/wasm-web").apply(_manifest(name="@swc/wasm-node"))


def test_rename_missing_name() -> None:
    with pytest.raises(ManifestValidationError) as excinfo:
        RenameStep("@swc/wasm", "@swc/wasm-web").apply(_manifest(files=[]))
    assert excinfo.value.actual is None


@pytest.mark.parametrize(
    "files, extra",
    [
        ([], ["a.js"]),
        (["a.js"], ["a.js"]),
        (["a.js", "b.js"], ["c.js", "a.js", "c.js"]),
        (["x.wasm"], ["wasm_bg.js", "wasm_bg.wasm.d.ts"]),
    ],
)
def test_add_files_is_idempotent(files: list, extra: list) -> None:
    step = AddFilesStep(extra)
    once = step.apply(_manifest(name="p", files=list(files)))
    twice = step.apply(once)

    assert twice.data == once.data
    assert len(once.files) == len(set(once.files))
    assert once.files[: len(files)] == files


def test_add_files_requires_files_field() -> None:
    with pytest.raises(ManifestValidationError):
        AddFilesStep(["a.js"]).apply(_manifest(name="p"))


def test_add_files_rejects_non_array() -> None:
    with pytest.raises(ManifestValidationError) as excinfo:
        AddFilesStep(["a.js"]).apply(_manifest(name="p", files="a.js"))
    assert excinfo.value.actual == "str"


def test_swc_wasm_web_scenario() -> None:
    manifest = _manifest(name="@swc/wasm", files=["wasm.js"])

    result = apply_steps(
        manifest,
        [
            RenameStep("@swc/wasm", "@swc/wasm-web"),
            AddFilesStep(["wasm_bg.js", "wasm_bg.wasm.d.ts"]),
        ],
    )

    assert result.data == {
        "name": "@swc/wasm-web",
        "files": ["wasm.js", "wasm_bg.js", "wasm_bg.wasm.d.ts"],
    }


def test_set_field_is_idempotent() -> None:
    step = SetFieldStep("sideEffects", False)
    once = step.apply(_manifest(name="p"))
    assert step.apply(once).data == once.data == {"name": "p", "sideEffects": False}


def test_set_field_refuses_name() -> None:
    with pytest.raises(ConfigError):
        SetFieldStep("name", "other")


def test_build_step_kinds() -> None:
    assert isinstance(build_step("rename", {"expected": "a", "name": "b"}), RenameStep)
    assert isinstance(build_step("add-files", {"files": ["x"]}), AddFilesStep)
    assert isinstance(build_step("set-field", {"field": "module", "value": "wasm.js"}), SetFieldStep)


@pytest.mark.parametrize(
    "kind, options",
    [
        ("rename", {"expected": "a"}),
        ("add-files", {"files": []}),
        ("set-field", {"field": "x"}),
        ("sed", {}),
    ],
)
def test_build_step_rejects_bad_specs(kind: str, options: dict) -> None:
    with pytest.raises(ConfigError):
        build_step(kind, options)
