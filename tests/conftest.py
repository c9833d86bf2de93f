from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

import wasm_release.secrets as secrets

WASM_PACK_MANIFEST: Dict[str, Any] = {
    "name": "@swc/wasm",
    "collaborators": ["강동윤 <kdy1997.dev@gmail.com>"],
    "description": "wasm module for swc",
    "version": "1.2.3",
    "license": "Apache-2.0",
    "repository": {"type": "git", "url": "https://github.com/swc-project/swc.git"},
    "files": ["wasm_bg.wasm", "wasm.js", "wasm.d.ts"],
    "module": "wasm.js",
    "types": "wasm.d.ts",
    "sideEffects": False,
}


@pytest.fixture(autouse=True)
def isolated_secrets(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(secrets, "_resolvers", [])
    secrets.register_resolver(secrets.EnvResolver(), priority=0, name="env", source="env")
    monkeypatch.delenv("NPM_TOKEN", raising=False)
    return secrets


@pytest.fixture()
def artifact_dir(tmp_path: Path) -> Path:
    pkg = tmp_path / "wasm" / "pkg"
    pkg.mkdir(parents=True)
    (pkg / "package.json").write_text(json.dumps(WASM_PACK_MANIFEST, indent=2) + "\n", encoding="utf-8")
    (pkg / "wasm.js").write_text("export * from './wasm_bg.js';\n", encoding="utf-8")
    (pkg / "wasm_bg.js").write_text("export function transformSync() {}\n", encoding="utf-8")
    (pkg / "wasm_bg.wasm").write_bytes(b"\x00asm\x01\x00\x00\x00")
    (pkg / "wasm.d.ts").write_text("export function transformSync(): void;\n", encoding="utf-8")
    (pkg / "wasm_bg.wasm.d.ts").write_text("export const memory: WebAssembly.Memory;\n", encoding="utf-8")
    (pkg / "README.md").write_text("# @swc/wasm\n", encoding="utf-8")
    (pkg / ".gitignore").write_text("*\n", encoding="utf-8")
    return pkg


class FakeResponse:
    def __init__(self, status_code: int = 201, text: str = "", reason: str = "Created") -> None:
        self.status_code = status_code
        self.text = text
        self.reason = reason
        self.headers: Dict[str, str] = {}


class FakeSession:
    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response or FakeResponse()
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def put(self, url: str, headers: Dict[str, str], json: Dict[str, Any], timeout: float) -> FakeResponse:
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()
