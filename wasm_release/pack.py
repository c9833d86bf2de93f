"""Build npm-style tarballs from an artifact directory."""

from __future__ import annotations

import base64
import gzip
import hashlib
import io
import logging
import re
import tarfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .errors import ManifestValidationError
from .manifest import Manifest

logger = logging.getLogger(__name__)

# 1985-10-26T08:15:00Z, the fixed mtime npm stamps on tarball entries.
FIXED_MTIME = 499162500

_ALWAYS_INCLUDED = re.compile(r"^(readme|license|licence)(\..*)?$", re.IGNORECASE)
_GLOB_CHARS = set("*?[")


@dataclass(slots=True)
class PackResult:
    filename: str
    data: bytes = field(repr=False)
    files: List[str] = field(default_factory=list)
    shasum: str = ""
    integrity: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    def write_to(self, directory: Path) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / self.filename
        target.write_bytes(self.data)
        return target


def tarball_name(name: str, version: str) -> str:
    """``@swc/wasm-web`` at ``1.2.3`` becomes ``swc-wasm-web-1.2.3.tgz``."""

    base = name[1:] if name.startswith("@") else name
    return f"{base.replace('/', '-')}-{version}.tgz"


def collect_files(artifact_dir: Path, manifest: Manifest) -> List[str]:
    """Return the sorted relative POSIX paths npm would pack."""

    selected: set[str] = {"package.json"}

    for child in artifact_dir.iterdir():
        if child.is_file() and _ALWAYS_INCLUDED.match(child.name):
            selected.add(child.name)

    main = manifest.data.get("main")
    if isinstance(main, str) and (artifact_dir / main).is_file():
        selected.add(_relative(artifact_dir, artifact_dir / main, main))

    entries = manifest.files
    if entries is None:
        selected.update(_walk(artifact_dir, artifact_dir))
        return sorted(selected)

    missing = []
    for entry in entries:
        matches = _expand(artifact_dir, entry)
        if not matches:
            missing.append(entry)
        selected.update(matches)
    if missing:
        raise ManifestValidationError(
            f"Files listed in manifest are missing from {artifact_dir}: {', '.join(missing)}",
            stage="pack",
            expected=missing,
            actual=None,
        )
    return sorted(selected)


def pack_directory(artifact_dir: Path, manifest: Manifest) -> PackResult:
    name = manifest.name
    version = manifest.version
    if not name or not version:
        raise ManifestValidationError(
            "Manifest needs both 'name' and 'version' to be packed",
            stage="pack",
            expected="name and version",
            actual={"name": name, "version": version},
        )

    files = collect_files(artifact_dir, manifest)
    buffer = io.BytesIO()
    # mtime=0 keeps the gzip header stable across runs.
    with gzip.GzipFile(fileobj=buffer, mode="wb", mtime=0) as gz:
        with tarfile.open(fileobj=gz, mode="w") as tar:
            for relative in files:
                if relative == "package.json":
                    payload = manifest.to_json().encode("utf-8")
                else:
                    payload = (artifact_dir / relative).read_bytes()
                _add_bytes(tar, f"package/{relative}", payload)

    data = buffer.getvalue()
    result = PackResult(
        filename=tarball_name(name, version),
        data=data,
        files=files,
        shasum=hashlib.sha1(data).hexdigest(),
        integrity="sha512-" + base64.b64encode(hashlib.sha512(data).digest()).decode("ascii"),
    )
    logger.info("Packed %s (%d files, %d bytes)", result.filename, len(files), result.size)
    return result


def _add_bytes(tar: tarfile.TarFile, arcname: str, payload: bytes) -> None:
    info = tarfile.TarInfo(name=arcname)
    info.size = len(payload)
    info.mtime = FIXED_MTIME
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(payload))


def _expand(artifact_dir: Path, entry: str) -> List[str]:
    cleaned = entry
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    if Path(cleaned).is_absolute():
        raise _outside(artifact_dir, entry)
    if any(char in _GLOB_CHARS for char in cleaned):
        found: List[str] = []
        for match in artifact_dir.glob(cleaned):
            if match.is_dir():
                found.extend(_walk(artifact_dir, match))
            elif match.is_file():
                found.append(_relative(artifact_dir, match, entry))
        return found
    candidate = artifact_dir / cleaned
    _relative(artifact_dir, candidate, entry)  # raises for entries outside artifact_dir
    if candidate.is_dir():
        return _walk(artifact_dir, candidate)
    if candidate.is_file():
        return [_relative(artifact_dir, candidate, entry)]
    return []


def _walk(root: Path, directory: Path) -> List[str]:
    found = []
    for path in directory.rglob("*"):
        if not path.is_file():
            continue
        relative = _relative(root, path, str(path))
        if _is_ignored(relative):
            continue
        found.append(relative)
    return found


def _is_ignored(relative: str) -> bool:
    parts = relative.split("/")
    if "node_modules" in parts or ".git" in parts:
        return True
    return parts[-1].endswith(".tmp") or parts[-1] == ".npmrc"


def _relative(root: Path, path: Path, entry: str) -> str:
    """POSIX path of ``path`` under ``root``; symlinks and '..' may not leave ``root``."""

    base = root.resolve()
    resolved = path.resolve()
    if not resolved.is_relative_to(base):
        raise _outside(root, entry)
    return resolved.relative_to(base).as_posix()


def _outside(root: Path, entry: str) -> ManifestValidationError:
    return ManifestValidationError(
        f"Manifest entry '{entry}' points outside {root}",
        stage="pack",
        expected=f"a path inside {root}",
        actual=entry,
    )


__all__ = ["FIXED_MTIME", "PackResult", "collect_files", "pack_directory", "tarball_name"]
