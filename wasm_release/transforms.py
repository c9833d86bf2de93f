"""Manifest transform steps applied before publishing."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Optional, Sequence

from .errors import ConfigError, ManifestValidationError
from .manifest import Manifest


class TransformStep(ABC):
    name: str

    @abstractmethod
    def apply(self, manifest: Manifest) -> Manifest:
        """Return a new manifest. The input is left untouched."""

    def describe(self) -> dict[str, object]:
        return {"kind": self.name}


class RenameStep(TransformStep):
    """Swap ``name`` only when it currently equals ``expected``."""

    name = "rename"

    def __init__(self, expected: str, new_name: str) -> None:
        if not expected or not new_name:
            raise ConfigError("rename step requires non-empty expected and name")
        self.expected = expected
        self.new_name = new_name

    def apply(self, manifest: Manifest) -> Manifest:
        if "name" not in manifest.data:
            raise ManifestValidationError(
                "Manifest has no 'name' field to rename",
                expected=self.expected,
                actual=None,
            )
        current = manifest.data["name"]
        if current != self.expected:
            raise ManifestValidationError(
                f"Refusing to rename package: expected name '{self.expected}', found '{current}'",
                expected=self.expected,
                actual=current,
            )
        updated = manifest.copy()
        updated.data["name"] = self.new_name
        return updated

    def describe(self) -> dict[str, object]:
        return {"kind": self.name, "expected": self.expected, "name": self.new_name}


class AddFilesStep(TransformStep):
    """Append entries to ``files`` that are not already listed."""

    name = "add-files"

    def __init__(self, files: Sequence[str]) -> None:
        if isinstance(files, str):
            files = [files]
        self.files = list(dict.fromkeys(files))

    def apply(self, manifest: Manifest) -> Manifest:
        current = manifest.data.get("files")
        if current is None:
            raise ManifestValidationError(
                "Manifest has no 'files' array to augment",
                expected="files: array of string",
                actual=None,
            )
        if not isinstance(current, list):
            raise ManifestValidationError(
                "Manifest 'files' must be an array",
                expected="array",
                actual=type(current).__name__,
            )
        updated = manifest.copy()
        files = updated.data["files"]
        for entry in self.files:
            if entry not in files:
                files.append(entry)
        return updated

    def describe(self) -> dict[str, object]:
        return {"kind": self.name, "files": list(self.files)}


class SetFieldStep(TransformStep):
    """Set a top-level field to a fixed value."""

    name = "set-field"
    protected_fields = frozenset({"name"})

    def __init__(self, field: str, value: Any) -> None:
        if not field:
            raise ConfigError("set-field step requires a field name")
        if field in self.protected_fields:
            raise ConfigError(f"set-field cannot modify '{field}'; use the rename step")
        self.field = field
        self.value = value

    def apply(self, manifest: Manifest) -> Manifest:
        updated = manifest.copy()
        updated.data[self.field] = self.value
        return updated

    def describe(self) -> dict[str, object]:
        return {"kind": self.name, "field": self.field, "value": self.value}


def build_step(kind: str, options: Optional[Mapping[str, Any]] = None) -> TransformStep:
    opts = dict(options or {})
    lowered = (kind or "").lower()
    if lowered == "rename":
        expected = opts.get("expected")
        new_name = opts.get("name")
        if not expected or not new_name:
            raise ConfigError("rename step requires 'expected' and 'name'")
        return RenameStep(str(expected), str(new_name))
    if lowered in ("add-files", "files"):
        files = opts.get("files")
        if not files:
            raise ConfigError("add-files step requires a non-empty 'files' list")
        return AddFilesStep([str(entry) for entry in files])
    if lowered in ("set-field", "set"):
        if "field" not in opts or "value" not in opts:
            raise ConfigError("set-field step requires 'field' and 'value'")
        return SetFieldStep(str(opts["field"]), opts["value"])
    raise ConfigError(f"Unknown transform step '{kind}'")


def apply_transform(manifest: Manifest, step: TransformStep) -> Manifest:
    return step.apply(manifest)


def apply_steps(manifest: Manifest, steps: Iterable[TransformStep]) -> Manifest:
    for step in steps:
        manifest = step.apply(manifest)
    return manifest


__all__ = [
    "AddFilesStep",
    "RenameStep",
    "SetFieldStep",
    "TransformStep",
    "apply_steps",
    "apply_transform",
    "build_step",
]
