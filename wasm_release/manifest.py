"""Load and persist ``package.json`` manifests."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .errors import ManifestNotFoundError, ManifestParseError, ManifestWriteError


class ManifestShape(BaseModel):
    """Types for the manifest keys the pipeline reads. Other keys pass through."""

    name: Optional[str] = None
    version: Optional[str] = None
    files: Optional[List[str]] = None
    main: Optional[str] = None

    model_config = ConfigDict(extra="allow", strict=True)


@dataclass(slots=True)
class Manifest:
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> Optional[str]:
        return self.data.get("name")

    @property
    def version(self) -> Optional[str]:
        return self.data.get("version")

    @property
    def files(self) -> Optional[List[str]]:
        return self.data.get("files")

    def copy(self) -> "Manifest":
        return Manifest(data=copy.deepcopy(self.data))

    def to_json(self) -> str:
        return json.dumps(self.data, indent=2, ensure_ascii=False) + "\n"


def parse_manifest(text: str, *, source: str = "<string>") -> Manifest:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestParseError(f"Invalid JSON in manifest {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ManifestParseError(
            f"Manifest {source} must be a JSON object (got {type(payload).__name__})"
        )
    try:
        ManifestShape.model_validate(payload)
    except PydanticValidationError as exc:
        raise ManifestParseError(f"Invalid manifest {source}: {exc}") from exc
    return Manifest(data=payload)


def load_manifest(path: Path) -> Manifest:
    """Load a manifest from JSON."""

    if not path.is_file():
        raise ManifestNotFoundError(f"Manifest not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestNotFoundError(f"Manifest unreadable: {path}: {exc}") from exc
    return parse_manifest(text, source=str(path))


def write_manifest(manifest: Manifest, path: Path) -> None:
    """Write the manifest via a sibling temp file renamed over ``path``."""

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(manifest.to_json(), encoding="utf-8")
        tmp_path.replace(path)
    except OSError as exc:
        if tmp_path.exists():
            tmp_path.unlink()
        raise ManifestWriteError(f"Failed to write manifest {path}: {exc}") from exc


__all__ = ["Manifest", "ManifestShape", "load_manifest", "parse_manifest", "write_manifest"]
