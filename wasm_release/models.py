"""Data models used during publishing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

DEFAULT_REGISTRY = "https://registry.npmjs.org/"


class Stage(str, Enum):
    IDLE = "idle"
    MANIFEST_LOADED = "manifest_loaded"
    TRANSFORMED = "transformed"
    WRITTEN = "written"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PublishTarget:
    artifact_dir: Path
    registry_url: str = DEFAULT_REGISTRY
    access: str = "public"
    dist_tag: str = "latest"
    manifest_name: str = "package.json"

    @property
    def manifest_path(self) -> Path:
        return self.artifact_dir / self.manifest_name

    @property
    def registry_base(self) -> str:
        return self.registry_url.rstrip("/")


@dataclass(slots=True)
class PublishResult:
    name: str
    version: str
    registry: str
    adapter: str
    status: str
    tarball: Optional[str] = None
    shasum: Optional[str] = None
    integrity: Optional[str] = None
    details: Dict[str, object] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "version": self.version,
            "registry": self.registry,
            "adapter": self.adapter,
            "status": self.status,
            "tarball": self.tarball,
            "shasum": self.shasum,
            "integrity": self.integrity,
            "details": self.details,
            "logs": self.logs,
        }


@dataclass(slots=True)
class RunReport:
    stage: Stage
    status: str
    manifest_path: Optional[Path] = None
    manifest: Optional[Dict[str, object]] = None
    steps: List[Dict[str, object]] = field(default_factory=list)
    publish: Optional[PublishResult] = None
    error: Optional[Dict[str, object]] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, object]:
        return {
            "stage": self.stage.value,
            "status": self.status,
            "manifest_path": str(self.manifest_path) if self.manifest_path else None,
            "manifest": self.manifest,
            "steps": self.steps,
            "publish": self.publish.to_dict() if self.publish else None,
            "error": self.error,
            "started_at": self.started_at.isoformat().replace("+00:00", "Z"),
        }


__all__ = ["DEFAULT_REGISTRY", "PublishResult", "PublishTarget", "RunReport", "Stage"]
