"""Publisher configuration loaded from YAML and CLI overrides."""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigError, ManifestValidationError
from .models import DEFAULT_REGISTRY, PublishTarget
from .transforms import TransformStep, build_step

logger = logging.getLogger(__name__)


class StepConfig(BaseModel):
    kind: str
    options: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "StepConfig":
        data = dict(payload)
        kind = data.pop("kind", None)
        if not kind:
            raise ConfigError(f"Transform step is missing 'kind': {payload}")
        return cls(kind=str(kind), options=data)

    def build(self) -> TransformStep:
        return build_step(self.kind, self.options)


class PublisherConfig(BaseModel):
    artifact_dir: Path
    manifest_name: str = "package.json"
    registry_url: str = DEFAULT_REGISTRY
    token_env: str = "NPM_TOKEN"
    dotenv: Optional[Path] = None
    access: Literal["public", "restricted"] = "public"
    dist_tag: str = "latest"
    adapter: str = "http"
    tag_pattern: str = "v*"
    require_version_match: bool = False
    timeout: float = 60.0
    steps: List[StepConfig] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def manifest_path(self) -> Path:
        return self.artifact_dir / self.manifest_name

    def target(self) -> PublishTarget:
        return PublishTarget(
            artifact_dir=self.artifact_dir,
            registry_url=self.registry_url,
            access=self.access,
            dist_tag=self.dist_tag,
            manifest_name=self.manifest_name,
        )

    def build_steps(self) -> List[TransformStep]:
        return [step.build() for step in self.steps]


def load_config(path: Optional[Path] = None, overrides: Optional[Mapping[str, Any]] = None) -> PublisherConfig:
    """Merge the YAML file at ``path`` (if any) with non-None ``overrides``.

    ``steps`` in overrides are appended after the file's steps. Relative paths in
    the file resolve against the file's directory.
    """

    payload: Dict[str, Any] = {}
    if path is not None:
        payload = _read_yaml(path)
        for key in ("artifact_dir", "dotenv"):
            value = payload.get(key)
            if value and not Path(value).is_absolute():
                payload[key] = str(path.parent / value)

    extra_steps: List[Any] = []
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key == "steps":
            extra_steps.extend(value)
            continue
        payload[key] = value

    raw_steps = list(payload.pop("steps", None) or []) + extra_steps
    steps = [
        step if isinstance(step, StepConfig) else StepConfig.from_mapping(_as_mapping(step))
        for step in raw_steps
    ]

    if "artifact_dir" not in payload:
        raise ConfigError("An artifact directory is required (--artifact-dir or artifact_dir in config)")
    try:
        config = PublisherConfig.model_validate({**payload, "steps": steps})
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid publisher configuration: {exc}") from exc
    config.build_steps()
    logger.debug("Loaded config for %s with %d steps", config.artifact_dir, len(config.steps))
    return config


def check_tag(tag: Optional[str], pattern: str) -> str:
    """Ensure the triggering tag matches ``pattern``."""

    if not tag:
        raise ManifestValidationError(
            f"No tag supplied; publishing requires a tag matching '{pattern}'",
            stage="trigger",
            expected=pattern,
            actual=None,
        )
    tag = tag.removeprefix("refs/tags/")
    if not fnmatch.fnmatchcase(tag, pattern):
        raise ManifestValidationError(
            f"Tag '{tag}' does not match '{pattern}'",
            stage="trigger",
            expected=pattern,
            actual=tag,
        )
    return tag


def version_from_tag(tag: str) -> str:
    ref = tag.rsplit("/", 1)[-1]
    return ref[1:] if ref.startswith("v") else ref


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return loaded


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigError(f"Transform step must be a mapping (got {value!r})")
    return value


__all__ = ["PublisherConfig", "StepConfig", "check_tag", "load_config", "version_from_tag"]
