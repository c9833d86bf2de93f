"""Publish wasm-pack build output to an npm registry."""

__version__ = "0.1.0"
from .config import PublisherConfig, StepConfig, load_config
from .errors import (
    AuthError,
    ConfigError,
    ConflictError,
    ManifestNotFoundError,
    ManifestParseError,
    ManifestValidationError,
    ManifestWriteError,
    NetworkError,
    ReleaseError,
    StageError,
)
from .manifest import Manifest, load_manifest, write_manifest
from .models import PublishResult, PublishTarget, RunReport, Stage
from .publisher import Publisher, publish
from .secrets import Credential, describe_secret, resolve_credential
from .transforms import AddFilesStep, RenameStep, SetFieldStep, TransformStep, apply_transform, build_step

__all__ = [
    "__version__",
    "AddFilesStep",
    "AuthError",
    "ConfigError",
    "ConflictError",
    "Credential",
    "Manifest",
    "ManifestNotFoundError",
    "ManifestParseError",
    "ManifestValidationError",
    "ManifestWriteError",
    "NetworkError",
    "PublishResult",
    "PublishTarget",
    "Publisher",
    "PublisherConfig",
    "ReleaseError",
    "RenameStep",
    "RunReport",
    "SetFieldStep",
    "Stage",
    "StageError",
    "StepConfig",
    "TransformStep",
    "apply_transform",
    "build_step",
    "describe_secret",
    "load_config",
    "load_manifest",
    "publish",
    "resolve_credential",
    "write_manifest",
]
