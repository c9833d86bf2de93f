"""Error taxonomy raised by the publish pipeline."""

from __future__ import annotations

from typing import Any, Optional


class ReleaseError(RuntimeError):
    """Base error. ``stage`` names the pipeline stage that failed."""

    status = "failed"
    default_stage = "publish"

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage or self.default_stage

    def to_dict(self) -> dict[str, object]:
        return {
            "error": self.__class__.__name__,
            "stage": self.stage,
            "status": self.status,
            "message": str(self),
        }


class ConfigError(ReleaseError):
    default_stage = "config"


class StageError(ReleaseError):
    """Raised when a stage is invoked out of order."""


class ManifestNotFoundError(ReleaseError):
    default_stage = "load"


class ManifestParseError(ReleaseError):
    default_stage = "load"


class ManifestValidationError(ReleaseError):
    default_stage = "transform"

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        if self.expected is not None or self.actual is not None:
            payload["expected"] = self.expected
            payload["actual"] = self.actual
        return payload


class ManifestWriteError(ReleaseError):
    default_stage = "write"


class AuthError(ReleaseError):
    pass


class NetworkError(ReleaseError):
    pass


class ConflictError(ReleaseError):
    """The version already exists on the registry. Never retried."""

    status = "conflict"


__all__ = [
    "AuthError",
    "ConfigError",
    "ConflictError",
    "ManifestNotFoundError",
    "ManifestParseError",
    "ManifestValidationError",
    "ManifestWriteError",
    "NetworkError",
    "ReleaseError",
    "StageError",
]
