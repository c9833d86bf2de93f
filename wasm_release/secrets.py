"""Registry token resolution.

Resolvers are consulted in priority order. Values are handed back to the caller
only; nothing here writes a token to ``os.environ`` or to disk.
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretSpec:
    name: str


class SecretResolver(Protocol):
    def resolve(self, spec: SecretSpec) -> Optional[str]:  # pragma: no cover - interface
        ...


@dataclass(frozen=True)
class SecretAttempt:
    resolver: str
    source: str
    success: bool
    details: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class SecretResolutionInfo:
    name: str
    value: Optional[str] = field(repr=False)
    resolver: Optional[str]
    source: Optional[str]
    attempts: List[SecretAttempt]


@dataclass(frozen=True)
class Credential:
    """Registry auth token. ``repr`` never shows the value."""

    token: str = field(repr=False)
    source: str = "env"

    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def __str__(self) -> str:
        return f"Credential(source={self.source!r}, token=***)"


@dataclass
class _RegisteredResolver:
    priority: int
    resolver: SecretResolver
    name: str
    source: str
    details: dict[str, object]


_resolvers: List[_RegisteredResolver] = []

DOTENV_PRIORITY = -10


def register_resolver(
    resolver: SecretResolver,
    priority: int = 0,
    *,
    name: Optional[str] = None,
    source: Optional[str] = None,
    details: Optional[dict[str, object]] = None,
) -> None:
    entry = _RegisteredResolver(
        priority=priority,
        resolver=resolver,
        name=name or resolver.__class__.__name__,
        source=source or (name or resolver.__class__.__name__),
        details=dict(details or {}),
    )
    _resolvers.append(entry)
    _resolvers.sort(key=lambda item: item.priority, reverse=True)


class EnvResolver:
    """Resolve secrets from process environment variables."""

    def resolve(self, spec: SecretSpec) -> Optional[str]:
        value = os.getenv(spec.name)
        return value if value else None

    def describe(self) -> dict[str, object]:
        return {"type": "env"}


register_resolver(EnvResolver(), priority=0, name="env", source="env")


class DotEnvResolver:
    """Read ``KEY=value`` lines from a .env file without exporting them."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._loaded = False
        self._warnings: List[str] = []
        self._values: Dict[str, str] = {}

    def resolve(self, spec: SecretSpec) -> Optional[str]:
        self._ensure_loaded()
        value = self._values.get(spec.name)
        return value if value else None

    def describe(self) -> dict[str, object]:
        return {
            "type": "dotenv",
            "path": str(self.path),
            "exists": self.path.exists(),
            "loaded": self._loaded,
            "warnings": list(self._warnings),
        }

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self.path.exists():
            return
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            self._warnings.append(f"read-error: {exc}")
            logger.warning("Could not read %s: %s", self.path, exc)
            return

        for idx, line in enumerate(content.splitlines(), start=1):
            raw = line.strip()
            if not raw or raw.startswith("#"):
                continue
            if raw.lower().startswith("export "):
                raw = raw[6:].strip()
            if "=" not in raw:
                self._warnings.append(f"line {idx}: missing '='")
                continue
            key, value_part = raw.split("=", 1)
            key = key.strip()
            if not key:
                self._warnings.append(f"line {idx}: empty key")
                continue
            try:
                tokens = shlex.split(value_part, posix=True, comments=True)
            except ValueError as exc:
                self._warnings.append(f"line {idx}: {exc}")
                continue
            if key in self._values:
                self._warnings.append(f"line {idx}: duplicate key '{key}' (overriding previous value)")
            self._values[key] = " ".join(tokens)


def _resolver_chain(dotenv: Optional[Path]) -> List[_RegisteredResolver]:
    """Global resolvers plus, for this call only, a resolver reading ``dotenv``."""

    chain = list(_resolvers)
    if dotenv is not None:
        resolver = DotEnvResolver(Path(dotenv))
        chain.append(
            _RegisteredResolver(
                priority=DOTENV_PRIORITY,
                resolver=resolver,
                name=f"dotenv:{resolver.path}",
                source="dotenv",
                details={"path": str(resolver.path)},
            )
        )
        chain.sort(key=lambda item: item.priority, reverse=True)
    return chain


def resolve_secret_info(name: str, *, dotenv: Optional[Path] = None) -> SecretResolutionInfo:
    spec = SecretSpec(name=name)
    attempts: List[SecretAttempt] = []

    for entry in _resolver_chain(dotenv):
        details = dict(entry.details)
        value = entry.resolver.resolve(spec)
        describe = getattr(entry.resolver, "describe", None)
        if callable(describe):
            extra = describe()
            if isinstance(extra, dict):
                details.update(extra)

        success = bool(value)
        attempts.append(
            SecretAttempt(resolver=entry.name, source=entry.source, success=success, details=details)
        )
        if success:
            return SecretResolutionInfo(
                name=name,
                value=value,
                resolver=entry.name,
                source=entry.source,
                attempts=attempts,
            )

    return SecretResolutionInfo(name=name, value=None, resolver=None, source=None, attempts=attempts)


def resolve_credential(name: str, *, dotenv: Optional[Path] = None) -> Credential:
    """Return the credential for ``name`` or raise ``AuthError`` naming the resolvers tried."""

    info = resolve_secret_info(name, dotenv=dotenv)
    if not info.value:
        attempted = []
        for attempt in info.attempts:
            label = attempt.source or attempt.resolver
            path = attempt.details.get("path") if attempt.details else None
            if path:
                label = f"{label}@{path}"
            attempted.append(f"{label} (missing)")
        summary = ", ".join(attempted) if attempted else "none"
        raise AuthError(
            f"Registry token '{name}' is not set. Checked resolvers: {summary}.",
            stage="credential",
        )
    logger.debug("Resolved registry token '%s' via %s", name, info.resolver)
    return Credential(token=info.value, source=info.source or "unknown")


def describe_secret(name: str, *, dotenv: Optional[Path] = None) -> dict[str, object]:
    info = resolve_secret_info(name, dotenv=dotenv)
    return {
        "name": name,
        "present": info.value is not None,
        "resolver": info.resolver,
        "source": info.source,
        "attempts": [
            {
                "resolver": attempt.resolver,
                "source": attempt.source,
                "success": attempt.success,
                "details": attempt.details,
            }
            for attempt in info.attempts
        ],
    }


__all__ = [
    "Credential",
    "DotEnvResolver",
    "EnvResolver",
    "SecretAttempt",
    "SecretResolutionInfo",
    "SecretSpec",
    "describe_secret",
    "register_resolver",
    "resolve_credential",
    "resolve_secret_info",
]
