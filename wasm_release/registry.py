"""Registry adapters used during publish."""

from __future__ import annotations

import base64
import logging
import os
import re
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote, urlsplit

import requests
from requests import Response, Session
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from .errors import AuthError, ConfigError, ConflictError, NetworkError, ReleaseError
from .manifest import Manifest, load_manifest
from .models import PublishResult, PublishTarget
from .pack import PackResult, pack_directory
from .secrets import Credential

logger = logging.getLogger(__name__)

_CONFLICT_PATTERN = re.compile(
    r"cannot publish over|previously published|EPUBLISHCONFLICT|E409", re.IGNORECASE
)
_AUTH_PATTERN = re.compile(r"\bE401\b|\bE403\b|ENEEDAUTH|unauthorized", re.IGNORECASE)
_NETWORK_PATTERN = re.compile(
    r"ENOTFOUND|ETIMEDOUT|ECONNREFUSED|ECONNRESET|EAI_AGAIN|\bE5\d\d\b", re.IGNORECASE
)


class RegistryAdapter(ABC):
    name: str
    requires_credential = True

    @abstractmethod
    def publish(self, target: PublishTarget, credential: Optional[Credential]) -> PublishResult:
        ...

    def _require(self, credential: Optional[Credential]) -> Credential:
        if credential is None or not credential.token:
            raise AuthError(f"The {self.name} adapter needs a registry token", stage="publish")
        return credential


class NoOpAdapter(RegistryAdapter):
    """Dry run: pack the tarball but never contact the registry."""

    name = "noop"
    requires_credential = False

    def publish(self, target: PublishTarget, credential: Optional[Credential]) -> PublishResult:
        manifest = load_manifest(target.manifest_path)
        pack = pack_directory(target.artifact_dir, manifest)
        return PublishResult(
            name=manifest.name or "",
            version=manifest.version or "",
            registry=target.registry_url,
            adapter=self.name,
            status="skipped",
            tarball=pack.filename,
            shasum=pack.shasum,
            integrity=pack.integrity,
            details={"files": pack.files, "size": pack.size},
            logs=[
                "NoOp adapter selected; skipping upload.",
                f"Tarball {pack.filename} ready ({len(pack.files)} files).",
            ],
        )


class HttpRegistryAdapter(RegistryAdapter):
    """Publish through the npm registry HTTP API with a single PUT."""

    name = "http"

    def __init__(self, session: Optional[Session] = None, timeout: float = 60.0) -> None:
        self.session = session
        self.timeout = timeout

    def publish(self, target: PublishTarget, credential: Optional[Credential]) -> PublishResult:
        credential = self._require(credential)
        manifest = load_manifest(target.manifest_path)
        pack = pack_directory(target.artifact_dir, manifest)
        document = build_publish_document(manifest, pack, target)
        url = package_url(target.registry_url, manifest.name or "")

        logs = [f"PUT {url} ({pack.filename}, {pack.size} bytes)"]
        logger.info("Publishing %s@%s to %s", manifest.name, manifest.version, target.registry_url)

        session = self.session or requests.Session()
        headers = {
            **credential.authorization_header(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response: Response = session.put(url, headers=headers, json=document, timeout=self.timeout)
        except (RequestsConnectionError, Timeout) as exc:
            raise NetworkError(f"Registry {target.registry_url} unreachable: {exc}") from exc
        except RequestException as exc:
            raise NetworkError(f"Publish request failed: {exc}") from exc

        _raise_for_response(response, manifest)
        logs.append(f"Registry responded {response.status_code}")
        return PublishResult(
            name=manifest.name or "",
            version=manifest.version or "",
            registry=target.registry_url,
            adapter=self.name,
            status="published",
            tarball=pack.filename,
            shasum=pack.shasum,
            integrity=pack.integrity,
            details={"status_code": response.status_code, "files": pack.files},
            logs=logs,
        )


class NpmCliAdapter(RegistryAdapter):
    """Delegate to ``npm publish``. The token only reaches npm through its environment."""

    name = "npm"

    def __init__(self, executable: str = "npm") -> None:
        self.executable = executable

    def publish(self, target: PublishTarget, credential: Optional[Credential]) -> PublishResult:
        credential = self._require(credential)
        manifest = load_manifest(target.manifest_path)
        with tempfile.TemporaryDirectory(prefix="wasm-release-") as tmp:
            userconfig = Path(tmp) / ".npmrc"
            userconfig.write_text(render_npmrc(target.registry_url), encoding="utf-8")
            cmd = [
                self.executable,
                "publish",
                "--access",
                target.access,
                "--tag",
                target.dist_tag,
                "--registry",
                target.registry_url,
                "--userconfig",
                str(userconfig),
            ]
            logs = [f"Executing: {' '.join(cmd)}"]
            try:
                proc = subprocess.run(
                    cmd,
                    cwd=str(target.artifact_dir),
                    env={**os.environ, "NODE_AUTH_TOKEN": credential.token},
                    capture_output=True,
                    text=True,
                    check=False,
                )
            except FileNotFoundError as exc:
                raise ReleaseError(f"npm executable '{self.executable}' not found") from exc

        if proc.stdout:
            logs.append(proc.stdout.strip())
        if proc.stderr:
            logs.append(proc.stderr.strip())
        if proc.returncode != 0:
            raise classify_npm_failure(proc.stderr or proc.stdout or "", proc.returncode, manifest)

        return PublishResult(
            name=manifest.name or "",
            version=manifest.version or "",
            registry=target.registry_url,
            adapter=self.name,
            status="published",
            details={"returncode": proc.returncode},
            logs=logs,
        )


def package_url(registry_url: str, name: str) -> str:
    """npm escapes the scope separator: ``@swc/wasm`` -> ``@swc%2fwasm``."""

    return f"{registry_url.rstrip('/')}/{quote(name, safe='@').replace('%2F', '%2f')}"


def render_npmrc(registry_url: str) -> str:
    parts = urlsplit(registry_url)
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return f"registry={registry_url}\n//{parts.netloc}{path}:_authToken=${{NODE_AUTH_TOKEN}}\n"


def build_publish_document(manifest: Manifest, pack: PackResult, target: PublishTarget) -> Dict[str, Any]:
    name = manifest.name or ""
    version = manifest.version or ""
    # npm publish names the attachment "<name>-<version>.tgz", scope included.
    attachment = f"{name}-{version}.tgz"
    tarball_url = f"{target.registry_base}/{name}/-/{attachment}"
    version_doc = dict(manifest.data)
    version_doc["_id"] = f"{name}@{version}"
    version_doc["dist"] = {
        "shasum": pack.shasum,
        "integrity": pack.integrity,
        "tarball": tarball_url,
    }
    document: Dict[str, Any] = {
        "_id": name,
        "name": name,
        "dist-tags": {target.dist_tag: version},
        "versions": {version: version_doc},
        "access": target.access,
        "_attachments": {
            attachment: {
                "content_type": "application/octet-stream",
                "data": base64.b64encode(pack.data).decode("ascii"),
                "length": pack.size,
            }
        },
    }
    description = manifest.data.get("description")
    if isinstance(description, str):
        document["description"] = description
    return document


def classify_npm_failure(output: str, returncode: int, manifest: Manifest) -> ReleaseError:
    label = f"{manifest.name}@{manifest.version}"
    tail = output.strip().splitlines()[-1] if output.strip() else f"exit {returncode}"
    if _CONFLICT_PATTERN.search(output):
        return ConflictError(f"{label} is already published: {tail}")
    if _AUTH_PATTERN.search(output):
        return AuthError(f"Registry rejected credentials for {label}: {tail}")
    if _NETWORK_PATTERN.search(output):
        return NetworkError(f"Registry unreachable while publishing {label}: {tail}")
    return ReleaseError(f"npm publish failed for {label} (exit {returncode}): {tail}")


def _raise_for_response(response: Response, manifest: Manifest) -> None:
    status = response.status_code
    if status in (200, 201):
        return
    label = f"{manifest.name}@{manifest.version}"
    body = response.text or getattr(response, "reason", "") or ""
    if status == 409 or (status == 403 and _CONFLICT_PATTERN.search(body)):
        raise ConflictError(f"{label} is already published: {body}")
    if status in (401, 403):
        raise AuthError(f"Registry rejected credentials for {label} ({status}): {body}")
    if status >= 500:
        raise NetworkError(f"Registry error {status} while publishing {label}: {body}")
    raise ReleaseError(f"Registry returned {status} for {label}: {body}")


def build_adapter(
    name: str,
    *,
    session: Optional[Session] = None,
    timeout: float = 60.0,
    executable: str = "npm",
) -> RegistryAdapter:
    lowered = (name or "http").lower()
    if lowered in ("noop", "none", "dry-run"):
        return NoOpAdapter()
    if lowered in ("http", "api"):
        return HttpRegistryAdapter(session=session, timeout=timeout)
    if lowered in ("npm", "cli"):
        return NpmCliAdapter(executable=executable)
    raise ConfigError(f"Unknown registry adapter '{name}'")


__all__ = [
    "HttpRegistryAdapter",
    "NoOpAdapter",
    "NpmCliAdapter",
    "RegistryAdapter",
    "build_adapter",
    "build_publish_document",
    "classify_npm_failure",
    "package_url",
    "render_npmrc",
]
