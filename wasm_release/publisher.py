"""Tag-triggered publish pipeline.

The pipeline moves ``idle -> manifest_loaded -> transformed -> written ->
published``. Each stage method checks that the previous stage completed; any
``ReleaseError`` moves the publisher to ``failed`` and is re-raised.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from requests import Session

from .config import PublisherConfig, check_tag, version_from_tag
from .errors import ManifestValidationError, ReleaseError, StageError
from .manifest import Manifest, load_manifest, write_manifest
from .models import PublishResult, PublishTarget, RunReport, Stage
from .registry import RegistryAdapter, build_adapter
from .secrets import Credential, resolve_credential
from .transforms import TransformStep, apply_transform

logger = logging.getLogger(__name__)


def publish(
    target: PublishTarget,
    credential: Optional[Credential],
    *,
    adapter: Optional[RegistryAdapter] = None,
) -> PublishResult:
    """Publish the artifact directory once. Conflicts and network errors are not retried."""

    adapter = adapter or build_adapter("http")
    return adapter.publish(target, credential)


class Publisher:
    def __init__(
        self,
        config: PublisherConfig,
        *,
        adapter: Optional[RegistryAdapter] = None,
        session: Optional[Session] = None,
    ) -> None:
        self.config = config
        self.target = config.target()
        self.steps: List[TransformStep] = config.build_steps()
        self.adapter = adapter or build_adapter(config.adapter, session=session, timeout=config.timeout)
        self.stage = Stage.IDLE
        self.manifest: Optional[Manifest] = None
        self.result: Optional[PublishResult] = None
        self._tag: Optional[str] = None

    def load(self) -> Manifest:
        self._expect(Stage.IDLE)
        with self._stage("load"):
            self.manifest = load_manifest(self.target.manifest_path)
            if self.config.require_version_match and self._tag:
                expected = version_from_tag(self._tag)
                if self.manifest.version != expected:
                    raise ManifestValidationError(
                        f"Manifest version '{self.manifest.version}' does not match tag '{self._tag}'",
                        stage="load",
                        expected=expected,
                        actual=self.manifest.version,
                    )
        self._advance(Stage.MANIFEST_LOADED)
        return self.manifest

    def transform(self) -> Manifest:
        self._expect(Stage.MANIFEST_LOADED)
        assert self.manifest is not None
        with self._stage("transform"):
            manifest = self.manifest
            for step in self.steps:
                logger.debug("Applying %s", step.describe())
                manifest = apply_transform(manifest, step)
            self.manifest = manifest
        self._advance(Stage.TRANSFORMED)
        return self.manifest

    def write(self) -> None:
        self._expect(Stage.TRANSFORMED)
        assert self.manifest is not None
        with self._stage("write"):
            write_manifest(self.manifest, self.target.manifest_path)
        self._advance(Stage.WRITTEN)

    def publish(self) -> PublishResult:
        self._expect(Stage.WRITTEN)
        with self._stage("publish"):
            credential = None
            if self.adapter.requires_credential:
                credential = resolve_credential(self.config.token_env, dotenv=self.config.dotenv)
            self.result = publish(self.target, credential, adapter=self.adapter)
        self._advance(Stage.PUBLISHED)
        return self.result

    def prepare(self, tag: Optional[str] = None) -> Manifest:
        """Run the stages up to and including ``write``."""

        self._tag = tag
        self.load()
        self.transform()
        self.write()
        assert self.manifest is not None
        return self.manifest

    def run(self, tag: Optional[str] = None, *, transform_only: bool = False) -> RunReport:
        report = RunReport(stage=self.stage, status="running", manifest_path=self.target.manifest_path)
        report.steps = [step.describe() for step in self.steps]
        try:
            if not transform_only:
                tag = self._check_trigger(tag)
            self.prepare(tag)
            if not transform_only:
                report.publish = self.publish()
        except ReleaseError as exc:
            report.error = exc.to_dict()
            report.status = exc.status
        else:
            report.status = report.publish.status if report.publish else "written"
        report.stage = self.stage
        report.manifest = self.manifest.data if self.manifest else None
        return report

    def _check_trigger(self, tag: Optional[str]) -> str:
        self._expect(Stage.IDLE)
        with self._stage("trigger"):
            return check_tag(tag, self.config.tag_pattern)

    def _expect(self, stage: Stage) -> None:
        if self.stage is not stage:
            raise StageError(
                f"Publisher is in stage '{self.stage.value}', expected '{stage.value}'",
                stage=self.stage.value,
            )

    def _advance(self, stage: Stage) -> None:
        logger.info("Stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        try:
            yield
        except ReleaseError as exc:
            if exc.stage != name and exc.default_stage == exc.stage:
                exc.stage = name
            logger.error("Stage '%s' failed: %s", exc.stage, exc)
            self.stage = Stage.FAILED
            raise


__all__ = ["Publisher", "publish"]
