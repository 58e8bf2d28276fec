"""Worker wiring and the cron entry point.

Each scheduled trigger builds (or reuses) a :class:`Pipeline` and runs one
bounded worker pass. ``handler`` accepts scheduler events of the form
``{"worker": "dispatch"}``, or the same under an EventBridge ``detail`` key.
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import Any

from cadence.core.config import AppSettings
from cadence.core.logging import setup_logging
from cadence.core.protocols import (
    ICacheBackend,
    IDeliveryService,
    IEventPublisher,
    IModelProvider,
    ISequenceStore,
    ITargetDirectory,
)
from cadence.core.types import Clock
from cadence.delivery.memory import MemoryDeliveryService
from cadence.model_providers.mock_provider import MockModelProvider
from cadence.models.base import Record
from cadence.persistence import create_persistence
from cadence.workers.activation_processor import ActivationProcessor
from cadence.workers.approval import ApprovalGate
from cadence.workers.content_generator import ContentGenerator
from cadence.workers.diagnostics import PipelineDiagnostics
from cadence.workers.dispatcher import Dispatcher
from cadence.workers.enrollment import EnrollmentService
from cadence.workers.reconciliation import BackfillTool
from cadence.workers.sweeper import StaleClaimSweeper

logger = logging.getLogger(__name__)

WORKERS = ("activation", "generation", "dispatch", "sweep", "backfill")


def create_model_provider(settings: AppSettings) -> IModelProvider:
    if settings.llm.provider == "bedrock":
        from cadence.model_providers.bedrock_provider import BedrockModelProvider

        return BedrockModelProvider(
            model_id=settings.llm.bedrock_model,
            region=settings.llm.region,
            endpoint_url=settings.llm.endpoint_url,
            temperature=settings.llm.temperature,
            max_tokens=settings.llm.max_tokens,
        )
    return MockModelProvider()


def create_delivery_service(settings: AppSettings) -> IDeliveryService:
    if settings.delivery.provider == "ses":
        from cadence.delivery.ses import SESDeliveryService

        return SESDeliveryService(
            from_email=settings.delivery.from_email,
            from_name=settings.delivery.from_name,
            region=settings.delivery.region,
            endpoint_url=settings.delivery.endpoint_url,
            configuration_set=settings.delivery.configuration_set,
        )
    return MemoryDeliveryService()


class Pipeline:
    """The wired set of backends and the workers built on them."""

    def __init__(self, *, settings: AppSettings, store: ISequenceStore, cache: ICacheBackend,
                 events: IEventPublisher, targets: ITargetDirectory, model: IModelProvider,
                 delivery: IDeliveryService, clock: Clock | None = None) -> None:
        self.settings = settings
        self.store = store
        self.cache = cache
        self.events = events
        self.targets = targets
        self.model = model
        self.delivery = delivery
        self.clock = clock

    def _common(self) -> dict[str, Any]:
        return {"settings": self.settings, "store": self.store, "events": self.events,
                "clock": self.clock}

    @cached_property
    def enrollment(self) -> EnrollmentService:
        return EnrollmentService(targets=self.targets, **self._common())

    @cached_property
    def processor(self) -> ActivationProcessor:
        return ActivationProcessor(targets=self.targets, **self._common())

    @cached_property
    def sweeper(self) -> StaleClaimSweeper:
        return StaleClaimSweeper(**self._common())

    @cached_property
    def generator(self) -> ContentGenerator:
        return ContentGenerator(model=self.model, targets=self.targets, sweeper=self.sweeper,
                                **self._common())

    @cached_property
    def approval(self) -> ApprovalGate:
        return ApprovalGate(**self._common())

    @cached_property
    def dispatcher(self) -> Dispatcher:
        return Dispatcher(delivery=self.delivery, **self._common())

    @cached_property
    def backfill(self) -> BackfillTool:
        return BackfillTool(cache=self.cache, targets=self.targets, **self._common())

    @cached_property
    def diagnostics(self) -> PipelineDiagnostics:
        return PipelineDiagnostics(**self._common())


def build_pipeline(settings: AppSettings | None = None, **overrides: Any) -> Pipeline:
    """Wire a Pipeline from settings. Any backend can be replaced by keyword."""
    settings = settings or AppSettings()
    backends = ("store", "cache", "events", "targets")
    if not all(name in overrides for name in backends):
        store, cache, events, targets = create_persistence(settings)
        defaults = {"store": store, "cache": cache, "events": events, "targets": targets}
        overrides = {**defaults, **overrides}
    overrides.setdefault("model", create_model_provider(settings))
    overrides.setdefault("delivery", create_delivery_service(settings))
    return Pipeline(settings=settings, **overrides)


def run_worker(name: str, pipeline: Pipeline, **params: Any) -> Record:
    """Run one bounded pass of the named worker.

    Raises:
        ValueError: for an unknown worker name.
    """
    if name == "activation":
        return pipeline.processor.run()
    if name == "generation":
        return pipeline.generator.run()
    if name == "dispatch":
        return pipeline.dispatcher.run()
    if name == "sweep":
        return pipeline.sweeper.run()
    if name == "backfill":
        return pipeline.backfill.run(
            dry_run=params.get("dry_run", True),
            force=params.get("force", False),
            sequence_id=params.get("sequence_id"),
            member_ids=params.get("member_ids"),
        )
    raise ValueError(f"Unknown worker {name!r}; expected one of {', '.join(WORKERS)}")


_pipeline: Pipeline | None = None


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Scheduled-event entry point. Reuses the pipeline across warm invocations."""
    global _pipeline
    if _pipeline is None:
        settings = AppSettings()
        setup_logging(settings.log_level, settings.log_format)
        _pipeline = build_pipeline(settings)

    body = event.get("detail") or event
    name = body.get("worker", "")
    params = {
        "dry_run": body.get("dryRun", True),
        "force": body.get("force", False),
        "sequence_id": body.get("sequenceId"),
        "member_ids": body.get("memberIds"),
    }
    logger.info("Scheduled run of %s", name, extra={"worker": name})
    result = run_worker(name, _pipeline, **params)
    return result.model_dump(mode="json", by_alias=True)
