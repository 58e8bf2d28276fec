"""Base worker with common dependency wiring and lifecycle patterns."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from cadence.core.config import AppSettings
from cadence.core.exceptions import CadenceError
from cadence.core.protocols import IEventPublisher, ISequenceStore
from cadence.core.types import Clock
from cadence.models.base import utcnow

logger = logging.getLogger(__name__)


class BaseWorker:
    """Common base for all pipeline workers.

    Workers are stateless between invocations: settings, the shared store,
    the event channel and a clock are injected at construction time and all
    coordination state lives in the store.
    """

    name = "worker"

    def __init__(
        self,
        *,
        settings: AppSettings,
        store: ISequenceStore,
        events: IEventPublisher,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._events = events
        self._clock = clock or utcnow

    @property
    def limits(self):
        return self._settings.worker

    def now(self) -> datetime:
        return self._clock()

    def lease_until(self, now: datetime, seconds: int) -> datetime:
        return now + timedelta(seconds=seconds)

    def emit(self, topic: str, payload: dict[str, Any]) -> None:
        """Publish a pipeline event. Notification failures never fail the work item."""
        try:
            self._events.publish(topic, payload)
        except CadenceError:
            logger.warning("Event %s not published", topic, exc_info=True, extra={"worker": self.name})

    def health_check(self) -> dict[str, Any]:
        return {
            "worker": self.name,
            "status": "healthy",
            "environment": self._settings.environment,
        }
