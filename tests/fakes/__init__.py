"""Shared test doubles — re-export memory backends, plus a controllable clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from cadence.delivery.memory import MemoryDeliveryService
from cadence.model_providers.mock_provider import MockModelProvider
from cadence.persistence.memory_backend import (
    MemoryCacheBackend,
    MemoryEventPublisher,
    MemorySequenceStore,
    MemoryTargetDirectory,
)

EPOCH = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


__all__ = [
    "EPOCH",
    "FakeClock",
    "MemoryCacheBackend",
    "MemoryDeliveryService",
    "MemoryEventPublisher",
    "MemorySequenceStore",
    "MemoryTargetDirectory",
    "MockModelProvider",
]
