"""Unit test fixtures — a fully in-memory pipeline on a fake clock."""

from __future__ import annotations

import pytest

from cadence.core.config import AppSettings, WorkerConfig
from cadence.models.sequence import Sequence, Step, StepType
from cadence.models.target import TargetProfile
from cadence.workers.runner import build_pipeline
from tests.fakes import (
    FakeClock,
    MemoryCacheBackend,
    MemoryDeliveryService,
    MemoryEventPublisher,
    MemorySequenceStore,
    MemoryTargetDirectory,
    MockModelProvider,
)


def make_targets(*ids: str) -> list[TargetProfile]:
    return [
        TargetProfile(id=t, email=f"{t}@example.com", first_name=t.upper(), company=f"{t} Corp")
        for t in ids
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return AppSettings(persistence="memory", worker=WorkerConfig())


@pytest.fixture
def store():
    return MemorySequenceStore()


@pytest.fixture
def events():
    return MemoryEventPublisher()


@pytest.fixture
def targets():
    return MemoryTargetDirectory(make_targets("t1", "t2", "t3", "t4", "t5"))


@pytest.fixture
def model():
    return MockModelProvider()


@pytest.fixture
def delivery():
    return MemoryDeliveryService()


@pytest.fixture
def cache():
    return MemoryCacheBackend()


@pytest.fixture
def pipeline(settings, store, cache, events, targets, model, delivery, clock):
    return build_pipeline(
        settings, store=store, cache=cache, events=events, targets=targets,
        model=model, delivery=delivery, clock=clock,
    )


@pytest.fixture
def one_step(store):
    """S1: one auto-message step at offset 0."""
    seq = Sequence(id="S1", name="Single touch", owner_id="rep@example.com",
                   steps=[Step(step_type=StepType.AUTO_MESSAGE, offset_minutes=0, prompt="Say hello.")])
    store.put_sequence(seq)
    return seq


@pytest.fixture
def three_step(store):
    """Message, manual task, message."""
    seq = Sequence(
        id="S3", name="Renewal", owner_id="rep@example.com",
        steps=[
            Step(step_type=StepType.AUTO_MESSAGE, offset_minutes=0, prompt="Intro."),
            Step(step_type=StepType.MANUAL_TASK, offset_minutes=60, name="Call"),
            Step(step_type=StepType.AUTO_MESSAGE, offset_minutes=120, prompt="Follow up."),
        ],
    )
    store.put_sequence(seq)
    return seq
