"""Sequence templates: an ordered list of outbound-communication steps."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional

from pydantic import Field

from cadence.models.base import SCHEMA_VERSION, Record


class SequenceStatus(StrEnum):
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class StepType(StrEnum):
    AUTO_MESSAGE = "auto-message"
    MANUAL_TASK = "manual-task"


class Step(Record):
    """One step of a sequence template.

    ``step_type`` is kept as a plain string so templates written by newer
    builders still load; steps of an unknown type are skipped by the workers.
    """

    step_type: str = StepType.AUTO_MESSAGE
    offset_minutes: int = 0
    template_ref: str = ""
    name: str = ""
    prompt: str = ""

    @property
    def is_message(self) -> bool:
        return self.step_type == StepType.AUTO_MESSAGE

    @property
    def is_task(self) -> bool:
        return self.step_type == StepType.MANUAL_TASK

    @property
    def is_known(self) -> bool:
        return self.step_type in (StepType.AUTO_MESSAGE, StepType.MANUAL_TASK)


class Sequence(Record):
    """Immutable-per-version sequence template. Read-only to the pipeline."""

    id: str
    name: str = ""
    version: int = 1
    owner_id: str = "unassigned"
    status: SequenceStatus = SequenceStatus.ACTIVE
    steps: list[Step] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    schema_version: int = SCHEMA_VERSION

    def step_at(self, index: int) -> Step | None:
        if 0 <= index < len(self.steps):
            return self.steps[index]
        return None

    def send_time_for(self, index: int, enrolled_at: datetime) -> datetime:
        """Scheduled send time of step ``index`` for a member enrolled at ``enrolled_at``."""
        step = self.steps[index]
        return enrolled_at + timedelta(minutes=step.offset_minutes)
