"""Contact/account context for a sequence target, read from the CRM."""

from __future__ import annotations

from typing import Optional

from cadence.models.base import Record


class TargetProfile(Record):
    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    title: str = ""
    company: str = ""
    account_id: Optional[str] = None
    industry: str = ""

    @property
    def display_name(self) -> str:
        if self.first_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.name
