"""In-memory delivery service for tests and local runs."""

from __future__ import annotations

import itertools

from cadence.core.exceptions import DeliveryError


class MemoryDeliveryService:
    """IDeliveryService that records sends instead of delivering them."""

    def __init__(self, fail_times: int = 0, reject: set[str] | None = None) -> None:
        self.sent: list[dict[str, object]] = []
        self._fail_times = fail_times
        self._reject = reject or set()
        self._ids = itertools.count(1)

    def fail_next(self, times: int = 1) -> None:
        self._fail_times = times

    def reject(self, address: str) -> None:
        self._reject.add(address)

    def send(self, *, to: str, subject: str, body: str, html: str = "",
             metadata: dict[str, str] | None = None) -> str:
        if to in self._reject:
            raise DeliveryError(f"Recipient {to!r} rejected")
        if self._fail_times > 0:
            self._fail_times -= 1
            raise DeliveryError("Delivery service unavailable")
        delivery_id = f"dlv-{next(self._ids):06d}"
        self.sent.append({
            "delivery_id": delivery_id, "to": to, "subject": subject,
            "body": body, "html": html, "metadata": dict(metadata or {}),
        })
        return delivery_id
