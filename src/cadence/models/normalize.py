"""Read-boundary normalization of legacy record shapes.

Older writers stored the same concept under several names (``contactIds`` vs
``targetIds``, ``delayMinutes`` vs ``offsetMinutes``...). Items are upgraded
here, once, before pydantic validation so the rest of the code only sees the
current schema.
"""

from __future__ import annotations

from typing import Any

from cadence.models.base import SCHEMA_VERSION

_TASK_STEP_TYPES = frozenset({
    "phone-call", "li-connect", "li-message", "li-view-profile", "li-interact-post", "task",
})

_LEGACY_MESSAGE_STATUS = {"error": "failed", "rejected": "failed", "cancelled": "failed"}


def normalize_owner(value: Any) -> str:
    text = str(value or "").strip().lower()
    return text or "unassigned"


def _rename(item: dict[str, Any], old: str, new: str) -> None:
    if old in item and new not in item:
        item[new] = item.pop(old)
    else:
        item.pop(old, None)


def _owner(item: dict[str, Any]) -> None:
    _rename(item, "userId", "ownerId")
    item["ownerId"] = normalize_owner(item.get("ownerId"))


def normalize_step(step: dict[str, Any]) -> dict[str, Any]:
    out = dict(step)
    _rename(out, "type", "stepType")
    _rename(out, "delayMinutes", "offsetMinutes")
    step_type = out.get("stepType") or "auto-message"
    if step_type == "auto-email":
        step_type = "auto-message"
    elif step_type in _TASK_STEP_TYPES:
        step_type = "manual-task"
    out["stepType"] = step_type
    if not out.get("prompt"):
        settings = out.get("emailSettings") or {}
        data = out.get("data") or {}
        prompt = settings.get("aiPrompt") or data.get("aiPrompt") or out.get("aiPrompt") or ""
        out["prompt"] = prompt
    for key in ("emailSettings", "data", "aiPrompt"):
        out.pop(key, None)
    return out


def normalize_sequence(item: dict[str, Any]) -> dict[str, Any]:
    out = dict(item)
    _owner(out)
    out["steps"] = [normalize_step(s) for s in out.get("steps") or []]
    out["schemaVersion"] = SCHEMA_VERSION
    return out


def normalize_activation(item: dict[str, Any]) -> dict[str, Any]:
    out = dict(item)
    _rename(out, "contactIds", "targetIds")
    _rename(out, "processedContacts", "processedCount")
    _rename(out, "retryCount", "attemptCount")
    _owner(out)
    legacy_failed = out.pop("failedContactIds", None) or []
    if legacy_failed:
        skipped = list(out.get("skipped") or [])
        skipped.extend({"recordId": t, "reason": "target has no email address"} for t in legacy_failed)
        out["skipped"] = skipped
    out["schemaVersion"] = SCHEMA_VERSION
    return out


def normalize_member(item: dict[str, Any]) -> dict[str, Any]:
    out = dict(item)
    _rename(out, "contactId", "targetId")
    _rename(out, "currentStep", "currentStepIndex")
    if "enrolledAt" not in out and "createdAt" in out:
        out["enrolledAt"] = out["createdAt"]
    out.pop("createdAt", None)
    _owner(out)
    out["schemaVersion"] = SCHEMA_VERSION
    return out


def normalize_message(item: dict[str, Any]) -> dict[str, Any]:
    out = dict(item)
    _rename(out, "contactId", "targetId")
    _owner(out)
    status = out.get("status")
    out["status"] = _LEGACY_MESSAGE_STATUS.get(status, status)
    if out.get("content") is None and out.get("subject"):
        out["content"] = {
            "subject": out.get("subject", ""),
            "body": out.get("text") or out.get("body") or "",
            "html": out.get("html") or "",
        }
    for key in ("subject", "text", "html", "body", "type", "aiPrompt"):
        out.pop(key, None)
    out["schemaVersion"] = SCHEMA_VERSION
    return out
