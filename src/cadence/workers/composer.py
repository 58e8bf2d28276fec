"""Prompt assembly and draft parsing for sequence message generation."""

from __future__ import annotations

import html
import re

from cadence.core.exceptions import GenerationError
from cadence.models.pipeline import Message, MessageContent
from cadence.models.target import TargetProfile

SYSTEM_PROMPT = (
    "You are an expert email writer for business development in energy brokerage. "
    "Write professional, personalized emails that build relationships and drive engagement. "
    "Never use bracketed placeholders like {{name}}; use the contact and company details provided. "
    "Start your reply with a line of the form 'Subject: <subject line>' followed by the email body."
)

DEFAULT_SUBJECT = "Follow-up"
MAX_PREVIOUS = 3
PREVIEW_CHARS = 200

_SUBJECT_RE = re.compile(r"^\s*subject:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_LEADING_LABEL_RE = re.compile(r"^(email|message):\s*", re.IGNORECASE)


def build_prompt(message: Message, target: TargetProfile | None,
                 previous: list[Message] | None = None) -> list[dict[str, str]]:
    lines: list[str] = []
    if target is not None:
        if target.display_name:
            lines.append(f"Contact Name: {target.display_name}")
        if target.title:
            lines.append(f"Title: {target.title}")
        if target.company:
            lines.append(f"Company: {target.company}")
        if target.industry:
            lines.append(f"Industry: {target.industry}")
    if message.step_index > 0:
        lines.append(f"This is step {message.step_index + 1} of {message.total_steps} in our email sequence.")
    lines.append(message.prompt or "Write a short, friendly introduction email.")

    sent_before = [m for m in (previous or []) if m.content is not None][-MAX_PREVIOUS:]
    if sent_before:
        lines.append("")
        lines.append("Previous emails in this sequence:")
        for n, prior in enumerate(sent_before, start=1):
            lines.append(f"{n}. Subject: {prior.content.subject}")
            preview = prior.content.body[:PREVIEW_CHARS]
            if preview:
                lines.append(f"   Content: {preview}...")

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]


def to_html(body: str) -> str:
    paragraphs = [p for p in re.split(r"\n\s*\n", body) if p.strip()]
    return "".join(
        "<p>" + html.escape(p.strip()).replace("\n", "<br>") + "</p>" for p in paragraphs
    )


def parse_draft(text: str) -> MessageContent:
    """Split model output into subject, plain-text body and an HTML rendering.

    Raises:
        GenerationError: when the draft has no body.
    """
    match = _SUBJECT_RE.search(text or "")
    if match:
        subject = match.group(1).strip()
        body = (text[:match.start()] + text[match.end():]).strip()
    else:
        subject = DEFAULT_SUBJECT
        body = (text or "").strip()
    body = _LEADING_LABEL_RE.sub("", body).strip()
    if not body:
        raise GenerationError("Model returned an empty draft")
    return MessageContent(subject=subject or DEFAULT_SUBJECT, body=body, html=to_html(body))
