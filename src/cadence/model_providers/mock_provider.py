"""Mock model provider for local development and testing.

Returns canned drafts. No real LLM calls.
"""

from __future__ import annotations

from typing import Any

from cadence.core.exceptions import GenerationError

DEFAULT_DRAFT = (
    "Subject: Quick question about your energy contract\n\n"
    "Hi there,\n\nI noticed your current supply agreement may be up for renewal soon. "
    "Would a short call next week to compare fixed-rate options be useful?\n\nBest regards"
)


class MockModelProvider:
    """IModelProvider implementation that returns deterministic drafts."""

    def __init__(self, default_response: str = DEFAULT_DRAFT, fail_times: int = 0) -> None:
        self._default_response = default_response
        self._canned_responses: dict[str, str] = {}
        self._fail_times = fail_times
        self.calls: list[list[dict[str, str]]] = []

    def set_response(self, prompt_contains: str, response: str) -> None:
        """Register a canned response for prompts containing a keyword."""
        self._canned_responses[prompt_contains] = response

    def fail_next(self, times: int = 1) -> None:
        self._fail_times = times

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        self.calls.append(messages)
        if self._fail_times > 0:
            self._fail_times -= 1
            raise GenerationError("Mock provider failure")
        last_content = messages[-1].get("content", "") if messages else ""
        for keyword, response in self._canned_responses.items():
            if keyword in last_content:
                return response
        return self._default_response
