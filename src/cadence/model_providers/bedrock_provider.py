"""Bedrock model provider using the Converse API."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cadence.core.exceptions import GenerationError


class BedrockModelProvider:
    """IModelProvider backed by ``bedrock-runtime`` ``converse``."""

    def __init__(self, model_id: str, region: str = "us-east-1", endpoint_url: str | None = None,
                 temperature: float = 0.7, max_tokens: int = 1000) -> None:
        self._model_id = model_id
        self._temperature = temperature
        self._max_tokens = max_tokens
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("bedrock-runtime", **kwargs)

    def chat(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        system = [{"text": m["content"]} for m in messages if m.get("role") == "system"]
        turns = [
            {"role": m["role"], "content": [{"text": m["content"]}]}
            for m in messages if m.get("role") in ("user", "assistant")
        ]
        request: dict[str, Any] = {
            "modelId": self._model_id,
            "messages": turns,
            "inferenceConfig": {
                "temperature": kwargs.get("temperature", self._temperature),
                "maxTokens": kwargs.get("max_tokens", self._max_tokens),
            },
        }
        if system:
            request["system"] = system
        try:
            resp = self._client.converse(**request)
        except (ClientError, BotoCoreError) as exc:
            raise GenerationError(f"Bedrock converse failed for {self._model_id}: {exc}") from exc

        blocks = resp.get("output", {}).get("message", {}).get("content", [])
        text = "".join(b.get("text", "") for b in blocks).strip()
        if not text:
            raise GenerationError(f"Bedrock returned no text (stopReason={resp.get('stopReason')})")
        return text
