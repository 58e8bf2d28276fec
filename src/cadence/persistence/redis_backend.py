"""Redis backends: the sequence/UI cache and the pipeline event channel."""

from __future__ import annotations

import json
from typing import Any, Callable, TypeVar

import redis

from cadence.core.exceptions import CacheError, CadenceError, EventPublishError

T = TypeVar("T")


class _RedisBackend:
    error_cls: type[CadenceError] = CacheError

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0) -> None:
        self._client = redis.Redis(host=host, port=port, db=db, decode_responses=True)

    def _call(self, op: str, target: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except Exception as exc:
            raise self.error_cls(f"Redis {op} failed for {target!r}: {exc}") from exc

    def ping(self) -> bool:
        return bool(self._call("PING", "server", self._client.ping))


class RedisCacheBackend(_RedisBackend):
    """ICacheBackend over Redis string keys, optionally namespaced by ``key_prefix``."""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 key_prefix: str = "") -> None:
        super().__init__(host, port, db)
        self._prefix = f"{key_prefix}:" if key_prefix else ""

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> str | None:
        return self._call("GET", key, lambda: self._client.get(self._key(key)))

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._call("SETEX", key, lambda: self._client.setex(self._key(key), ttl, value))

    def delete(self, key: str) -> None:
        self._call("DELETE", key, lambda: self._client.delete(self._key(key)))


class RedisEventPublisher(_RedisBackend):
    """Publishes JSON events on ``{prefix}:{topic}`` pub/sub channels."""

    error_cls = EventPublishError

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 channel_prefix: str = "cadence") -> None:
        super().__init__(host, port, db)
        self._prefix = channel_prefix

    def channel(self, topic: str) -> str:
        return f"{self._prefix}:{topic}"

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        data = json.dumps({"topic": topic, **payload}, default=str)
        self._call("PUBLISH", topic, lambda: self._client.publish(self.channel(topic), data))
