"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from cadence.core.config import AppSettings
from cadence.persistence.dynamodb_backend import DynamoDBSequenceStore, DynamoDBTargetDirectory
from cadence.persistence.memory_backend import (
    MemoryCacheBackend,
    MemoryEventPublisher,
    MemorySequenceStore,
    MemoryTargetDirectory,
)
from cadence.persistence.redis_backend import RedisCacheBackend, RedisEventPublisher


def create_persistence(settings: AppSettings | None = None):
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (store, cache, events, targets).
    """
    if settings is None:
        settings = AppSettings()

    if settings.events.provider == "redis":
        events = RedisEventPublisher(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            channel_prefix=settings.events.channel_prefix,
        )
    else:
        events = MemoryEventPublisher()

    if settings.persistence == "memory":
        return MemorySequenceStore(), MemoryCacheBackend(), events, MemoryTargetDirectory()

    cache = RedisCacheBackend(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
        key_prefix=settings.redis.key_prefix,
    )

    store = DynamoDBSequenceStore(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
        cache=cache,
        cache_ttl=settings.redis.sequence_cache_ttl,
    )

    targets = DynamoDBTargetDirectory(
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )

    return store, cache, events, targets
