"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class LLMConfig(BaseSettings):
    """Content generation provider configuration."""

    model_config = {"env_prefix": "CADENCE_LLM_"}

    provider: Literal["mock", "bedrock"] = "mock"
    bedrock_model: str = "anthropic.claude-3-5-haiku-20241022-v1:0"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1000


class DynamoDBConfig(BaseSettings):
    """DynamoDB configuration."""

    model_config = {"env_prefix": "CADENCE_DYNAMO_"}

    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class RedisConfig(BaseSettings):
    """Redis cache and pub/sub configuration."""

    model_config = {"env_prefix": "CADENCE_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    key_prefix: str = ""  # namespaces cache keys when environments share a Redis
    sequence_cache_ttl: int = 3600


class DeliveryConfig(BaseSettings):
    """Outbound delivery service configuration."""

    model_config = {"env_prefix": "CADENCE_DELIVERY_"}

    provider: Literal["memory", "ses"] = "memory"
    from_email: str = "noreply@example.com"
    from_name: str = "Sales Team"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    configuration_set: str | None = None


class EventsConfig(BaseSettings):
    """Pipeline notification channel configuration."""

    model_config = {"env_prefix": "CADENCE_EVENTS_"}

    provider: Literal["memory", "redis"] = "memory"
    channel_prefix: str = "cadence"


class WorkerConfig(BaseSettings):
    """Per-tick bounds, lease lengths, and retry limits for the pipeline workers."""

    model_config = {"env_prefix": "CADENCE_WORKER_"}

    page_size: int = 25
    max_pages: int = 4
    max_activations_per_run: int = 5
    targets_per_activation_run: int = 25
    max_messages_per_run: int = 100  # claims per generation or dispatch tick

    activation_lease_seconds: int = 300
    generation_lease_seconds: int = 600
    dispatch_lease_seconds: int = 300
    reclaim_expired_leases: bool = True

    max_generation_attempts: int = 3
    max_delivery_attempts: int = 3

    stale_activation_seconds: int = 900
    sweep_before_generation: bool = True


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "CADENCE_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    persistence: Literal["memory", "dynamodb"] = "dynamodb"

    llm: LLMConfig = LLMConfig()
    dynamodb: DynamoDBConfig = DynamoDBConfig()
    redis: RedisConfig = RedisConfig()
    delivery: DeliveryConfig = DeliveryConfig()
    events: EventsConfig = EventsConfig()
    worker: WorkerConfig = WorkerConfig()
