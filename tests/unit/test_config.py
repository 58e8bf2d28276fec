"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

from cadence.core.config import AppSettings, LLMConfig, WorkerConfig


def test_default_settings():
    settings = AppSettings()
    assert settings.environment == "dev"
    assert settings.llm.provider == "mock"
    assert settings.delivery.provider == "memory"
    assert settings.events.provider == "memory"


def test_llm_config_defaults():
    config = LLMConfig()
    assert config.provider == "mock"
    assert config.temperature == 0.7
    assert config.max_tokens == 1000


def test_worker_bounds_default():
    config = WorkerConfig()
    assert config.max_generation_attempts == 3
    assert config.max_delivery_attempts == 3
    assert config.reclaim_expired_leases is True
    assert config.page_size * config.max_pages == 100
    assert config.max_messages_per_run == 100


def test_worker_env_override(monkeypatch):
    monkeypatch.setenv("CADENCE_WORKER_TARGETS_PER_ACTIVATION_RUN", "2")
    monkeypatch.setenv("CADENCE_WORKER_RECLAIM_EXPIRED_LEASES", "false")
    config = WorkerConfig()
    assert config.targets_per_activation_run == 2
    assert config.reclaim_expired_leases is False


def test_root_env_override(monkeypatch):
    monkeypatch.setenv("CADENCE_LOG_FORMAT", "json")
    monkeypatch.setenv("CADENCE_PERSISTENCE", "memory")
    settings = AppSettings()
    assert settings.log_format == "json"
    assert settings.persistence == "memory"
