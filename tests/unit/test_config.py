"""Tests for configuration loading."""

import pytest

from flowrelay import persistence
from flowrelay.config import load_config
from flowrelay.exceptions import ConfigurationError
from flowrelay.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
)
from flowrelay.transports import InMemoryTransport, get_transport
from flowrelay.transports.redis import RedisTransport


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "FLOWRELAY_TRANSPORT",
        "FLOWRELAY_DATABASE_URL",
        "DATABASE_URL",
        "FLOWRELAY_KAFKA_BROKERS",
        "FLOWRELAY_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


def test_defaults_without_config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWRELAY_CONFIG", str(tmp_path / "missing.yaml"))

    config = load_config()

    assert config.transport.backend == "inmemory"
    assert config.transport.topic == "zap-events"
    assert config.transport.kafka.group_id == "main-worker"
    assert config.relay.batch_size == 10
    assert config.worker.stage_delay == 1.0
    assert config.database_url is None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  topic: stages
  redis:
    host: testhost
    port: 1234
relay:
  batch_size: 50
executors:
  timeout: 5
  strict_templates: true
"""
    )
    monkeypatch.setenv("FLOWRELAY_CONFIG", str(config_path))

    config = load_config()
    assert config.transport.backend == "redis"
    assert config.transport.topic == "stages"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.relay.batch_size == 50
    assert config.executors.timeout == 5
    assert config.executors.strict_templates is True


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWRELAY_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("DATABASE_URL", "sqlite:///tmp/runs.db")
    monkeypatch.setenv("FLOWRELAY_KAFKA_BROKERS", "k1:9092, k2:9092")
    monkeypatch.setenv("FLOWRELAY_LOG_LEVEL", "DEBUG")

    config = load_config()

    assert config.database_url == "sqlite:///tmp/runs.db"
    assert config.transport.kafka.brokers == ["k1:9092", "k2:9092"]
    assert config.log_level == "DEBUG"


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
"""
    )
    monkeypatch.setenv("FLOWRELAY_CONFIG", str(config_path))

    transport = get_transport()
    assert isinstance(transport, RedisTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380


def test_get_transport_env_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWRELAY_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("FLOWRELAY_TRANSPORT", "inmemory")

    assert isinstance(get_transport(), InMemoryTransport)


def test_get_transport_kafka(tmp_path, monkeypatch):
    pytest.importorskip("aiokafka")
    from flowrelay.transports.kafka import KafkaTransport

    monkeypatch.setenv("FLOWRELAY_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("FLOWRELAY_KAFKA_BROKERS", "broker:9092")

    transport = get_transport("kafka")
    assert isinstance(transport, KafkaTransport)
    assert transport.brokers == ["broker:9092"]
    assert transport.group_id == "main-worker"


def test_unsupported_transport(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWRELAY_CONFIG", str(tmp_path / "missing.yaml"))

    with pytest.raises(ConfigurationError, match="Unsupported transport backend"):
        get_transport("carrier-pigeon")


def test_get_repository_defaults_to_memory(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWRELAY_CONFIG", str(tmp_path / "missing.yaml"))

    repo = get_repository()

    assert isinstance(repo, InMemoryWorkflowRepository)
    assert get_repository() is repo


def test_get_repository_sqlite(tmp_path):
    repo = get_repository(f"sqlite://{tmp_path / 'runs.db'}")

    assert isinstance(repo, SQLiteWorkflowRepository)


def test_get_repository_unsupported():
    with pytest.raises(ConfigurationError, match="Unsupported database backend"):
        get_repository("mysql://localhost/db")
