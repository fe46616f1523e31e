from __future__ import annotations

import os
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_CLIENT_ID,
    DEFAULT_EXECUTOR_TIMEOUT,
    DEFAULT_GROUP_ID,
    DEFAULT_OUTBOX_BATCH_SIZE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STAGE_DELAY,
    DEFAULT_TOPIC,
)


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    consumer: str = DEFAULT_GROUP_ID


class KafkaConfig(BaseModel):
    """Configuration for Kafka transport."""

    brokers: List[str] = Field(default_factory=lambda: ["localhost:9092"])
    group_id: str = DEFAULT_GROUP_ID
    client_id: str = DEFAULT_CLIENT_ID


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis", "kafka"] = "inmemory"
    topic: str = DEFAULT_TOPIC
    redis: RedisConfig = RedisConfig()
    kafka: KafkaConfig = KafkaConfig()


class WorkerConfig(BaseModel):
    """Stage executor settings."""

    stage_delay: float = DEFAULT_STAGE_DELAY


class RelayConfig(BaseModel):
    """Outbox relay settings."""

    batch_size: int = DEFAULT_OUTBOX_BATCH_SIZE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_backoff: float = 30.0


class ExecutorConfig(BaseModel):
    """Settings shared by the action executors."""

    timeout: float = DEFAULT_EXECUTOR_TIMEOUT
    strict_templates: bool = False
    gemini_model: str = "gemini-2.5-flash"
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465
    resend_api_url: str = "https://api.resend.com/emails"
    telegram_api_url: str = "https://api.telegram.org"


class FlowRelayConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    worker: WorkerConfig = WorkerConfig()
    relay: RelayConfig = RelayConfig()
    executors: ExecutorConfig = ExecutorConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> FlowRelayConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWRELAY_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("FLOWRELAY_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FlowRelayConfig(**data)
    else:
        config = FlowRelayConfig()

    env_db_url = os.getenv("FLOWRELAY_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url

    env_brokers = os.getenv("FLOWRELAY_KAFKA_BROKERS")
    if env_brokers:
        config.transport.kafka.brokers = [
            broker.strip() for broker in env_brokers.split(",") if broker.strip()
        ]

    env_level = os.getenv("FLOWRELAY_LOG_LEVEL")
    if env_level:
        config.log_level = env_level
    return config
