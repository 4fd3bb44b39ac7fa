"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``HOOKRELAY_``, nested via ``__``)
2. YAML config file (``--config path`` or ``HOOKRELAY_CONFIG_PATH`` env var)
3. Defaults defined here

Durations handed to the relay pipeline (TTL, retry intervals, HTTP timeouts) are
expressed in milliseconds; cron periods are expressed in seconds.
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported repository backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class HandshakeProof(enum.StrEnum):
    """How a webhook consumer proves it controls the subscription URL."""

    HMAC = "hmac"
    ECHO = "echo"


class Coordinator(enum.StrEnum):
    """Cluster coordinator backend."""

    MEMORY = "memory"
    REDIS = "redis"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3003
    log_level: str = "info"


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Repository backend: memory, sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./hookrelay.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class SubscriptionsConfig(BaseSettings):
    """Subscription lifecycle and handshake settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_SUBSCRIPTIONS__",
        case_sensitive=False,
    )

    ttl: int = Field(default=60_000, ge=0, description="Default subscription TTL (ms)")
    max_handshake_tries: int = Field(default=5, ge=1)
    handshake_retry_interval: int = Field(default=5_000, ge=0, description="ms")
    handshake_timeout: int = Field(default=10_000, gt=0, description="ms")
    handshake_proof: HandshakeProof = HandshakeProof.HMAC


class NotificationsConfig(BaseSettings):
    """Notification delivery settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_NOTIFICATIONS__",
        case_sensitive=False,
    )

    max_tries: int = Field(default=5, ge=1)
    retry_interval: int = Field(default=5_000, ge=0, description="ms")
    timeout: int = Field(default=10_000, gt=0, description="ms")
    max_concurrent: int = Field(default=10, ge=1)


class TaskConfig(BaseSettings):
    """Background recovery job settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_TASK__",
        case_sensitive=False,
    )

    enabled: bool = True
    replay_period: float = 60.0
    replay_grace: float = 30.0
    expiry_period: float = 60.0
    metrics_period: float = 15.0


class ClusterConfig(BaseSettings):
    """Pub/sub and distributed locking settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_CLUSTER__",
        case_sensitive=False,
    )

    coordinator: Coordinator = Coordinator.MEMORY
    redis_url: str = "redis://localhost:6379/1"
    prefix: str = "hookrelay_"
    claim_ttl: int = Field(default=3600, ge=1, description="Seconds a published event id stays claimed")


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``HOOKRELAY_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOOKRELAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    subscriptions: SubscriptionsConfig = Field(default_factory=SubscriptionsConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    task: TaskConfig = Field(default_factory=TaskConfig)
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
