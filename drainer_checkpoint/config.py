"""Configuration management for the drainer checkpoint store."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9000
DEFAULT_SCHEMA = "tidb_binlog"
DEFAULT_TABLE = "checkpoint"


class Settings(BaseSettings):
    """Checkpoint settings read from ``DRAINER_CHECKPOINT_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DRAINER_CHECKPOINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    driver: str = Field("clickhouse+native", description="SQLAlchemy dialect+driver name")
    host: str = Field(DEFAULT_HOST, description="Backend host, or a comma separated host:port list")
    port: int = Field(DEFAULT_PORT, ge=0, description="Backend port used when host carries none")
    user: str = Field("default", description="Backend user")
    password: str = Field("", description="Backend password")
    database_url: Optional[str] = Field(None, description="Explicit SQLAlchemy URL, overrides driver/host/port")
    schema_name: str = Field(DEFAULT_SCHEMA, description="Schema (database) holding the checkpoint table")
    table_name: str = Field(DEFAULT_TABLE, description="Checkpoint table name")

    # Checkpoint
    cluster_id: int = Field(0, ge=0, le=2**64 - 1, description="Partition key of this pipeline instance (uint64)")
    initial_commit_ts: int = Field(0, description="Commit timestamp used when nothing is stored")
    save_interval_seconds: float = Field(3.0, ge=0.0, description="Minimum time between saves")

    # Service
    log_level: str = Field("INFO", description="Python logging level")
    log_file: Optional[Path] = Field(None, description="Optional rotating log file")
    enable_metrics: bool = Field(True, description="Whether to expose Prometheus metrics")

    @field_validator("host", "schema_name", "table_name", mode="before")
    @classmethod
    def _blank_to_default(cls, value, info):  # type: ignore[override]
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("port", mode="before")
    @classmethod
    def _zero_port_to_default(cls, value):  # type: ignore[override]
        if value in (None, "", 0, "0"):
            return DEFAULT_PORT
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings", "DEFAULT_HOST", "DEFAULT_PORT", "DEFAULT_SCHEMA", "DEFAULT_TABLE"]
