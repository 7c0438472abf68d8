"""Configuration management for the SQLite binding."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqlite_bridge.domain.services.marshaller import MAX_SAFE_INTEGER


class EngineConfig(BaseModel):
    """Engine library location."""

    library_path: str | None = Field(
        default=None,
        description="Explicit path to the SQLite shared library (searched when unset)",
    )


class ConnectionDefaults(BaseModel):
    """Defaults applied to every new connection and statement."""

    enable_foreign_keys: bool = Field(default=True, description="Enforce foreign keys")
    enable_double_quoted_string_literals: bool = Field(
        default=False, description="Accept double-quoted string literals in DML and DDL"
    )
    timeout_ms: int = Field(default=0, ge=0, description="Busy timeout in milliseconds")
    allow_extension: bool = Field(default=False, description="Permit extension loading")
    read_bigints: bool = Field(default=False, description="Return wide integers without range checks")
    return_arrays: bool = Field(default=False, description="Return rows as lists")
    allow_bare_named_parameters: bool = Field(
        default=False, description="Resolve named parameters given without their prefix"
    )


class MarshalConfig(BaseModel):
    """Value conversion limits."""

    max_safe_integer: int = Field(
        default=MAX_SAFE_INTEGER,
        ge=2**31 - 1,
        le=2**63 - 1,
        description="Largest magnitude returned for wide integers without opt-in",
    )


class BackupConfig(BaseModel):
    """Online backup defaults."""

    rate: int = Field(default=100, description="Pages copied per step (<= 0 copies all)")
    source_db: str = Field(default="main", description="Source schema name")
    target_db: str = Field(default="main", description="Destination schema name")
    busy_retry_delay_seconds: float = Field(
        default=0.005, ge=0.0, description="Pause before retrying a busy or locked step"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="sqlite_bridge", description="Service name for tracing")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class Config(BaseSettings):
    """Main configuration for the SQLite binding."""

    model_config = SettingsConfigDict(
        env_prefix="SQLITE_BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    connection: ConnectionDefaults = Field(default_factory=ConnectionDefaults)
    marshal: MarshalConfig = Field(default_factory=MarshalConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
