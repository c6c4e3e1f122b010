"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
project risk engine, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class PipelineSettings(BaseSettings):
    """Data pipeline (fetch, retry, cache) settings."""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_", extra="ignore")

    on_chain_api_url: str = Field(
        default="http://localhost:3000/api/internal/blockchain",
        alias="PIPELINE_ON_CHAIN_API_URL",
        description="Base URL of the on-chain indexer API",
    )
    off_chain_api_url: str = Field(
        default="http://localhost:3000/api",
        alias="PIPELINE_OFF_CHAIN_API_URL",
        description="Base URL of the project metadata API",
    )
    cache_ttl_seconds: float = Field(
        default=300.0,
        alias="PIPELINE_CACHE_TTL_SECONDS",
        ge=0.0,
        le=86_400.0,
        description="How long fetched records stay cached",
    )
    cache_max_size: int = Field(
        default=500,
        alias="PIPELINE_CACHE_MAX_SIZE",
        ge=1,
        le=1_000_000,
        description="Maximum cached records before oldest-inserted eviction",
    )
    max_retries: int = Field(
        default=3,
        alias="PIPELINE_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries after the initial fetch attempt",
    )
    timeout_seconds: float = Field(
        default=8.0,
        alias="PIPELINE_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="Per-attempt fetch deadline",
    )
    retry_base_delay_seconds: float = Field(
        default=0.5,
        alias="PIPELINE_RETRY_BASE_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Backoff base delay (doubles with each retry)",
    )
    privacy_mode: bool = Field(
        default=False,
        alias="PIPELINE_PRIVACY_MODE",
        description="Redact individual contribution details from on-chain records",
    )

    @field_validator("on_chain_api_url", "off_chain_api_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class MonitorSettings(BaseSettings):
    """Continuous monitoring and alert threshold settings."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_", extra="ignore")

    default_interval_seconds: float = Field(
        default=60.0,
        alias="MONITOR_DEFAULT_INTERVAL_SECONDS",
        gt=0.0,
        le=86_400.0,
        description="Poll interval used when start_monitoring is not given one",
    )
    max_snapshots: int = Field(
        default=100,
        alias="MONITOR_MAX_SNAPSHOTS",
        ge=1,
        le=10_000,
        description="Snapshots retained per session (oldest dropped first)",
    )
    trend_window: int = Field(
        default=5,
        alias="MONITOR_TREND_WINDOW",
        ge=2,
        le=100,
        description="Snapshots considered for trend analysis",
    )
    heartbeat_seconds: float = Field(
        default=30.0,
        alias="MONITOR_HEARTBEAT_SECONDS",
        gt=0.0,
        le=3600.0,
        description="Heartbeat period for push-stream consumers",
    )
    critical_score_drop: float = Field(
        default=10.0,
        alias="MONITOR_CRITICAL_SCORE_DROP",
        gt=0.0,
        le=100.0,
        description="Score drop (points per cycle) raising a CRITICAL alert",
    )
    warning_score_drop: float = Field(
        default=5.0,
        alias="MONITOR_WARNING_SCORE_DROP",
        gt=0.0,
        le=100.0,
        description="Score drop (points per cycle) raising a WARNING alert",
    )
    score_improvement: float = Field(
        default=10.0,
        alias="MONITOR_SCORE_IMPROVEMENT",
        gt=0.0,
        le=100.0,
        description="Score gain (points per cycle) raising an INFO alert",
    )
    whale_concentration: float = Field(
        default=0.4,
        alias="MONITOR_WHALE_CONCENTRATION",
        ge=0.0,
        le=1.0,
        description="Largest-contributor share above which a whale alert is raised",
    )
    sentiment_floor: float = Field(
        default=0.35,
        alias="MONITOR_SENTIMENT_FLOOR",
        ge=0.0,
        le=1.0,
        description="Normalized sentiment below which a sentiment alert is raised",
    )

    @field_validator("warning_score_drop")
    @classmethod
    def validate_warning_drop(cls, v: float, info: ValidationInfo) -> float:
        critical = info.data.get("critical_score_drop")
        if critical is not None and v > critical:
            raise ValueError("MONITOR_WARNING_SCORE_DROP must not exceed MONITOR_CRITICAL_SCORE_DROP")
        return v


class ModelSettings(BaseSettings):
    """Scoring model calibration settings."""

    model_config = SettingsConfigDict(env_prefix="MODEL_", extra="ignore")

    config_path: Path | None = Field(
        default=None,
        alias="MODEL_CONFIG_PATH",
        description="Optional JSON calibration file overriding the built-in model config",
    )


class RedisSettings(BaseSettings):
    """Redis connection settings (optional alert/snapshot stream sink)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; leave unset to disable stream publishing",
    )
    stream_maxlen: int = Field(
        default=10_000,
        alias="REDIS_STREAM_MAXLEN",
        ge=1,
        le=10_000_000,
        description="Approximate max entries kept per Redis stream",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v

    @property
    def enabled(self) -> bool:
        """Check if stream publishing is enabled."""
        return self.url is not None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from project_risk_engine.config import get_settings

        settings = get_settings()
        print(settings.pipeline.timeout_seconds)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    pipeline: PipelineSettings = Field(
        default_factory=lambda: PipelineSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    monitor: MonitorSettings = Field(
        default_factory=lambda: MonitorSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    model: ModelSettings = Field(
        default_factory=lambda: ModelSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "pipeline": {
                "on_chain_api_url": self.pipeline.on_chain_api_url,
                "off_chain_api_url": self.pipeline.off_chain_api_url,
                "cache_ttl_seconds": str(self.pipeline.cache_ttl_seconds),
                "max_retries": str(self.pipeline.max_retries),
                "timeout_seconds": str(self.pipeline.timeout_seconds),
                "privacy_mode": str(self.pipeline.privacy_mode),
            },
            "monitor": {
                "default_interval_seconds": str(self.monitor.default_interval_seconds),
                "max_snapshots": str(self.monitor.max_snapshots),
            },
            "model_config_path": str(self.model.config_path) if self.model.config_path else "(built-in)",
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
