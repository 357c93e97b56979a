from __future__ import annotations

from collections.abc import Mapping

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from circuit_guard.circuit_breaker.breaker import CircuitBreakerConfig
from circuit_guard.logging import configure_structlog, get_log_level_value

DEFAULT_ENV_PREFIX = "CIRCUIT_BREAKER_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven breaker thresholds and log level.

    Values are read from ``CIRCUIT_BREAKER_*`` variables. Services that run
    several breakers can subclass with their own ``prefixed_settings_config``.
    """

    model_config = prefixed_settings_config(DEFAULT_ENV_PREFIX)

    failure_threshold: int = 5
    success_threshold: int = 2
    duration_of_break_ms: int = 30_000
    log_level: str = "INFO"

    @field_validator(
        "failure_threshold",
        "success_threshold",
        "duration_of_break_ms",
    )
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    def configure_logging(
        self, *, static_fields: Mapping[str, object] | None = None
    ) -> structlog.stdlib.BoundLogger:
        """Configure structlog at ``log_level`` for breaker log events."""
        return configure_structlog(
            log_level=self.log_level, static_fields=static_fields
        )

    def to_config(self) -> CircuitBreakerConfig:
        """Build the breaker configuration described by these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            duration_of_break_ms=self.duration_of_break_ms,
        )
