from __future__ import annotations

from collections.abc import Mapping

import structlog
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rolling_breaker.circuit_breaker.breaker import (
    CircuitBreakerConfig,
    ErrorFilter,
    MetricsCallback,
)
from rolling_breaker.logging import configure_structlog, get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven circuit breaker tunables."""

    model_config = prefixed_settings_config("CIRCUIT_BREAKER_")

    window_duration: float = 10.0
    num_buckets: int = 10
    timeout_duration: float = 3.0
    error_threshold: float = 50.0
    volume_threshold: int = 5
    cancel_on_timeout: bool = False
    notify_open_on_probe_failure: bool = True
    record_while_forced: bool = True
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        self.to_config()
        return self

    def to_config(
        self,
        *,
        error_filter: ErrorFilter | None = None,
        on_circuit_open: MetricsCallback | None = None,
        on_circuit_close: MetricsCallback | None = None,
    ) -> CircuitBreakerConfig:
        """Build a ``CircuitBreakerConfig`` from these settings plus callables."""
        config = CircuitBreakerConfig(
            window_duration=self.window_duration,
            num_buckets=self.num_buckets,
            timeout_duration=self.timeout_duration,
            error_threshold=self.error_threshold,
            volume_threshold=self.volume_threshold,
            cancel_on_timeout=self.cancel_on_timeout,
            notify_open_on_probe_failure=self.notify_open_on_probe_failure,
            record_while_forced=self.record_while_forced,
        )
        if error_filter is not None:
            config.error_filter = error_filter
        if on_circuit_open is not None:
            config.on_circuit_open = on_circuit_open
        if on_circuit_close is not None:
            config.on_circuit_close = on_circuit_close
        return config

    def configure_logging(
        self,
        *,
        static_context: Mapping[str, object] | None = None,
    ) -> structlog.stdlib.BoundLogger:
        """Configure structlog at ``log_level`` and return the root logger."""
        return configure_structlog(
            log_level=self.log_level,
            static_context=static_context,
        )
