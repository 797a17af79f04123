from __future__ import annotations

import logging
import sys
from typing import Any, cast

import pytest
from pydantic import ValidationError

from rolling_breaker.circuit_breaker import Metrics, ignore_exceptions
from rolling_breaker.settings import BreakerSettings


def _build_settings(**overrides: object) -> BreakerSettings:
    return BreakerSettings(**cast(Any, overrides))


def test_breaker_settings_defaults_match_config_defaults() -> None:
    config = _build_settings().to_config()

    assert config.window_duration == 10.0
    assert config.num_buckets == 10
    assert config.timeout_duration == 3.0
    assert config.error_threshold == 50.0
    assert config.volume_threshold == 5
    assert config.cancel_on_timeout is False
    assert config.notify_open_on_probe_failure is True
    assert config.record_while_forced is True
    assert config.bucket_duration == 1.0


def test_breaker_settings_read_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CIRCUIT_BREAKER_WINDOW_DURATION", "20")
    monkeypatch.setenv("circuit_breaker_num_buckets", "4")
    monkeypatch.setenv("CIRCUIT_BREAKER_ERROR_THRESHOLD", "75")
    monkeypatch.setenv("CIRCUIT_BREAKER_RECORD_WHILE_FORCED", "false")

    settings = BreakerSettings()

    assert settings.window_duration == 20.0
    assert settings.num_buckets == 4
    assert settings.error_threshold == 75.0
    assert settings.record_while_forced is False
    assert settings.to_config().bucket_duration == 5.0


def test_breaker_settings_normalizes_log_level() -> None:
    assert _build_settings(log_level=" debug ").log_level == "DEBUG"


def test_breaker_settings_rejects_unknown_log_level() -> None:
    with pytest.raises(ValidationError):
        _build_settings(log_level="TRACE")


@pytest.mark.parametrize(
    "overrides",
    [
        {"window_duration": 0},
        {"num_buckets": 0},
        {"timeout_duration": -1},
        {"error_threshold": 101},
        {"volume_threshold": -1},
    ],
)
def test_breaker_settings_rejects_invalid_tunables(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        _build_settings(**overrides)


def test_to_config_attaches_callables() -> None:
    opened: list[Metrics] = []
    error_filter = ignore_exceptions(KeyError)

    config = _build_settings().to_config(
        error_filter=error_filter,
        on_circuit_open=opened.append,
    )

    assert config.error_filter is error_filter
    config.on_circuit_open(Metrics(total_count=6, error_count=6, error_percentage=100))
    assert len(opened) == 1
    assert config.on_circuit_close(opened[0]) is None


def test_breaker_settings_report_config_validation_errors() -> None:
    with pytest.raises(ValidationError, match="num_buckets must be >= 1"):
        _build_settings(num_buckets=0)


def test_configure_logging_applies_settings_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
    monkeypatch.setenv("CIRCUIT_BREAKER_LOG_LEVEL", "warning")

    logger = BreakerSettings().configure_logging(static_context={"service": "billing"})

    assert logger is not None
    assert logging.getLogger().level == logging.WARNING
