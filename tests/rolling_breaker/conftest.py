from __future__ import annotations

from collections.abc import Iterator

import pytest

from rolling_breaker.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    ManualScheduler,
)
from tests.rolling_breaker.support.fakes import FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Provide a virtual clock starting at zero."""
    return ManualScheduler()


@pytest.fixture
def breaker(
    scheduler: ManualScheduler, fake_logger: FakeLogger
) -> Iterator[CircuitBreaker]:
    """Provide a default-configured breaker on virtual time."""
    with CircuitBreaker(
        "svc",
        config=CircuitBreakerConfig(),
        scheduler=scheduler,
        logger=fake_logger,
    ) as instance:
        yield instance
