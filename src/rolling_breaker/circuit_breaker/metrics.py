"""Rolling-window metrics and observability hooks for circuit breakers."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from rolling_breaker.circuit_breaker.state import CircuitState
from rolling_breaker.circuit_breaker.storage import Bucket


@dataclass(frozen=True)
class Metrics:
    """Aggregated outcome counts over the retained buckets.

    Attributes:
        total_count: Successes, failures and timeouts across the window.
        error_count: Failures and timeouts across the window.
        error_percentage: ``error_count`` as a percentage of ``total_count``.
    """

    total_count: int
    error_count: int
    error_percentage: float


def calculate_metrics(buckets: Iterable[Bucket]) -> Metrics:
    """Aggregate bucket counters.

    Ignored failures and short circuits are not part of either count.
    """
    total_count = 0
    error_count = 0
    for bucket in buckets:
        errors = bucket.failures + bucket.timeouts
        error_count += errors
        total_count += errors + bucket.successes

    error_percentage = error_count / max(total_count, 1) * 100
    return Metrics(
        total_count=total_count,
        error_count=error_count,
        error_percentage=error_percentage,
    )


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Hooks run synchronously on the event loop, from inside the breaker's
        bookkeeping step. Exceptions raised by a listener are logged and
        skipped.
    """

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    def on_call_succeeded(self, name: str) -> None:
        """Handle successful protected call completion."""

    def on_call_failed(self, name: str, exc: BaseException, ignored: bool) -> None:
        """Handle failed protected call completion."""

    def on_call_timed_out(self, name: str) -> None:
        """Handle a protected call exceeding its deadline."""
