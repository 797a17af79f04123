"""Circuit breaker state primitives."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rolling_breaker.circuit_breaker.metrics import Metrics
    from rolling_breaker.circuit_breaker.storage import Bucket


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class ForcedState:
    """Manual override pinned on top of the automatic state.

    Attributes:
        pinned: State used for short-circuit decisions while forced.
        saved: Automatic state at the moment the override was applied.
    """

    pinned: CircuitState
    saved: CircuitState


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Effective state (forced if present, else automatic).
        automatic_state: State driven by the rolling statistics.
        forced: Active manual override, if any.
        metrics: Aggregated counts over the retained window.
        bucket_count: Number of retained buckets, active one included.
        active_bucket: Copy of the bucket currently receiving counts.
    """

    name: str
    state: CircuitState
    automatic_state: CircuitState
    forced: ForcedState | None
    metrics: Metrics
    bucket_count: int
    active_bucket: Bucket
