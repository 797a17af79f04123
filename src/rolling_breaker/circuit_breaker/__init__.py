"""Framework-agnostic async circuit breaker over a rolling statistics window.

Key behavior notes:
  - Outcomes are counted into time-sliced buckets. The circuit opens once the
    window holds more than ``volume_threshold`` calls and the error
    percentage exceeds ``error_threshold``.
  - ``HALF_OPEN`` is only entered from ``OPEN`` by the bucket ticker, once per
    full window of tick time. The next recorded outcome decides between
    ``CLOSED`` and ``OPEN``.
  - A forced state overrides short-circuit decisions and suspends automatic
    transitions. Outcomes are still counted unless ``record_while_forced``
    is disabled.
  - Every breaker owns a periodic ticker; call ``destroy()`` (or use the
    breaker as a context manager) to release it.
"""

from rolling_breaker.circuit_breaker.adapters import callback_command
from rolling_breaker.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    ignore_exceptions,
)
from rolling_breaker.circuit_breaker.clock import (
    LoopScheduler,
    ManualScheduler,
    Scheduler,
)
from rolling_breaker.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
    CircuitTimeoutError,
    CommandFailedError,
)
from rolling_breaker.circuit_breaker.metrics import (
    BreakerListener,
    Metrics,
    calculate_metrics,
)
from rolling_breaker.circuit_breaker.state import (
    BreakerSnapshot,
    CircuitState,
    ForcedState,
)
from rolling_breaker.circuit_breaker.storage import Bucket, BucketStore

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "Bucket",
    "BucketStore",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "CircuitTimeoutError",
    "CommandFailedError",
    "ForcedState",
    "LoopScheduler",
    "ManualScheduler",
    "Metrics",
    "Scheduler",
    "calculate_metrics",
    "callback_command",
    "ignore_exceptions",
]
