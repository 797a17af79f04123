"""Periodic driver for bucket rotation and the half-open cooldown."""

from collections.abc import Callable

from rolling_breaker.circuit_breaker.clock import Scheduler, TimerHandle
from rolling_breaker.circuit_breaker.storage import BucketStore


class Ticker:
    """Rotate a bucket store on a fixed period until stopped.

    Every ``num_buckets + 1`` ticks (one full window of tick time) the
    ``on_window_elapsed`` hook runs; the breaker uses it to offer a probe
    when open.
    """

    def __init__(
        self,
        store: BucketStore,
        *,
        scheduler: Scheduler,
        period: float,
        on_window_elapsed: Callable[[], None],
    ) -> None:
        if period <= 0:
            raise ValueError("period must be > 0")
        self._store = store
        self._scheduler = scheduler
        self._period = period
        self._on_window_elapsed = on_window_elapsed
        self._ticks = 0
        self._handle: TimerHandle | None = None
        self._started = False
        self._stopped = False

    @property
    def period(self) -> float:
        return self._period

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> None:
        if self._started:
            raise RuntimeError("ticker already started")
        self._started = True
        self._schedule()

    def stop(self) -> bool:
        """Cancel the pending tick. Returns ``False`` when already stopped."""
        if self._stopped:
            return False
        self._stopped = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        return True

    def _schedule(self) -> None:
        self._handle = self._scheduler.call_later(self._period, self._tick)

    def _tick(self) -> None:
        if self._stopped:
            return
        self._store.rotate()
        self._ticks += 1
        if self._ticks > self._store.num_buckets:
            self._ticks = 0
            self._on_window_elapsed()
        if not self._stopped:
            self._schedule()
