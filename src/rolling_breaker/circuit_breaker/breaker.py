"""Core circuit breaker implementation."""

import asyncio
import inspect
import sys
import threading
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Literal, TypeVar

from rolling_breaker.circuit_breaker.clock import LoopScheduler, Scheduler
from rolling_breaker.circuit_breaker.exceptions import (
    CircuitOpenError,
    CircuitTimeoutError,
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
from rolling_breaker.circuit_breaker.ticker import Ticker
from rolling_breaker.logging import (
    StructuredLogger,
    get_component_logger,
    log_exception,
    log_info,
    log_warning,
)

T = TypeVar("T")

Command = Callable[[], Awaitable[T] | T]
ErrorFilter = Callable[[BaseException], bool]
MetricsCallback = Callable[[Metrics], None]

_Counter = Literal["successes", "failures", "timeouts", "ignores"]


def _count_every_error(_: BaseException) -> bool:
    return True


def _ignore_metrics(_: Metrics) -> None:
    return None


def ignore_exceptions(*exc_types: type[BaseException]) -> ErrorFilter:
    """Build an error filter that excludes ``exc_types`` from error accounting.

    Excluded failures are still raised to the caller and counted as ignores.
    """

    def _error_filter(exc: BaseException) -> bool:
        return not isinstance(exc, exc_types)

    return _error_filter


class _MutationLock:
    """Serialize increment-and-evaluate steps when the GIL is disabled."""

    def __init__(self) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.RLock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.RLock()

    def __enter__(self) -> None:
        if self._thread_lock is not None:
            self._thread_lock.acquire()

    def __exit__(self, *exc_info: object) -> None:
        if self._thread_lock is not None:
            self._thread_lock.release()


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    ``window_duration`` and ``num_buckets`` are read once when the breaker is
    built. The remaining fields are read on every call and may be tuned on a
    live breaker.

    Attributes:
        window_duration: Seconds spanned by the rolling statistics window.
        num_buckets: Number of slices the window is divided into.
        timeout_duration: Deadline in seconds for one command invocation.
        error_threshold: Error percentage above which the circuit opens.
        volume_threshold: Calls required in the window before thresholds apply.
        error_filter: Returns ``False`` for failures that must be ignored.
        on_circuit_open: Called with current metrics on every move to ``OPEN``.
        on_circuit_close: Called with current metrics on ``HALF_OPEN → CLOSED``.
        cancel_on_timeout: Cancel the command task once its deadline fires.
        notify_open_on_probe_failure: Call ``on_circuit_open`` when a
            half-open probe fails.
        record_while_forced: Keep counting outcomes while a forced state is
            active.
    """

    window_duration: float = 10.0
    num_buckets: int = 10
    timeout_duration: float = 3.0
    error_threshold: float = 50.0
    volume_threshold: int = 5
    error_filter: ErrorFilter = _count_every_error
    on_circuit_open: MetricsCallback = _ignore_metrics
    on_circuit_close: MetricsCallback = _ignore_metrics
    cancel_on_timeout: bool = False
    notify_open_on_probe_failure: bool = True
    record_while_forced: bool = True

    def __post_init__(self) -> None:
        if self.window_duration <= 0:
            raise ValueError("window_duration must be > 0")
        if self.num_buckets < 1:
            raise ValueError("num_buckets must be >= 1")
        if self.timeout_duration <= 0:
            raise ValueError("timeout_duration must be > 0")
        if not 0 <= self.error_threshold <= 100:
            raise ValueError("error_threshold must be between 0 and 100")
        if self.volume_threshold < 0:
            raise ValueError("volume_threshold must be >= 0")

    @property
    def bucket_duration(self) -> float:
        return self.window_duration / self.num_buckets


class CircuitBreaker:
    """Stateful proxy around a dangerous operation, driven by a rolling window."""

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        scheduler: Scheduler | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a circuit breaker and start its bucket ticker.

        Args:
            name: Breaker name used in logs, task names and errors.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            scheduler: Timer source for deadlines and rotation. Defaults to
                the running asyncio loop.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger. Defaults to the package structlog logger.

        Raises:
            RuntimeError: When no scheduler is given and no loop is running.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._scheduler = LoopScheduler() if scheduler is None else scheduler
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger: StructuredLogger = (
            get_component_logger("circuit_breaker") if logger is None else logger
        )
        self._lock = _MutationLock()
        self._state = CircuitState.CLOSED
        self._forced: ForcedState | None = None
        self._store = BucketStore(self.config.num_buckets)
        self._ticker = Ticker(
            self._store,
            scheduler=self._scheduler,
            period=self.config.bucket_duration,
            on_window_elapsed=self._on_window_elapsed,
        )
        self._ticker.start()

    def __enter__(self) -> "CircuitBreaker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    @property
    def state(self) -> CircuitState:
        """Effective state: the forced state if present, else the automatic one."""
        if self._forced is not None:
            return self._forced.pinned
        return self._state

    @property
    def automatic_state(self) -> CircuitState:
        return self._state

    @property
    def forced(self) -> ForcedState | None:
        return self._forced

    @property
    def buckets(self) -> tuple[Bucket, ...]:
        return self._store.buckets

    @property
    def running(self) -> bool:
        return self._ticker.running

    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def metrics(self) -> Metrics:
        return calculate_metrics(self._store.buckets)

    def snapshot(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            name=self.name,
            state=self.state,
            automatic_state=self._state,
            forced=self._forced,
            metrics=self.metrics(),
            bucket_count=len(self._store),
            active_bucket=self._store.active_bucket().copy(),
        )

    def force_open(self) -> None:
        """Short-circuit every call until ``unforce`` is called."""
        self._force(CircuitState.OPEN)

    def force_close(self) -> None:
        """Let every call through until ``unforce`` is called."""
        self._force(CircuitState.CLOSED)

    def unforce(self) -> None:
        """Drop the forced state and restore the automatic state saved with it."""
        with self._lock:
            forced = self._forced
            if forced is None:
                return
            self._state = forced.saved
            self._forced = None
        log_info(
            self._logger,
            "circuit_breaker_unforced",
            breaker=self.name,
            state=forced.saved.value,
        )

    def destroy(self) -> None:
        """Stop the bucket ticker. Safe to call more than once."""
        if self._ticker.stop():
            log_info(self._logger, "circuit_breaker_stopped", breaker=self.name)

    async def run(
        self,
        command: Command[T],
        fallback: Command[T] | None = None,
    ) -> T:
        """Invoke ``command`` under circuit breaker protection.

        Args:
            command: Zero-argument callable returning a value or an awaitable.
            fallback: Called instead of ``command`` when the circuit is open;
                its result (awaited when awaitable) is returned.

        Returns:
            The command result, or the fallback result when short-circuited.

        Raises:
            CircuitOpenError: When the circuit is open and no fallback is set.
            CircuitTimeoutError: When the command exceeds ``timeout_duration``.
            Exception: The original exception raised by ``command``.
        """
        if self.is_open():
            self._short_circuit()
            if fallback is None:
                raise CircuitOpenError(self.name)
            result = fallback()
            if inspect.isawaitable(result):
                return await result
            return result

        return await self._execute(command)

    def _force(self, pinned: CircuitState) -> None:
        with self._lock:
            saved = self._state if self._forced is None else self._forced.saved
            self._forced = ForcedState(pinned=pinned, saved=saved)
        log_info(
            self._logger,
            "circuit_breaker_forced",
            breaker=self.name,
            state=pinned.value,
            saved=saved.value,
        )

    async def _execute(self, command: Command[T]) -> T:
        try:
            result = command()
        except Exception as exc:
            self._record_failure(exc)
            raise

        if not inspect.isawaitable(result):
            self._record_success()
            return result

        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[T] = loop.create_future()
        if inspect.iscoroutine(result):
            task = loop.create_task(result, name=self._task_name(command))
        else:
            task = asyncio.ensure_future(result)
        timeout = self.config.timeout_duration
        decided = False

        def _decide() -> bool:
            nonlocal decided
            if decided:
                return False
            decided = True
            deadline.cancel()
            return True

        def _settle(value: T | None = None, exc: BaseException | None = None) -> None:
            if outcome.done():
                return
            if exc is None:
                outcome.set_result(value)  # type: ignore[arg-type]
            else:
                outcome.set_exception(exc)

        def _on_done(done: asyncio.Future[T]) -> None:
            if done.cancelled():
                if _decide():
                    outcome.cancel()
                return
            exc = done.exception()
            if not _decide():
                return
            if exc is None:
                self._record_success()
                _settle(done.result())
            else:
                self._record_failure(exc)
                _settle(exc=exc)

        def _on_deadline() -> None:
            if not _decide():
                return
            self._record_timeout(timeout)
            if self.config.cancel_on_timeout:
                task.cancel()
            _settle(exc=CircuitTimeoutError(self.name, timeout))

        deadline = self._scheduler.call_later(timeout, _on_deadline)
        task.add_done_callback(_on_done)
        try:
            return await outcome
        except asyncio.CancelledError:
            if _decide():
                task.cancel()
            raise

    def _task_name(self, command: Callable[..., object]) -> str:
        callable_name = getattr(command, "__qualname__", None)
        if callable_name is None:
            callable_name = getattr(command, "__name__", None)
        if callable_name is None:
            callable_name = command.__class__.__qualname__
        return f"circuit_breaker:{self.name}:{str(callable_name)}"

    def _short_circuit(self) -> None:
        with self._lock:
            if self._forced is None or self.config.record_while_forced:
                self._store.active_bucket().short_circuits += 1
        log_warning(self._logger, "circuit_breaker_short_circuit", breaker=self.name)
        self._emit("on_call_rejected", self.name)

    def _record_success(self) -> None:
        self._record("successes")
        self._emit("on_call_succeeded", self.name)

    def _record_failure(self, exc: BaseException) -> None:
        counted = self._is_counted(exc)
        self._record("failures" if counted else "ignores")
        self._emit("on_call_failed", self.name, exc, not counted)

    def _record_timeout(self, timeout: float) -> None:
        self._record("timeouts")
        log_warning(
            self._logger,
            "circuit_breaker_timeout",
            breaker=self.name,
            timeout=timeout,
        )
        self._emit("on_call_timed_out", self.name)

    def _is_counted(self, exc: BaseException) -> bool:
        try:
            return bool(self.config.error_filter(exc))
        except Exception:
            log_exception(
                self._logger,
                "circuit_breaker_error_filter_failed",
                breaker=self.name,
                error_type=type(exc).__name__,
            )
            return True

    def _record(self, counter: _Counter) -> None:
        with self._lock:
            if self._forced is None or self.config.record_while_forced:
                bucket = self._store.active_bucket()
                setattr(bucket, counter, getattr(bucket, counter) + 1)
            if self._forced is None:
                self._evaluate()

    def _evaluate(self) -> None:
        metrics = self.metrics()

        if self._state == CircuitState.HALF_OPEN:
            probe_failed = (
                self._store.active_bucket().successes == 0 and metrics.error_count > 0
            )
            if probe_failed:
                self._transition(
                    CircuitState.OPEN,
                    metrics,
                    notify=self.config.notify_open_on_probe_failure,
                )
            else:
                self._transition(CircuitState.CLOSED, metrics)
        elif self._state == CircuitState.CLOSED:
            over_error_threshold = metrics.error_percentage > self.config.error_threshold
            over_volume_threshold = metrics.total_count > self.config.volume_threshold
            if over_volume_threshold and over_error_threshold:
                self._transition(CircuitState.OPEN, metrics)

    def _on_window_elapsed(self) -> None:
        with self._lock:
            if self._state == CircuitState.OPEN:
                self._transition(CircuitState.HALF_OPEN, self.metrics())

    def _transition(
        self,
        new: CircuitState,
        metrics: Metrics,
        *,
        notify: bool = True,
    ) -> None:
        old = self._state
        self._state = new
        log_info(
            self._logger,
            "circuit_breaker_state_change",
            breaker=self.name,
            old=old.value,
            new=new.value,
            total_count=metrics.total_count,
            error_count=metrics.error_count,
            error_percentage=metrics.error_percentage,
        )
        self._emit("on_state_change", self.name, old, new)

        if not notify:
            return
        if new == CircuitState.OPEN:
            self._call_observer(self.config.on_circuit_open, metrics)
        elif new == CircuitState.CLOSED:
            self._call_observer(self.config.on_circuit_close, metrics)

    def _call_observer(self, callback: MetricsCallback, metrics: Metrics) -> None:
        try:
            callback(metrics)
        except Exception:
            log_exception(
                self._logger,
                "circuit_breaker_observer_failed",
                breaker=self.name,
                state=self._state.value,
            )

    def _emit(self, hook: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                getattr(listener, hook)(*args)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker_listener_failed",
                    breaker=self.name,
                    hook=hook,
                )
                continue
