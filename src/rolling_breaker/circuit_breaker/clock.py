"""Timer sources for breaker deadlines and bucket rotation.

``LoopScheduler`` delegates to the running asyncio loop. ``ManualScheduler``
is a virtual clock: nothing fires until ``advance`` moves time forward, which
makes window rotation and timeouts deterministic under test.
"""

import asyncio
import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol


class TimerHandle(Protocol):
    """Cancelable handle returned by ``Scheduler.call_later``."""

    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(Protocol):
    """Minimal timer surface used by the breaker."""

    def time(self) -> float:
        """Return the scheduler's current time in seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""


class LoopScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind to ``loop``, or to the running loop when omitted.

        Raises:
            RuntimeError: When ``loop`` is omitted and no loop is running.
        """
        self._loop = asyncio.get_running_loop() if loop is None else loop

    def time(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._loop.call_later(delay, callback)


@dataclass(slots=True)
class _ManualTimer:
    due: float
    callback: Callable[[], None]
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler advanced explicitly by the caller."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._sequence = itertools.count()
        self._timers: list[tuple[float, int, _ManualTimer]] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = _ManualTimer(due=self._now + max(delay, 0.0), callback=callback)
        heapq.heappush(self._timers, (timer.due, next(self._sequence), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of timers scheduled and not cancelled."""
        return sum(1 for _, _, timer in self._timers if not timer.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in order.

        Timers scheduled by a callback fire in the same call when they fall
        within the advanced span.
        """
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            due, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = due
            timer.cancelled = True
            timer.callback()
        self._now = target
