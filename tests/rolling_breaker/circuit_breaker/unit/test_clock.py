from __future__ import annotations

import asyncio

import pytest

from rolling_breaker.circuit_breaker import LoopScheduler, ManualScheduler


def test_manual_scheduler_fires_due_timers_in_order() -> None:
    scheduler = ManualScheduler()
    fired: list[str] = []

    scheduler.call_later(2.0, lambda: fired.append("b"))
    scheduler.call_later(1.0, lambda: fired.append("a"))
    scheduler.call_later(2.0, lambda: fired.append("c"))

    scheduler.advance(1.5)
    assert fired == ["a"]
    assert scheduler.time() == 1.5

    scheduler.advance(0.5)
    assert fired == ["a", "b", "c"]
    assert scheduler.pending == 0


def test_manual_scheduler_skips_cancelled_timers() -> None:
    scheduler = ManualScheduler()
    fired: list[str] = []

    handle = scheduler.call_later(1.0, lambda: fired.append("x"))
    handle.cancel()
    scheduler.advance(5.0)

    assert fired == []


def test_manual_scheduler_fires_timers_rearmed_within_span() -> None:
    scheduler = ManualScheduler()
    times: list[float] = []

    def _tick() -> None:
        times.append(scheduler.time())
        scheduler.call_later(1.0, _tick)

    scheduler.call_later(1.0, _tick)
    scheduler.advance(3.0)

    assert times == [1.0, 2.0, 3.0]
    assert scheduler.pending == 1


def test_manual_scheduler_rejects_negative_advance() -> None:
    with pytest.raises(ValueError, match="seconds"):
        ManualScheduler().advance(-1.0)


def test_loop_scheduler_requires_running_loop() -> None:
    with pytest.raises(RuntimeError):
        LoopScheduler()


@pytest.mark.asyncio
async def test_loop_scheduler_delegates_to_running_loop() -> None:
    scheduler = LoopScheduler()
    fired = asyncio.Event()

    scheduler.call_later(0.0, fired.set)
    await asyncio.wait_for(fired.wait(), timeout=1.0)

    assert scheduler.time() == pytest.approx(asyncio.get_running_loop().time(), abs=1.0)
