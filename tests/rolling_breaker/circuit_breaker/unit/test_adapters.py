from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable

import pytest

from rolling_breaker.circuit_breaker import (
    CircuitBreaker,
    CircuitTimeoutError,
    CommandFailedError,
    ManualScheduler,
    callback_command,
)

pytestmark = pytest.mark.asyncio


async def test_success_callback_resolves_with_value(breaker: CircuitBreaker) -> None:
    def _command(success: Callable[..., None], failed: Callable[..., None]) -> None:
        success("value")

    assert await breaker.run(callback_command(_command)) == "value"
    assert breaker.buckets[-1].successes == 1


async def test_failure_callback_without_exception_is_wrapped(
    breaker: CircuitBreaker,
) -> None:
    def _command(success: Callable[..., None], failed: Callable[..., None]) -> None:
        failed()

    with pytest.raises(CommandFailedError) as excinfo:
        await breaker.run(callback_command(_command))

    assert excinfo.value.reason is None
    assert breaker.buckets[-1].failures == 1


async def test_failure_callback_with_exception_reraises_it(
    breaker: CircuitBreaker,
) -> None:
    error = ConnectionError("down")

    def _command(success: Callable[..., None], failed: Callable[..., None]) -> None:
        failed(error)

    with pytest.raises(ConnectionError) as excinfo:
        await breaker.run(callback_command(_command))

    assert excinfo.value is error


async def test_only_first_callback_counts(breaker: CircuitBreaker) -> None:
    def _command(success: Callable[..., None], failed: Callable[..., None]) -> None:
        success(1)
        failed("ignored")
        success(2)

    assert await breaker.run(callback_command(_command)) == 1
    assert breaker.buckets[-1].failures == 0


async def test_synchronous_raise_is_a_failure(breaker: CircuitBreaker) -> None:
    def _command(success: Callable[..., None], failed: Callable[..., None]) -> None:
        raise ValueError("sync")

    with pytest.raises(ValueError, match="sync"):
        await breaker.run(callback_command(_command))
    assert breaker.buckets[-1].failures == 1


async def test_command_that_never_calls_back_times_out(
    breaker: CircuitBreaker, scheduler: ManualScheduler
) -> None:
    def _command(success: Callable[..., None], failed: Callable[..., None]) -> None:
        return None

    task = asyncio.create_task(breaker.run(callback_command(_command)))
    await asyncio.sleep(0)
    scheduler.advance(3.0)

    with pytest.raises(CircuitTimeoutError):
        await task
    assert sum(bucket.timeouts for bucket in breaker.buckets) == 1


async def test_callbacks_fired_from_worker_thread_reach_the_loop(
    breaker: CircuitBreaker,
) -> None:
    def _succeeds(success: Callable[..., None], failed: Callable[..., None]) -> None:
        threading.Thread(target=success, args=("threaded",)).start()

    def _fails(success: Callable[..., None], failed: Callable[..., None]) -> None:
        threading.Thread(target=failed, args=("refused",)).start()

    assert await breaker.run(callback_command(_succeeds)) == "threaded"
    with pytest.raises(CommandFailedError) as excinfo:
        await breaker.run(callback_command(_fails))

    assert excinfo.value.reason == "refused"
    assert breaker.buckets[-1].successes == 1
    assert breaker.buckets[-1].failures == 1
