"""Adapters from other calling conventions to the awaitable command contract."""

import asyncio
import threading
from collections.abc import Awaitable, Callable
from typing import Any

from rolling_breaker.circuit_breaker.exceptions import CommandFailedError

SuccessCallback = Callable[..., None]
FailureCallback = Callable[..., None]
CallbackCommand = Callable[[SuccessCallback, FailureCallback], object]


def callback_command(
    command: CallbackCommand,
) -> Callable[[], Awaitable[Any]]:
    """Wrap ``command(on_success, on_failure)`` as a zero-argument async command.

    ``on_success(value=None)`` resolves the command with ``value``.
    ``on_failure(reason=None)`` fails it with ``reason`` when that is an
    exception, otherwise with ``CommandFailedError(reason)``. Only the first
    callback invocation counts. Callbacks may fire from any thread; the result
    is handed to the event loop that awaits the command.
    """

    async def _run() -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        settled = threading.Lock()

        def _resolve(value: object) -> None:
            if not future.done():
                future.set_result(value)

        def _reject(exc: BaseException) -> None:
            if not future.done():
                future.set_exception(exc)

        def _on_success(value: object = None) -> None:
            if settled.acquire(blocking=False):
                loop.call_soon_threadsafe(_resolve, value)

        def _on_failure(reason: object = None) -> None:
            if not settled.acquire(blocking=False):
                return
            if isinstance(reason, BaseException):
                loop.call_soon_threadsafe(_reject, reason)
            else:
                loop.call_soon_threadsafe(_reject, CommandFailedError(reason))

        command(_on_success, _on_failure)
        return await future

    _run.__qualname__ = getattr(command, "__qualname__", _run.__qualname__)
    return _run
