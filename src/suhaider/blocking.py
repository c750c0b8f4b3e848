"""Blocking and future-based views over the callback API."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from .errors import TransferCancelledError, TransferFailedError
from .handle import TransferHandle
from .models import Outcome, StreamEvent, TransferResult
from .sink import StreamHandler

logger = logging.getLogger(__name__)

Starter = Callable[[StreamHandler], TransferHandle]


def run_blocking(
    start: Starter,
    *,
    raise_on_failure: bool = True,
    timeout: float | None = None,
    on_event: Optional[Callable[[StreamEvent], None]] = None,
) -> TransferResult:
    """Start a transfer through ``start`` and wait for its terminal notification.

    Args:
        start: Launches the transfer with the given handler and returns its handle.
        raise_on_failure: Raise :class:`TransferFailedError` for a ``Failure``
            outcome instead of returning it.
        timeout: Seconds to wait. The transfer keeps running when it elapses.
        on_event: Optional callback for intermediate events.

    Raises:
        TransferCancelledError: The transfer was cancelled through its handle.
        TimeoutError: ``timeout`` elapsed first.
    """
    resolved = threading.Event()
    outcome: dict[str, object] = {}

    def on_complete(result: TransferResult) -> None:
        outcome["result"] = result
        resolved.set()

    def on_error(error: BaseException) -> None:
        outcome["error"] = error
        resolved.set()

    handle = start(StreamHandler(on_event=on_event, on_complete=on_complete, on_error=on_error))
    if not resolved.wait(timeout):
        raise TimeoutError(f"transfer {handle.operation_id} did not finish within {timeout}s")

    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    result: TransferResult = outcome["result"]  # type: ignore[assignment]
    if result.outcome is Outcome.CANCELLED:
        raise TransferCancelledError(result)
    if result.outcome is Outcome.FAILURE and raise_on_failure:
        raise TransferFailedError(result)
    return result


def run_future(
    start: Starter,
    on_event: Optional[Callable[[StreamEvent], None]] = None,
) -> tuple[TransferHandle, Future[TransferResult]]:
    """Start a transfer and return its handle and a future of its result.

    The future resolves with every :class:`TransferResult`, including failed
    and cancelled ones; it completes exceptionally only on ``on_error``.
    """
    future: Future[TransferResult] = Future()
    future.set_running_or_notify_cancel()

    def on_complete(result: TransferResult) -> None:
        future.set_result(result)

    def on_error(error: BaseException) -> None:
        future.set_exception(error)

    handle = start(StreamHandler(on_event=on_event, on_complete=on_complete, on_error=on_error))
    return handle, future
