"""Fan-out of many streamed transfers, such as parallel model pulls."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from typing import Callable, Optional

from .blocking import run_future
from .handle import TransferHandle
from .models import StreamEvent, StreamRequest, TransferResult
from .sink import StreamHandler

logger = logging.getLogger(__name__)

RequestStarter = Callable[[StreamRequest, StreamHandler], TransferHandle]


class DownloadOrchestrator:
    """Starts independent transfers and optionally joins their results in order."""

    def __init__(self, starter: RequestStarter) -> None:
        self._starter = starter

    def start_all(self, requests: Sequence[StreamRequest], handler: StreamHandler) -> list[TransferHandle]:
        """Launch every request with the shared ``handler``; return the handles at once.

        Events from all transfers interleave on ``handler``; each carries its
        ``operation_id``.
        """
        handles = [self._starter(request, handler) for request in requests]
        logger.info("started %d transfers: %s", len(handles), ", ".join(h.operation_id for h in handles))
        return handles

    def start_all_async(
        self,
        requests: Sequence[StreamRequest],
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ) -> Future[list[TransferResult]]:
        """Run every request concurrently and resolve with results in input order.

        A failing transfer does not affect its siblings: transport errors become
        ``Failure`` results in their slot.
        """
        joined: Future[list[TransferResult]] = Future()
        joined.set_running_or_notify_cancel()
        if not requests:
            joined.set_result([])
            return joined

        results: list[Optional[TransferResult]] = [None] * len(requests)
        remaining = [len(requests)]
        lock = threading.Lock()

        def settle(index: int, request: StreamRequest, future: Future[TransferResult]) -> None:
            error = future.exception()
            if error is None:
                result = future.result()
            else:
                result = TransferResult.failure(request.operation_id, request.kind, str(error) or type(error).__name__)
            with lock:
                results[index] = result
                remaining[0] -= 1
                finished = remaining[0] == 0
            if finished:
                succeeded = sum(1 for r in results if r is not None and r.is_success)
                logger.info("parallel transfers finished: %d/%d succeeded", succeeded, len(results))
                joined.set_result(list(results))  # type: ignore[arg-type]

        for index, request in enumerate(requests):
            _, future = run_future(lambda handler, r=request: self._starter(r, handler), on_event)
            future.add_done_callback(lambda f, i=index, r=request: settle(i, r, f))
        return joined
