"""The streaming transfer pipeline: transport -> decoder -> sink, on one worker."""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from time import perf_counter
from typing import Callable, Optional

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from .decoder import StreamDecoder
from .handle import TransferHandle
from .models import Done, Progress, ServerError, StreamRequest, TransferResult
from .sink import CallbackSink, StreamHandler
from .transport import StreamTransport

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)

EARLY_EOF_MESSAGE = "stream closed before completion"


class Transfer:
    """One streamed request, from open to terminal notification.

    Construct it, hand :attr:`handle` to the caller, then call :meth:`run` on a
    worker thread. ``run`` never raises; every outcome goes through the handler.
    """

    _transfers = Counter(
        "suhaider_transfers_total",
        "Streaming transfers by terminal outcome",
        labelnames=["kind", "outcome"],
    )
    _duration = Histogram(
        "suhaider_transfer_duration_seconds",
        "Wall time of streaming transfers",
        labelnames=["kind"],
    )
    _inflight = Gauge(
        "suhaider_inflight_transfers",
        "Streaming transfers currently running",
        labelnames=["kind"],
    )
    _events = Counter(
        "suhaider_stream_events_total",
        "Non-terminal events delivered to callbacks",
        labelnames=["kind", "type"],
    )

    def __init__(
        self,
        transport: StreamTransport,
        request: StreamRequest,
        handler: StreamHandler,
        *,
        on_success: Callable[[StreamRequest], None] | None = None,
        propagate_event_errors: bool = False,
    ) -> None:
        self.request = request
        self.handle = TransferHandle(request.operation_id)
        self._transport = transport
        self._on_success = on_success
        self._sink = CallbackSink(handler, on_terminal=self.handle.mark_done,
                                  propagate_event_errors=propagate_event_errors,
                                  is_cancelled=self.handle.is_cancelled)
        self._start = 0.0

    def run(self) -> None:
        kind = self.request.kind.value
        attrs = {"transfer.kind": kind, "transfer.operation_id": self.request.operation_id}
        self._inflight.labels(kind).inc()
        self._start = perf_counter()
        outcome = "error"
        with _tracer.start_as_current_span("transfer.run", attributes=attrs) as span:
            try:
                outcome = self._run()
            finally:
                self._inflight.labels(kind).dec()
                self._duration.labels(kind).observe(perf_counter() - self._start)
                self._transfers.labels(kind, outcome).inc()
                span.set_attribute("transfer.outcome", outcome)

    def _elapsed_ms(self) -> int:
        return int((perf_counter() - self._start) * 1000)

    def _run(self) -> str:
        request, handle = self.request, self.handle
        if handle.is_cancelled():
            return self._cancelled()

        decoder = StreamDecoder(request.kind, request.operation_id)
        content: list[str] = []
        try:
            _, source = self._transport.open(request, handle.token)
            with source:
                for line in source:
                    for event in decoder.decode(line):
                        if isinstance(event, Done):
                            if handle.is_cancelled():
                                return self._cancelled()
                            return self._succeeded("".join(content))
                        if isinstance(event, ServerError):
                            if handle.is_cancelled():
                                return self._cancelled()
                            logger.warning("%s %s reported error: %s", request.kind.value,
                                           request.operation_id, event.message)
                            return self._failed(event.message, "".join(content))
                        if handle.is_cancelled():
                            continue
                        if isinstance(event, Progress):
                            handle.update_progress(event)
                        else:
                            content.append(event.content)
                        self._events.labels(request.kind.value, event.type).inc()
                        self._sink.dispatch_event(event)
            if handle.is_cancelled():
                return self._cancelled()
            logger.warning("%s %s: %s", request.kind.value, request.operation_id, EARLY_EOF_MESSAGE)
            return self._failed(EARLY_EOF_MESSAGE, "".join(content))
        except Exception as e:
            if handle.is_cancelled():
                logger.debug("%s %s aborted after cancel: %s", request.kind.value, request.operation_id, e)
                return self._cancelled()
            logger.error("%s %s failed: %s", request.kind.value, request.operation_id, e)
            self._sink.dispatch_error(e)
            return "error"

    def _succeeded(self, content: str) -> str:
        if self._on_success is not None:
            try:
                self._on_success(self.request)
            except Exception:
                logger.exception("success hook raised for %s", self.request.operation_id)
        result = TransferResult.success(self.request.operation_id, self.request.kind, self._elapsed_ms(), content)
        logger.info("%s %s completed in %s", self.request.kind.value, self.request.operation_id,
                    result.formatted_duration)
        self._sink.dispatch_complete(result)
        return result.outcome.value

    def _failed(self, message: str, content: str = "") -> str:
        result = TransferResult.failure(self.request.operation_id, self.request.kind, message,
                                        self._elapsed_ms(), content)
        self._sink.dispatch_complete(result)
        return result.outcome.value

    def _cancelled(self) -> str:
        logger.info("%s %s cancelled", self.request.kind.value, self.request.operation_id)
        result = TransferResult.cancelled(self.request.operation_id, self.request.kind, self._elapsed_ms())
        self._sink.dispatch_complete(result)
        return result.outcome.value


def launch(
    executor: Executor,
    transport: StreamTransport,
    request: StreamRequest,
    handler: StreamHandler,
    *,
    on_success: Optional[Callable[[StreamRequest], None]] = None,
    propagate_event_errors: bool = False,
) -> TransferHandle:
    """Start ``request`` on ``executor`` and return its handle immediately."""
    transfer = Transfer(transport, request, handler, on_success=on_success,
                        propagate_event_errors=propagate_event_errors)
    logger.debug("launching %s %s", request.kind.value, request.operation_id)
    executor.submit(transfer.run)
    return transfer.handle
