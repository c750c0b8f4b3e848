"""Delivery of stream events to user callbacks with a one-shot terminal guard."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .models import StreamEvent, TransferResult

logger = logging.getLogger(__name__)


@dataclass
class StreamHandler:
    """Callbacks for one or more transfers. Any of them may be omitted."""

    on_event: Optional[Callable[[StreamEvent], None]] = None
    on_complete: Optional[Callable[[TransferResult], None]] = None
    on_error: Optional[Callable[[BaseException], None]] = None


class CallbackSink:
    """Forwards events to a :class:`StreamHandler` and fires one terminal callback.

    ``on_terminal`` runs inside the guard right before the user's terminal
    callback; the transfer pipeline passes the handle's ``mark_done`` there.
    ``is_cancelled`` is checked right before each event is forwarded.
    """

    def __init__(
        self,
        handler: StreamHandler,
        on_terminal: Callable[[], None] | None = None,
        propagate_event_errors: bool = False,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> None:
        self._handler = handler
        self._on_terminal = on_terminal
        self._is_cancelled = is_cancelled
        self._propagate_event_errors = propagate_event_errors
        self._lock = threading.Lock()
        self._terminated = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    def dispatch_event(self, event: StreamEvent) -> None:
        """Forward ``event`` unless the transfer finished or was cancelled."""
        if self._terminated or self._handler.on_event is None:
            return
        if self._is_cancelled is not None and self._is_cancelled():
            return
        try:
            self._handler.on_event(event)
        except Exception:
            if self._propagate_event_errors:
                raise
            logger.exception("on_event callback raised for %s event of %s", event.type, event.operation_id)

    def dispatch_complete(self, result: TransferResult) -> bool:
        if not self._claim():
            return False
        if self._handler.on_complete is not None:
            try:
                self._handler.on_complete(result)
            except Exception:
                logger.exception("on_complete callback raised for %s", result.operation_id)
        return True

    def dispatch_error(self, error: BaseException) -> bool:
        if not self._claim():
            return False
        if self._handler.on_error is not None:
            try:
                self._handler.on_error(error)
            except Exception:
                logger.exception("on_error callback raised")
        else:
            logger.error("transfer failed with no on_error callback: %s", error)
        return True

    def _claim(self) -> bool:
        with self._lock:
            if self._terminated:
                return False
            self._terminated = True
            if self._on_terminal is not None:
                self._on_terminal()
        return True
