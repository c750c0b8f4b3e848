"""Cancellation token and the caller-visible transfer handle."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .models import Progress

logger = logging.getLogger(__name__)

AbortFn = Callable[[], None]


class CancelToken:
    """One-shot cancellation shared by a handle and the transport it controls.

    The transport binds an abort function once the connection exists. If the
    token was already cancelled, binding aborts immediately.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = threading.Event()
        self._abort: Optional[AbortFn] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def bind(self, abort: AbortFn) -> None:
        with self._lock:
            self._abort = abort
            fire = self._cancelled.is_set()
        if fire:
            self._run(abort)

    def unbind(self) -> None:
        with self._lock:
            self._abort = None

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            abort = self._abort
        if abort is not None:
            self._run(abort)

    @staticmethod
    def _run(abort: AbortFn) -> None:
        try:
            abort()
        except OSError as e:
            # the socket may already be gone
            logger.debug("abort raised: %s", e)


class TransferHandle:
    """Control object for one in-flight transfer."""

    def __init__(self, operation_id: str, token: CancelToken | None = None) -> None:
        self._operation_id = operation_id
        self._token = token or CancelToken()
        self._state_lock = threading.Lock()
        self._cancelled = False
        self._done = False
        self._latest_progress: Optional[Progress] = None

    @property
    def operation_id(self) -> str:
        return self._operation_id

    @property
    def token(self) -> CancelToken:
        return self._token

    @property
    def latest_progress(self) -> Optional[Progress]:
        return self._latest_progress

    def cancel(self) -> None:
        """Abort the transfer. No effect once it is done or already cancelled."""
        with self._state_lock:
            if self._done or self._cancelled:
                return
            # flag first: the pipeline reads it to classify the abort as Cancelled
            self._cancelled = True
        logger.info("cancelling transfer %s", self._operation_id)
        self._token.cancel()

    def is_cancelled(self) -> bool:
        return self._cancelled

    def is_done(self) -> bool:
        return self._done

    def update_progress(self, progress: Progress) -> None:
        self._latest_progress = progress

    def mark_done(self) -> None:
        with self._state_lock:
            self._done = True

    def __repr__(self) -> str:
        return (f"TransferHandle(operation_id={self._operation_id!r}, "
                f"cancelled={self._cancelled}, done={self._done})")
