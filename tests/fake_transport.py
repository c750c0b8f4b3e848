import threading
from typing import Iterable, Optional

from suhaider.errors import TransportError
from suhaider.handle import CancelToken
from suhaider.models import StreamRequest


class FakeSource:
    """Line source fed from a list. ``block_at`` parks the reader until aborted."""

    def __init__(self, lines: Iterable[str], block_at: Optional[int] = None,
                 error: Optional[Exception] = None) -> None:
        self._lines = list(lines)
        self._block_at = block_at
        self._error = error
        self.aborted = threading.Event()
        self.reading = threading.Event()
        self.closed = False

    def abort(self) -> None:
        self.aborted.set()

    def __iter__(self):
        for i, line in enumerate(self._lines):
            if self._block_at == i:
                self.reading.set()
                self.aborted.wait(5)
                raise TransportError("connection aborted")
            if self.aborted.is_set():
                raise TransportError("connection aborted")
            yield line
        if self._block_at is not None and self._block_at >= len(self._lines):
            self.reading.set()
            self.aborted.wait(5)
            raise TransportError("connection aborted")
        if self._error is not None:
            raise self._error

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeTransport:
    """Stands in for StreamTransport; one scripted source per operation id."""

    def __init__(self, sources: dict[str, FakeSource] | None = None,
                 open_error: Optional[Exception] = None) -> None:
        self.sources = sources or {}
        self.open_error = open_error
        self.opened: list[StreamRequest] = []

    def open(self, request: StreamRequest, token: CancelToken | None = None):
        self.opened.append(request)
        if self.open_error is not None:
            raise self.open_error
        token = token or CancelToken()
        source = self.sources[request.operation_id]
        token.bind(source.abort)
        return token, source
