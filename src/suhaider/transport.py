"""HTTP transport: opens streamed responses and reads them line by line."""

from __future__ import annotations

import json
import logging
import shlex
import socket
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .config import ClientConfig
from .errors import ReadTimeoutError, TransportError, error_for_status
from .handle import CancelToken
from .models import OperationKind, StreamRequest

_SENSITIVE_FIELDS = {"api_key", "authorization", "token", "secret", "password"}


class HttpLogger:
    """httpx event hooks that log requests and responses.

    JSONL records by default; curl commands when ``debug`` is set. Response
    bodies are never read here since most responses are streamed.
    """

    def __init__(self, config: ClientConfig, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger("suhaider.http")
        self._sensitive_headers = {"authorization", "x-api-key", "api-key", "bearer",
                                   config.security.header_name.lower()}

    def install(self, client: httpx.Client) -> None:
        if self._config.debug:
            client.event_hooks.setdefault("request", []).append(self.log_request_curl)
        else:
            client.event_hooks.setdefault("request", []).append(self.log_request_jsonl)
        client.event_hooks.setdefault("response", []).append(self.log_response_jsonl)

    def sanitize_headers(self, headers: dict[str, str]) -> dict[str, str]:
        return {k: ("[REDACTED]" if k.lower() in self._sensitive_headers else v) for k, v in headers.items()}

    def sanitize_body(self, body: str) -> dict[str, Any] | str:
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return body[:1000] + "..." if len(body) > 1000 else body
        if isinstance(data, dict):
            return {k: ("[REDACTED]" if k in _SENSITIVE_FIELDS else v) for k, v in data.items()}
        return data

    def log_request_curl(self, request: httpx.Request) -> None:
        command = f"curl -X {request.method} '{request.url}'"
        for k, v in self.sanitize_headers(dict(request.headers)).items():
            command += f" \\\n  -H '{k}: {v}'"
        if request.content:
            try:
                body_str = request.content.decode()
            except UnicodeDecodeError:
                body_str = "<...binary data...>"
            command += f" \\\n  -d {shlex.quote(body_str)}"
        self._logger.info("http request as curl:\n%s", command)

    def log_request_jsonl(self, request: httpx.Request) -> None:
        body_str = ""
        if request.content:
            try:
                body_str = request.content.decode()
            except UnicodeDecodeError:
                body_str = "<binary data>"
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "http_request",
            "method": request.method,
            "url": str(request.url),
            "headers": self.sanitize_headers(dict(request.headers)),
            "body": self.sanitize_body(body_str) if body_str else None,
        }
        self._logger.info(json.dumps(log_data, separators=(",", ":")))

    def log_response_jsonl(self, response: httpx.Response) -> None:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "http_response",
            "status_code": response.status_code,
            "reason_phrase": response.reason_phrase,
            "url": str(response.request.url),
            "headers": self.sanitize_headers(dict(response.headers)),
        }
        self._logger.info(json.dumps(log_data, separators=(",", ":")))


def build_http_client(
    config: ClientConfig, client: httpx.Client | None = None, *, keepalive: bool = True
) -> httpx.Client:
    """Prepare an ``httpx.Client``: auth header and logging hooks.

    A caller supplied ``client`` is configured in place. Without ``keepalive``
    every request dials a new connection, so the connect trace always fires.
    """
    if client is None:
        limits = httpx.Limits() if keepalive else httpx.Limits(max_keepalive_connections=0)
        client = httpx.Client(timeout=config.timeout(), limits=limits)
    client.headers.update(config.security.header())
    HttpLogger(config).install(client)
    return client


def _socket_aborter(sock: socket.socket):
    def abort() -> None:
        # wakes a thread blocked in connect, send or recv; the reader closes the response itself
        sock.shutdown(socket.SHUT_RDWR)

    return abort


def _connect_tracer(token: CancelToken):
    """httpcore trace hook binding ``token`` to the socket as soon as it is connected.

    A cancel that arrived earlier fires at bind time, so a request still
    waiting for response headers is aborted too.
    """

    def trace(event_name: str, info: dict[str, Any]) -> None:
        if event_name != "connection.connect_tcp.complete":
            return
        stream = info.get("return_value")
        sock = stream.get_extra_info("socket") if stream is not None else None
        if sock is not None:
            token.bind(_socket_aborter(sock))

    return trace


def _aborter(response: httpx.Response):
    def abort() -> None:
        stream = response.extensions.get("network_stream")
        sock = stream.get_extra_info("socket") if stream is not None else None
        if sock is not None:
            _socket_aborter(sock)()
        else:
            response.close()

    return abort


class LineSource:
    """Blocking line reader over a streamed response body."""

    def __init__(self, response: httpx.Response, token: CancelToken) -> None:
        self._response = response
        self._token = token
        self._lines: Iterator[str] = response.iter_lines()

    @property
    def status_code(self) -> int:
        return self._response.status_code

    def next_line(self) -> Optional[str]:
        """Return the next line, ``None`` at end of stream."""
        try:
            return next(self._lines)
        except StopIteration:
            return None
        except httpx.TimeoutException as e:
            raise ReadTimeoutError(f"read timed out: {e}") from e
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise TransportError(f"stream interrupted: {e}") from e

    def __iter__(self) -> Iterator[str]:
        while (line := self.next_line()) is not None:
            yield line

    def close(self) -> None:
        self._token.unbind()
        self._response.close()

    def __enter__(self) -> "LineSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StreamTransport:
    """Opens one connection per streamed request. Never retries."""

    def __init__(self, client: httpx.Client, config: ClientConfig) -> None:
        self._client = client
        self._config = config
        self._logger = logging.getLogger(__name__)

    def open(self, request: StreamRequest, token: CancelToken | None = None) -> tuple[CancelToken, LineSource]:
        """Send ``request`` and return its cancel token and a reader over the body.

        Raises :class:`~suhaider.errors.TransportError` on connection failure and a
        :class:`~suhaider.errors.HTTPStatusError` subclass on a non-2xx status.
        """
        token = token or CancelToken()
        timeout = self._config.timeout(unbounded_read=request.kind is OperationKind.PULL)
        http_request = self._client.build_request("POST", request.url, json=request.payload, timeout=timeout,
                                                  extensions={"trace": _connect_tracer(token)})
        try:
            response = self._client.send(http_request, stream=True)
        except httpx.TimeoutException as e:
            token.unbind()
            raise ReadTimeoutError(f"{request.kind.value} request timed out: {e}") from e
        except httpx.HTTPError as e:
            token.unbind()
            raise TransportError(f"{request.kind.value} request failed: {e}") from e

        if not response.is_success:
            try:
                body = response.read().decode(response.encoding or "utf-8", "replace")
            except httpx.HTTPError:
                body = ""
            finally:
                token.unbind()
                response.close()
            self._logger.error("%s stream rejected - HTTP %s: %s", request.kind.value, response.status_code, body)
            raise error_for_status(response.status_code, body)

        token.bind(_aborter(response))
        return token, LineSource(response, token)
