import json
import logging
import socket

import httpx
import pytest

from suhaider.config import ClientConfig, SecurityConfig
from suhaider.errors import HTTPStatusError, InternalServerError, TransportError
from suhaider.handle import CancelToken, TransferHandle
from suhaider.models import OperationKind, StreamRequest
from suhaider.transport import HttpLogger, StreamTransport, _connect_tracer, build_http_client


def pull_request() -> StreamRequest:
    return StreamRequest(url="http://ollama.test/api/pull", payload={"name": "m"}, kind=OperationKind.PULL,
                         operation_id="m")


def test_line_source_reads_until_eof():
    http = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, text="a\nb\n")))
    token, source = StreamTransport(http, ClientConfig()).open(pull_request())
    with source:
        assert source.next_line() == "a"
        assert source.next_line() == "b"
        assert source.next_line() is None
    assert not token.cancelled


def test_non_2xx_raises_typed_error():
    http = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")))
    with pytest.raises(InternalServerError) as info:
        StreamTransport(http, ClientConfig()).open(pull_request())
    assert info.value.body == "boom"


def test_connection_failure_is_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    http = httpx.Client(transport=httpx.MockTransport(refuse))
    with pytest.raises(TransportError):
        StreamTransport(http, ClientConfig()).open(pull_request())


def test_pull_uses_unbounded_read_timeout():
    seen = {}

    def handler(request):
        seen.update(request.extensions["timeout"])
        return httpx.Response(200, text="")

    http = httpx.Client(transport=httpx.MockTransport(handler))
    _, source = StreamTransport(http, ClientConfig(read_timeout=9)).open(pull_request())
    source.close()
    assert seen["read"] is None
    assert seen["connect"] == 30


def test_cancelled_token_aborts_on_bind():
    calls = []
    token = CancelToken()
    token.cancel()
    token.bind(lambda: calls.append("abort"))
    assert calls == ["abort"]
    token.cancel()
    assert calls == ["abort"]


def test_abort_oserror_is_ignored():
    def abort():
        raise OSError("socket is not connected")

    token = CancelToken()
    token.bind(abort)
    token.cancel()
    assert token.cancelled


def test_handle_cancel_sets_flag_before_abort():
    handle = TransferHandle("m")
    seen = []
    handle.token.bind(lambda: seen.append(handle.is_cancelled()))
    handle.cancel()
    handle.cancel()
    assert seen == [True]


def test_request_log_redacts_auth_header(caplog):
    cfg = ClientConfig(security=SecurityConfig(header_name="X-API-Key", api_key="s3cret"))
    http = build_http_client(cfg, httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
    with caplog.at_level(logging.INFO, logger="suhaider.http"):
        http.post("http://ollama.test/api/pull", json={"name": "m", "token": "t"})
    records = [json.loads(r.getMessage()) for r in caplog.records if r.name == "suhaider.http"]
    request_log = next(r for r in records if r["event_type"] == "http_request")
    assert request_log["headers"]["x-api-key"] == "[REDACTED]"
    assert request_log["body"] == {"name": "m", "token": "[REDACTED]"}
    assert any(r["event_type"] == "http_response" for r in records)
    assert "s3cret" not in caplog.text


def test_debug_logs_curl(caplog):
    logger = HttpLogger(ClientConfig(debug=True))
    request = httpx.Request("POST", "http://ollama.test/api/pull", json={"name": "m"})
    with caplog.at_level(logging.INFO, logger="suhaider.http"):
        logger.log_request_curl(request)
    assert "curl -X POST 'http://ollama.test/api/pull'" in caplog.text


class FakeSocket:
    def __init__(self):
        self.shutdowns = []

    def shutdown(self, how):
        self.shutdowns.append(how)


class FakeNetworkStream:
    def __init__(self, sock):
        self.sock = sock

    def get_extra_info(self, info):
        return self.sock if info == "socket" else None


def test_connect_trace_binds_the_socket():
    sock = FakeSocket()
    token = CancelToken()
    trace = _connect_tracer(token)
    trace("connection.connect_tcp.started", {"host": "127.0.0.1"})
    trace("connection.connect_tcp.complete", {"return_value": FakeNetworkStream(sock)})
    assert sock.shutdowns == []
    token.cancel()
    assert sock.shutdowns == [socket.SHUT_RDWR]


def test_cancel_before_connect_aborts_once_connected():
    sock = FakeSocket()
    token = CancelToken()
    token.cancel()
    _connect_tracer(token)("connection.connect_tcp.complete", {"return_value": FakeNetworkStream(sock)})
    assert sock.shutdowns == [socket.SHUT_RDWR]


def test_open_installs_connect_trace():
    seen = {}

    def handler(request):
        seen["trace"] = request.extensions.get("trace")
        return httpx.Response(404, text="missing")

    token = CancelToken()
    http = httpx.Client(transport=httpx.MockTransport(handler))
    with pytest.raises(HTTPStatusError):
        StreamTransport(http, ClientConfig()).open(pull_request(), token)
    assert callable(seen["trace"])
    token.cancel()
    assert token.cancelled

