import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from fake_transport import FakeSource, FakeTransport

from suhaider.blocking import run_blocking, run_future
from suhaider.errors import ModelNotFoundError, TransferCancelledError, TransferFailedError
from suhaider.models import OperationKind, Outcome, StreamRequest
from suhaider.transfer import launch


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


def starter(executor, transport, op="m", holder=None):
    request = StreamRequest(url="http://test/api/pull", payload={}, kind=OperationKind.PULL, operation_id=op)

    def start(handler):
        handle = launch(executor, transport, request, handler)
        if holder is not None:
            holder.append(handle)
        return handle

    return start


def test_run_blocking_returns_success(executor):
    transport = FakeTransport({"m": FakeSource(['{"status":"pulling"}', '{"status":"success"}'])})
    events = []
    result = run_blocking(starter(executor, transport), on_event=events.append)
    assert result.is_success
    assert len(events) == 1


def test_run_blocking_raises_on_failure(executor):
    transport = FakeTransport({"m": FakeSource(['{"error":"pull model manifest: file does not exist"}'])})
    with pytest.raises(TransferFailedError) as info:
        run_blocking(starter(executor, transport))
    assert info.value.result.error_message == "pull model manifest: file does not exist"


def test_run_blocking_can_return_failure(executor):
    transport = FakeTransport({"m": FakeSource(['{"error":"nope"}'])})
    result = run_blocking(starter(executor, transport), raise_on_failure=False)
    assert result.outcome is Outcome.FAILURE


def test_run_blocking_reraises_transport_errors(executor):
    transport = FakeTransport(open_error=ModelNotFoundError(404, "missing"))
    with pytest.raises(ModelNotFoundError):
        run_blocking(starter(executor, transport))


def test_run_blocking_cancelled(executor):
    source = FakeSource([], block_at=0)
    transport = FakeTransport({"m": source})
    handles = []

    def cancel_when_reading():
        source.reading.wait(5)
        while not handles:
            time.sleep(0.01)
        handles[0].cancel()

    threading.Thread(target=cancel_when_reading).start()
    with pytest.raises(TransferCancelledError) as info:
        run_blocking(starter(executor, transport, holder=handles))
    assert info.value.result.is_cancelled


def test_run_blocking_timeout_leaves_transfer_running(executor):
    source = FakeSource([], block_at=0)
    handles = []
    with pytest.raises(TimeoutError):
        run_blocking(starter(executor, FakeTransport({"m": source}), holder=handles), timeout=0.1)
    assert not handles[0].is_done()
    handles[0].cancel()


def test_run_future_resolves_with_result(executor):
    transport = FakeTransport({"m": FakeSource(['{"status":"success"}'])})
    handle, future = run_future(starter(executor, transport))
    assert future.result(5).is_success
    assert handle.operation_id == "m"


def test_run_future_fails_on_error(executor):
    transport = FakeTransport(open_error=ModelNotFoundError(404))
    _, future = run_future(starter(executor, transport))
    with pytest.raises(ModelNotFoundError):
        future.result(5)
