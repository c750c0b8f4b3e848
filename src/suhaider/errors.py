"""Error taxonomy shared by the transport, the pipeline and the facades."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TransferResult


class ErrorCode(str, Enum):
    """Stable error identifiers callers can branch on."""

    INVALID_PARAMETER = "invalid_parameter"
    NETWORK_ERROR = "network_error"
    READ_TIMEOUT = "read_timeout"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    MODEL_NOT_FOUND = "model_not_found"
    SERVER_ERROR = "server_error"
    INVALID_RESPONSE = "invalid_response"
    EMPTY_RESPONSE = "empty_response"
    MODEL_PULL_FAILED = "model_pull_failed"
    MODEL_PULL_CANCELLED = "model_pull_cancelled"
    MODEL_DELETE_FAILED = "model_delete_failed"
    TRANSFER_FAILED = "transfer_failed"
    TRANSFER_CANCELLED = "transfer_cancelled"


class SuhAiderError(Exception):
    """Base class for every error raised by this package."""

    code: ErrorCode = ErrorCode.INVALID_RESPONSE

    def __init__(self, message: str = "", *, code: ErrorCode | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or self.code.value
        super().__init__(self.message)


class InvalidRequestError(SuhAiderError):
    """A required request field is missing; raised before any network call."""

    code = ErrorCode.INVALID_PARAMETER


class TransportError(SuhAiderError):
    """Socket level failure while opening or reading a response."""

    code = ErrorCode.NETWORK_ERROR


class ReadTimeoutError(TransportError):
    """The configured read timeout elapsed."""

    code = ErrorCode.READ_TIMEOUT


class HTTPStatusError(SuhAiderError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "", *, code: ErrorCode | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}", code=code)


class UnauthorizedError(HTTPStatusError):
    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(HTTPStatusError):
    code = ErrorCode.FORBIDDEN


class ModelNotFoundError(HTTPStatusError):
    code = ErrorCode.MODEL_NOT_FOUND


class InternalServerError(HTTPStatusError):
    code = ErrorCode.SERVER_ERROR


class InvalidResponseError(SuhAiderError):
    """The server answered with something this client cannot interpret."""

    code = ErrorCode.INVALID_RESPONSE


class ServerReportedError(SuhAiderError):
    """The stream itself carried an ``error`` field."""

    code = ErrorCode.SERVER_ERROR


class TransferFailedError(SuhAiderError):
    """A blocking transfer finished with a ``Failure`` outcome."""

    code = ErrorCode.TRANSFER_FAILED

    def __init__(self, result: TransferResult) -> None:
        self.result = result
        super().__init__(result.error_message or f"transfer {result.operation_id} failed")


class TransferCancelledError(SuhAiderError):
    """A blocking transfer was cancelled through its handle."""

    code = ErrorCode.TRANSFER_CANCELLED

    def __init__(self, result: TransferResult) -> None:
        self.result = result
        super().__init__(f"transfer {result.operation_id} was cancelled")


_STATUS_ERRORS: dict[int, type[HTTPStatusError]] = {
    401: UnauthorizedError,
    403: ForbiddenError,
    404: ModelNotFoundError,
    500: InternalServerError,
    502: InternalServerError,
    503: InternalServerError,
}


def error_for_status(status_code: int, body: str = "") -> HTTPStatusError:
    """Map an HTTP status to the matching typed error."""
    cls = _STATUS_ERRORS.get(status_code)
    if cls is None:
        return HTTPStatusError(status_code, body, code=ErrorCode.INVALID_RESPONSE)
    return cls(status_code, body)
