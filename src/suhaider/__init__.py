"""suhaider: streaming client for Ollama compatible model servers."""

from __future__ import annotations

from .blocking import run_blocking, run_future
from .catalogue import ModelCatalogue
from .chunking import ChunkingConfig, ChunkingStrategy, chunk_text
from .client import SuhAiderClient
from .config import ClientConfig, EmbeddingConfig, ModelRefreshConfig, SecurityConfig, load_config
from .decoder import StreamDecoder, decode
from .errors import (
    ErrorCode,
    ForbiddenError,
    HTTPStatusError,
    InternalServerError,
    InvalidRequestError,
    InvalidResponseError,
    ModelNotFoundError,
    ReadTimeoutError,
    ServerReportedError,
    SuhAiderError,
    TransferCancelledError,
    TransferFailedError,
    TransportError,
    UnauthorizedError,
)
from .handle import CancelToken, TransferHandle
from .logging_config import init_logging
from .models import (
    ChatChunk,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    Done,
    EmbeddingRequest,
    EmbeddingResponse,
    FunctionParameter,
    FunctionRequest,
    FunctionResponse,
    FunctionTool,
    GenerateRequest,
    GenerateResponse,
    JsonSchema,
    ModelInfo,
    OperationKind,
    Outcome,
    Progress,
    ServerError,
    StreamEvent,
    StreamRequest,
    TextChunk,
    TransferResult,
)
from .orchestrator import DownloadOrchestrator
from .sink import CallbackSink, StreamHandler
from .transfer import Transfer
from .transport import LineSource, StreamTransport

__all__ = [
    "SuhAiderClient",
    "ClientConfig",
    "SecurityConfig",
    "ModelRefreshConfig",
    "EmbeddingConfig",
    "ChunkingConfig",
    "ChunkingStrategy",
    "chunk_text",
    "load_config",
    "init_logging",
    "StreamRequest",
    "StreamEvent",
    "TextChunk",
    "ChatChunk",
    "Progress",
    "Done",
    "ServerError",
    "TransferResult",
    "OperationKind",
    "Outcome",
    "GenerateRequest",
    "GenerateResponse",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "JsonSchema",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "FunctionParameter",
    "FunctionTool",
    "FunctionRequest",
    "FunctionResponse",
    "ModelInfo",
    "StreamTransport",
    "LineSource",
    "StreamDecoder",
    "decode",
    "StreamHandler",
    "CallbackSink",
    "CancelToken",
    "TransferHandle",
    "Transfer",
    "run_blocking",
    "run_future",
    "DownloadOrchestrator",
    "ModelCatalogue",
    "ErrorCode",
    "SuhAiderError",
    "InvalidRequestError",
    "InternalServerError",
    "TransportError",
    "ReadTimeoutError",
    "HTTPStatusError",
    "UnauthorizedError",
    "ForbiddenError",
    "ModelNotFoundError",
    "InvalidResponseError",
    "ServerReportedError",
    "TransferFailedError",
    "TransferCancelledError",
]
