"""Request, event and result types used throughout the package."""

from __future__ import annotations

import json
import logging
import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    """The three streaming request shapes."""

    GENERATE = "generate"
    CHAT = "chat"
    PULL = "pull"


class Outcome(str, Enum):
    """Terminal state of a transfer."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


def format_bytes(num: int | None) -> str:
    """Human readable byte count, e.g. ``1.50 GB``."""
    if num is None:
        return "N/A"
    if num < 1024:
        return f"{num} B"
    value = float(num)
    for unit in ("KB", "MB", "GB"):
        value /= 1024.0
        if value < 1024 or unit == "GB":
            return f"{value:.2f} {unit}"
    return f"{value:.2f} GB"  # pragma: no cover


def format_duration(duration_ms: int) -> str:
    """Human readable duration, e.g. ``2m 30s`` or ``1h 15m``."""
    if duration_ms <= 0:
        return "N/A"
    seconds = duration_ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class StreamRequest(BaseModel):
    """One streamed call against the server. Immutable once a transfer starts."""

    model_config = ConfigDict(frozen=True)

    url: str
    payload: dict[str, Any]
    kind: OperationKind
    operation_id: str = Field(default_factory=lambda: uuid.uuid4().hex)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation_id: str = ""


class TextChunk(_Event):
    type: Literal["text"] = "text"
    content: str = ""


class ChatChunk(_Event):
    type: Literal["chat"] = "chat"
    content: str = ""


class Progress(_Event):
    """Pull progress for one layer, or a bare status marker."""

    type: Literal["progress"] = "progress"
    status: str = ""
    digest: Optional[str] = None
    completed: int = 0
    total: int = 0

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.completed * 100.0 / self.total

    @property
    def formatted_progress(self) -> str:
        if self.total <= 0:
            return self.status or "preparing..."
        return f"{format_bytes(self.completed)} / {format_bytes(self.total)} ({self.percent:.1f}%)"

    @property
    def is_downloading(self) -> bool:
        return "download" in self.status.lower()

    @property
    def is_success(self) -> bool:
        return self.status.lower() == "success"


class Done(_Event):
    type: Literal["done"] = "done"
    done_reason: Optional[str] = None


class ServerError(_Event):
    type: Literal["error"] = "error"
    message: str = ""


StreamEvent = Annotated[
    Union[TextChunk, ChatChunk, Progress, Done, ServerError],
    Field(discriminator="type"),
]


class TransferResult(BaseModel):
    """Terminal outcome of a transfer, created once."""

    model_config = ConfigDict(frozen=True)

    operation_id: str
    kind: OperationKind
    outcome: Outcome
    duration_ms: int = 0
    error_message: Optional[str] = None
    content: str = ""

    @property
    def is_success(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def is_cancelled(self) -> bool:
        return self.outcome is Outcome.CANCELLED

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration_ms)

    @classmethod
    def success(cls, operation_id: str, kind: OperationKind, duration_ms: int, content: str = "") -> "TransferResult":
        return cls(operation_id=operation_id, kind=kind, outcome=Outcome.SUCCESS,
                   duration_ms=duration_ms, content=content)

    @classmethod
    def failure(cls, operation_id: str, kind: OperationKind, error_message: str,
                duration_ms: int = 0, content: str = "") -> "TransferResult":
        return cls(operation_id=operation_id, kind=kind, outcome=Outcome.FAILURE,
                   duration_ms=duration_ms, error_message=error_message, content=content)

    @classmethod
    def cancelled(cls, operation_id: str, kind: OperationKind, duration_ms: int = 0) -> "TransferResult":
        return cls(operation_id=operation_id, kind=kind, outcome=Outcome.CANCELLED,
                   duration_ms=duration_ms, error_message="transfer was cancelled")


# ---------------------------------------------------------------------------
# Buffered request / response shapes
# ---------------------------------------------------------------------------


class JsonSchema(BaseModel):
    """Minimal JSON schema used to steer structured responses."""

    type: str = "object"
    properties: dict[str, Any] = {}
    required: list[str] = []
    items: Optional[dict[str, Any]] = None

    def to_format(self) -> dict[str, Any]:
        """Return the schema as the server's ``format`` object."""
        return self.model_dump(exclude_none=True)


class GenerateRequest(BaseModel):
    model: str
    prompt: str
    stream: bool = False
    system: Optional[str] = None
    options: Optional[dict[str, Any]] = None
    keep_alive: Optional[str] = None
    request_id: Optional[str] = None
    response_schema: Optional[JsonSchema] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"request_id", "response_schema"})


class GenerateResponse(BaseModel):
    model: str = ""
    created_at: Optional[str] = None
    response: str = ""
    done: bool = False
    done_reason: Optional[str] = None
    total_duration: Optional[int] = None
    eval_count: Optional[int] = None
    prompt_eval_count: Optional[int] = None


class ChatMessage(BaseModel):
    role: str
    content: str = ""
    images: Optional[list[str]] = None
    tool_calls: Optional[list[dict[str, Any]]] = None

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str, images: list[str] | None = None) -> "ChatMessage":
        return cls(role="user", content=content, images=images)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role="assistant", content=content)


class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage] = []
    stream: bool = False
    format: Optional[Any] = None
    options: Optional[dict[str, Any]] = None
    keep_alive: Optional[str] = None
    tools: Optional[list[dict[str, Any]]] = None
    request_id: Optional[str] = None
    response_schema: Optional[JsonSchema] = None

    def to_payload(self) -> dict[str, Any]:
        data = self.model_dump(exclude_none=True, exclude={"request_id", "response_schema"})
        if self.format is None and self.response_schema is not None:
            data["format"] = self.response_schema.to_format()
        return data


class ChatResponse(BaseModel):
    model: str = ""
    created_at: Optional[str] = None
    message: Optional[ChatMessage] = None
    done: bool = False
    done_reason: Optional[str] = None
    total_duration: Optional[int] = None

    @property
    def content(self) -> str | None:
        return self.message.content if self.message else None


class ModelInfo(BaseModel):
    name: str
    model: Optional[str] = None
    size: Optional[int] = None
    digest: Optional[str] = None
    modified_at: Optional[str] = None
    details: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


class EmbeddingRequest(BaseModel):
    """Body of ``POST /api/embed``. ``input`` is one text or a batch."""

    model: str
    input: Union[str, list[str]]
    truncate: Optional[bool] = None
    keep_alive: Optional[str] = None
    dimensions: Optional[int] = None
    options: Optional[dict[str, Any]] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class EmbeddingResponse(BaseModel):
    model: str = ""
    embeddings: list[list[float]] = []
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None
    prompt_eval_count: Optional[int] = None


# ---------------------------------------------------------------------------
# Function calling
# ---------------------------------------------------------------------------


class FunctionParameter(BaseModel):
    name: str
    type: str = "string"
    description: Optional[str] = None
    required: bool = False
    enum_values: Optional[list[str]] = None

    @classmethod
    def of(cls, name: str, type: str, description: str, required: bool = True) -> "FunctionParameter":
        return cls(name=name, type=type, description=description, required=required)

    @classmethod
    def choice(cls, name: str, description: str, *values: str) -> "FunctionParameter":
        """A required string parameter restricted to ``values``."""
        return cls(name=name, description=description, required=True, enum_values=list(values))


class FunctionTool(BaseModel):
    """A function the model may choose, sent as one entry of the chat ``tools`` list."""

    name: str
    description: str
    parameters: list[FunctionParameter] = []

    def to_tool(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for param in self.parameters:
            definition: dict[str, Any] = {"type": param.type}
            if param.description is not None:
                definition["description"] = param.description
            if param.enum_values:
                definition["enum"] = param.enum_values
            properties[param.name] = definition
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": [p.name for p in self.parameters if p.required],
                    "additionalProperties": False,
                },
            },
        }


class FunctionRequest(BaseModel):
    """Ask a tool-calling model to route ``user_text`` to one of ``tools``."""

    model: str
    user_text: str
    system_prompt: str
    tools: list[FunctionTool] = []
    options: Optional[dict[str, Any]] = None
    keep_alive: Optional[str] = None

    def to_chat_request(self) -> "ChatRequest":
        return ChatRequest(
            model=self.model,
            messages=[ChatMessage.system(self.system_prompt), ChatMessage.user(self.user_text)],
            tools=[tool.to_tool() for tool in self.tools],
            options=self.options,
            keep_alive=self.keep_alive,
        )


def _parse_arguments(arguments: Any) -> dict[str, Any]:
    if arguments is None:
        return {}
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        if not arguments.strip():
            return {}
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError:
            logger.warning("tool call arguments are not JSON: %.200s", arguments)
            return {}
        return parsed if isinstance(parsed, dict) else {}
    logger.warning("unexpected tool call arguments type: %s", type(arguments).__name__)
    return {}


class FunctionResponse(BaseModel):
    """The first tool call of a chat reply, if the model made one."""

    tool_name: Optional[str] = None
    arguments: dict[str, Any] = {}
    has_tool_call: bool = False
    raw_response: Optional[ChatResponse] = None

    @classmethod
    def from_chat_response(cls, response: ChatResponse | None) -> "FunctionResponse":
        calls = response.message.tool_calls if response is not None and response.message else None
        if not calls:
            return cls(raw_response=response)
        function = calls[0].get("function") or {}
        return cls(
            tool_name=function.get("name"),
            arguments=_parse_arguments(function.get("arguments")),
            has_tool_call=True,
            raw_response=response,
        )

    def argument(self, key: str, default: Any = None) -> Any:
        return self.arguments.get(key, default)

    def argument_as_str(self, key: str) -> str | None:
        value = self.arguments.get(key)
        return None if value is None else str(value)

    def argument_as_int(self, key: str) -> int | None:
        value = self.arguments.get(key)
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value)
        try:
            return int(str(value))
        except ValueError:
            return None

    def argument_as_bool(self, key: str) -> bool | None:
        value = self.arguments.get(key)
        if value is None or isinstance(value, bool):
            return value
        return str(value).lower() == "true"
