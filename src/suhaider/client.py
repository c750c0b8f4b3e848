"""Public client for an Ollama compatible model server."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

import httpx
from opentelemetry import trace
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from . import prompting
from .blocking import run_blocking, run_future
from .catalogue import ModelCatalogue
from .chunking import ChunkingConfig, chunk_text
from .config import ClientConfig, load_config
from .errors import (
    ErrorCode,
    HTTPStatusError,
    InvalidRequestError,
    InvalidResponseError,
    ModelNotFoundError,
    ReadTimeoutError,
    ServerReportedError,
    TransportError,
    error_for_status,
)
from .handle import TransferHandle
from .models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    FunctionRequest,
    FunctionResponse,
    GenerateRequest,
    GenerateResponse,
    ModelInfo,
    OperationKind,
    Progress,
    StreamEvent,
    StreamRequest,
    TransferResult,
)
from .orchestrator import DownloadOrchestrator
from .sink import StreamHandler
from .transfer import launch
from .transport import StreamTransport, build_http_client


class SuhAiderClient:
    """Buffered, streamed, blocking and future based access to the model server.

    Every streamed call runs on its own worker from a thread pool of
    ``config.max_workers`` and owns its own connection.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client: httpx.Client | None = None,
        propagate_event_errors: bool = False,
    ) -> None:
        self.config = config or load_config()
        self._http = build_http_client(self.config, client)
        # streams dial their own connection unless the caller supplied the client
        self._stream_http = self._http if client is not None else build_http_client(self.config, keepalive=False)
        self._transport = StreamTransport(self._stream_http, self.config)
        self._handles: set[TransferHandle] = set()
        self._handles_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=self.config.max_workers,
                                            thread_name_prefix="suhaider-transfer")
        self._propagate_event_errors = propagate_event_errors
        self._tracer = trace.get_tracer(__name__)
        self._logger = logging.getLogger("suhaider.client")
        self.catalogue = ModelCatalogue(self._fetch_models, self.config.model_refresh.reload_interval)
        self._orchestrator = DownloadOrchestrator(self._start)

        self._logger.info("client for %s", self.config.base_url)
        if self.config.security.enabled:
            self._logger.info("security header %s set (%s)", self.config.security.header_name,
                              self.config.security.masked_key)
        else:
            self._logger.warning("no security header configured; servers requiring auth will answer 401/403")
        if self.config.model_refresh.load_on_startup:
            self._initialize_models()

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _initialize_models(self) -> None:
        try:
            self.catalogue.refresh(force=True)
        except Exception as e:
            # the catalogue stays uninitialised and every name is accepted
            self._logger.warning("could not load model list at startup: %s", e)

    def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        """Send a buffered request and return the successful response."""
        try:
            response = self._http.request(method, self.config.url(path), json=json)
        except httpx.TimeoutException as e:
            self._logger.error("%s %s timed out: %s", method, path, e)
            raise ReadTimeoutError(str(e)) from e
        except httpx.HTTPError as e:
            self._logger.error("%s %s network error: %s", method, path, e)
            raise TransportError(str(e)) from e
        if not response.is_success:
            self._logger.error("%s %s failed - HTTP %s: %s", method, path, response.status_code, response.text)
            raise error_for_status(response.status_code, response.text)
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type):
        if not response.text.strip():
            raise InvalidResponseError("empty response body", code=ErrorCode.EMPTY_RESPONSE)
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseError(f"response is not JSON: {e}") from e
        if isinstance(data, dict) and data.get("error"):
            raise ServerReportedError(str(data["error"]))
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise InvalidResponseError(f"unexpected response: {e}") from e

    @retry(retry=retry_if_exception_type(TransportError), wait=wait_exponential_jitter(max=5),
           stop=stop_after_attempt(3), reraise=True)
    def _fetch_models(self) -> list[ModelInfo]:
        response = self._request("GET", "/api/tags")
        if not response.text.strip():
            raise InvalidResponseError("empty response body", code=ErrorCode.EMPTY_RESPONSE)
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseError(f"model list is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidResponseError("model list is not an object")
        models = [ModelInfo.model_validate(m) for m in (data.get("models") or []) if isinstance(m, dict)]
        self._logger.info("model list fetched: %d models", len(models))
        return models

    def _start(self, request: StreamRequest, handler: StreamHandler) -> TransferHandle:
        on_success = None
        if request.kind is OperationKind.PULL:
            on_success = lambda r: self.catalogue.add(r.operation_id)  # noqa: E731
        handle = launch(self._executor, self._transport, request, handler, on_success=on_success,
                        propagate_event_errors=self._propagate_event_errors)
        with self._handles_lock:
            self._handles = {h for h in self._handles if not h.is_done()}
            self._handles.add(handle)
        return handle

    @staticmethod
    def _require(value: Optional[str], what: str) -> None:
        if not value or not value.strip():
            raise InvalidRequestError(f"{what} must not be empty")

    def _pull_request(self, name: str, insecure: bool = False) -> StreamRequest:
        self._require(name, "model name")
        return StreamRequest(
            url=self.config.url("/api/pull"),
            payload={"name": name, "insecure": insecure, "stream": True},
            kind=OperationKind.PULL,
            operation_id=name,
        )

    def _generate_request(self, request: GenerateRequest) -> StreamRequest:
        self._require(request.model, "model name")
        self._require(request.prompt, "prompt")
        if request.response_schema is not None:
            self._logger.warning("response_schema is ignored for streamed generate")
        payload = request.to_payload()
        payload["stream"] = True
        kwargs = {"operation_id": request.request_id} if request.request_id else {}
        return StreamRequest(url=self.config.url("/api/generate"), payload=payload,
                             kind=OperationKind.GENERATE, **kwargs)

    def _chat_request(self, request: ChatRequest) -> StreamRequest:
        self._require(request.model, "model name")
        if not request.messages:
            raise InvalidRequestError("messages must not be empty")
        payload = request.to_payload()
        payload["stream"] = True
        kwargs = {"operation_id": request.request_id} if request.request_id else {}
        return StreamRequest(url=self.config.url("/api/chat"), payload=payload,
                             kind=OperationKind.CHAT, **kwargs)

    # ------------------------------------------------------------------
    # buffered
    # ------------------------------------------------------------------

    def generate(self, request: GenerateRequest | str, prompt: str | None = None) -> GenerateResponse:
        """Single-shot generation. ``generate("llama3", "hi")`` is shorthand for a request.

        With ``response_schema`` set, the prompt is augmented to demand JSON and
        the reply is stripped down to the JSON value.
        """
        if isinstance(request, str):
            request = GenerateRequest(model=request, prompt=prompt or "")
        self._require(request.model, "model name")
        self._require(request.prompt, "prompt")

        schema = request.response_schema
        payload = request.to_payload()
        payload["prompt"] = prompting.augment(request.prompt, schema)
        payload["stream"] = False

        with self._tracer.start_as_current_span("suhaider.generate", attributes={"model": request.model}):
            response = self._parse(self._request("POST", "/api/generate", payload), GenerateResponse)

        if schema is not None:
            cleaned = prompting.clean(response.response) or ""
            if not prompting.is_valid_json(cleaned):
                self._logger.warning("model returned invalid JSON, keeping cleaned text: %.100s", cleaned)
            response = response.model_copy(update={"response": cleaned})
        self._logger.info("generate done: %d chars", len(response.response))
        return response

    def chat(self, request: ChatRequest | str, messages: Sequence[ChatMessage] | None = None) -> ChatResponse:
        if isinstance(request, str):
            request = ChatRequest(model=request, messages=list(messages or []))
        self._require(request.model, "model name")
        if not request.messages:
            raise InvalidRequestError("messages must not be empty")

        payload = request.to_payload()
        payload["stream"] = False
        with self._tracer.start_as_current_span("suhaider.chat", attributes={"model": request.model}):
            response = self._parse(self._request("POST", "/api/chat", payload), ChatResponse)

        if request.response_schema is not None and response.message is not None:
            cleaned = prompting.clean(response.message.content) or ""
            response = response.model_copy(
                update={"message": response.message.model_copy(update={"content": cleaned})})
        return response

    def chat_text(self, model: str, user_message: str, system_prompt: str | None = None) -> str:
        """One user turn, optionally after a system prompt; returns the reply text."""
        self._require(user_message, "user message")
        messages = [ChatMessage.system(system_prompt)] if system_prompt else []
        messages.append(ChatMessage.user(user_message))
        return self.chat(model, messages).content or ""

    def function_call(self, request: FunctionRequest) -> FunctionResponse:
        """Let a tool-calling model pick one of ``request.tools`` for ``request.user_text``."""
        self._require(request.model, "model name")
        self._require(request.user_text, "user text")
        self._require(request.system_prompt, "system prompt")
        if not request.tools:
            raise InvalidRequestError("tools must not be empty")

        response = FunctionResponse.from_chat_response(self.chat(request.to_chat_request()))
        self._logger.info("function call done: tool=%s has_tool_call=%s", response.tool_name,
                          response.has_tool_call)
        return response

    # ------------------------------------------------------------------
    # embeddings
    # ------------------------------------------------------------------

    def embed(self, request: EmbeddingRequest) -> EmbeddingResponse:
        """Embed ``request.input``; unset options take the ``embedding`` config defaults."""
        self._require(request.model, "model name")
        if not request.input or (isinstance(request.input, str) and not request.input.strip()):
            raise InvalidRequestError("input must not be empty")

        defaults = self.config.embedding
        request = request.model_copy(update={
            "truncate": defaults.truncate if request.truncate is None else request.truncate,
            "keep_alive": request.keep_alive or defaults.keep_alive,
            "dimensions": request.dimensions if request.dimensions is not None else defaults.dimensions,
        })
        with self._tracer.start_as_current_span("suhaider.embed", attributes={"model": request.model}):
            response = self._parse(self._request("POST", "/api/embed", request.to_payload()), EmbeddingResponse)
        self._logger.info("embed done: %d vectors in %s ms", len(response.embeddings),
                          (response.total_duration or 0) // 1_000_000)
        return response

    def embed_text(self, model: str, text: str) -> list[float]:
        """The embedding vector of a single text."""
        response = self.embed(EmbeddingRequest(model=model, input=text))
        if not response.embeddings:
            raise InvalidResponseError("no embedding returned", code=ErrorCode.EMPTY_RESPONSE)
        return response.embeddings[0]

    def embed_texts(self, model: str, texts: Sequence[str]) -> list[list[float]]:
        """One vector per text, in order."""
        return self.embed(EmbeddingRequest(model=model, input=list(texts))).embeddings

    def embed_with_chunking(
        self, text: str, model: str | None = None, chunking: ChunkingConfig | None = None
    ) -> EmbeddingResponse:
        """Split ``text`` with ``chunking`` (the configured one by default) and embed every chunk."""
        model = model or self.config.embedding.default_model
        chunks = chunk_text(text, chunking or self.config.embedding.chunking)
        if not chunks:
            raise InvalidRequestError("text must not be empty")
        return self.embed(EmbeddingRequest(model=model, input=chunks))

    # ------------------------------------------------------------------
    # streaming
    # ------------------------------------------------------------------

    def generate_stream(self, request: GenerateRequest, handler: StreamHandler) -> TransferHandle:
        return self._start(self._generate_request(request), handler)

    def chat_stream(self, request: ChatRequest, handler: StreamHandler) -> TransferHandle:
        return self._start(self._chat_request(request), handler)

    def pull_model_stream(self, name: str, handler: StreamHandler, insecure: bool = False) -> TransferHandle:
        """Download ``name``, reporting :class:`Progress` events to ``handler``."""
        return self._start(self._pull_request(name, insecure), handler)

    # ------------------------------------------------------------------
    # blocking / futures
    # ------------------------------------------------------------------

    def run_blocking(
        self,
        request: StreamRequest,
        *,
        raise_on_failure: bool = True,
        timeout: float | None = None,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ) -> TransferResult:
        """Run any streamed request and wait for its result."""
        return run_blocking(lambda handler: self._start(request, handler),
                            raise_on_failure=raise_on_failure, timeout=timeout, on_event=on_event)

    def generate_stream_blocking(
        self,
        request: GenerateRequest,
        *,
        raise_on_failure: bool = True,
        timeout: float | None = None,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ) -> TransferResult:
        """Stream a generation and wait; the result carries the joined text as ``content``."""
        return self.run_blocking(self._generate_request(request), raise_on_failure=raise_on_failure,
                                 timeout=timeout, on_event=on_event)

    def chat_stream_blocking(
        self,
        request: ChatRequest,
        *,
        raise_on_failure: bool = True,
        timeout: float | None = None,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ) -> TransferResult:
        return self.run_blocking(self._chat_request(request), raise_on_failure=raise_on_failure,
                                 timeout=timeout, on_event=on_event)

    def pull_model(self, name: str, insecure: bool = False,
                   on_progress: Optional[Callable[[Progress], None]] = None) -> bool:
        """Pull ``name`` and wait. False when the server reported a failure.

        Raises:
            TransferCancelledError: The pull was cancelled.
            TransportError: The connection failed.
        """
        request = self._pull_request(name, insecure)
        on_event = None
        if on_progress is not None:
            on_event = lambda e: on_progress(e) if isinstance(e, Progress) else None  # noqa: E731
        result = self.run_blocking(request, raise_on_failure=False, on_event=on_event)
        if not result.is_success:
            self._logger.error("pull %s failed: %s", name, result.error_message)
        return result.is_success

    def pull_model_async(self, name: str, on_progress: Optional[Callable[[Progress], None]] = None,
                         insecure: bool = False) -> Future[TransferResult]:
        request = self._pull_request(name, insecure)
        on_event = None
        if on_progress is not None:
            on_event = lambda e: on_progress(e) if isinstance(e, Progress) else None  # noqa: E731
        _, future = run_future(lambda handler: self._start(request, handler), on_event)
        return future

    async def apull_model(self, name: str, on_progress: Optional[Callable[[Progress], None]] = None,
                          insecure: bool = False) -> TransferResult:
        return await asyncio.wrap_future(self.pull_model_async(name, on_progress, insecure))

    def pull_models_parallel(self, names: Sequence[str], handler: StreamHandler,
                             insecure: bool = False) -> list[TransferHandle]:
        """Start one pull per name; events for all of them arrive on ``handler``."""
        requests = [self._pull_request(name, insecure) for name in names]
        return self._orchestrator.start_all(requests, handler)

    def pull_models_async(self, names: Sequence[str],
                          on_event: Optional[Callable[[StreamEvent], None]] = None,
                          insecure: bool = False) -> Future[list[TransferResult]]:
        """Pull every name concurrently; results come back in ``names`` order."""
        requests = [self._pull_request(name, insecure) for name in names]
        return self._orchestrator.start_all_async(requests, on_event)

    async def apull_models(self, names: Sequence[str],
                           on_event: Optional[Callable[[StreamEvent], None]] = None) -> list[TransferResult]:
        return await asyncio.wrap_future(self.pull_models_async(names, on_event))

    # ------------------------------------------------------------------
    # catalogue and administration
    # ------------------------------------------------------------------

    def get_models(self) -> list[ModelInfo]:
        """Fetch the installed models from the server, bypassing the catalogue."""
        with self._tracer.start_as_current_span("suhaider.list_models"):
            return self._fetch_models()

    def refresh_models(self) -> list[ModelInfo]:
        return self.catalogue.refresh(force=True)

    def available_models(self) -> list[ModelInfo]:
        return self.catalogue.models()

    def is_model_available(self, name: str) -> bool:
        return self.catalogue.contains(name)

    def get_model_info(self, name: str) -> ModelInfo | None:
        return self.catalogue.get(name)

    def delete_model(self, name: str, check_exists: bool = True) -> bool:
        """Remove ``name`` from the server and from the catalogue."""
        self._require(name, "model name")
        if check_exists and self.catalogue.initialized and not self.catalogue.contains(name):
            self._logger.warning("model to delete is not in the catalogue: %s", name)
            raise ModelNotFoundError(404, f"model not found: {name}")

        try:
            self._request("DELETE", "/api/delete", {"name": name})
        except HTTPStatusError as e:
            if isinstance(e, ModelNotFoundError):
                raise
            raise HTTPStatusError(e.status_code, e.body, code=ErrorCode.MODEL_DELETE_FAILED) from e
        self.catalogue.remove(name)
        self._logger.info("model deleted: %s", name)
        return True

    def is_healthy(self) -> bool:
        """True when the server root answers with ``Ollama is running``."""
        try:
            response = self._http.get(self.config.url("/"))
        except httpx.HTTPError as e:
            self._logger.error("health check failed: %s", e)
            return False
        if not response.is_success:
            self._logger.warning("health check failed - HTTP %s", response.status_code)
            return False
        return "ollama is running" in response.text.lower()

    def close(self) -> None:
        """Cancel unfinished transfers, wait for their workers and close the HTTP clients."""
        with self._handles_lock:
            live = [h for h in self._handles if not h.is_done()]
            self._handles.clear()
        if live:
            self._logger.info("cancelling %d unfinished transfers on close", len(live))
        for handle in live:
            handle.cancel()
        # queued transfers see their cancelled flag and finish at once
        self._executor.shutdown(wait=True)
        if self._stream_http is not self._http:
            self._stream_http.close()
        self._http.close()

    def __enter__(self) -> "SuhAiderClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
