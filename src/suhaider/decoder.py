"""Turn NDJSON lines from the server into typed stream events."""

from __future__ import annotations

import json
import logging
from typing import Any

from .models import ChatChunk, Done, OperationKind, Progress, ServerError, StreamEvent, TextChunk

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def decode(line: str, kind: OperationKind, operation_id: str = "") -> list[StreamEvent]:
    """Decode one line. An empty list means the line carries nothing to deliver.

    Lines that are blank, not JSON or not a JSON object are skipped with a
    warning; they never raise.
    """
    text = line.strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("skipping malformed %s line (%s): %.200s", kind.value, e, text)
        return []
    if not isinstance(data, dict):
        logger.warning("skipping non-object %s line: %.200s", kind.value, text)
        return []

    error = data.get("error")
    if error:
        return [ServerError(operation_id=operation_id, message=str(error))]

    if kind is OperationKind.PULL:
        status = data.get("status")
        status = status if isinstance(status, str) else ""
        if status.lower() == "success":
            return [Done(operation_id=operation_id)]
        digest = data.get("digest")
        return [Progress(
            operation_id=operation_id,
            status=status,
            digest=digest if isinstance(digest, str) else None,
            completed=_as_int(data.get("completed")),
            total=_as_int(data.get("total")),
        )]

    events: list[StreamEvent] = []
    if kind is OperationKind.GENERATE:
        content = data.get("response")
        if isinstance(content, str) and content:
            events.append(TextChunk(operation_id=operation_id, content=content))
    else:
        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content:
            events.append(ChatChunk(operation_id=operation_id, content=content))

    if data.get("done") is True:
        reason = data.get("done_reason")
        events.append(Done(operation_id=operation_id, done_reason=reason if isinstance(reason, str) else None))
    return events


class StreamDecoder:
    """Per-transfer decoder that keeps pull progress monotonic.

    ``completed`` is clamped to ``total`` when ``total`` is known and never goes
    backwards for a digest already seen in this transfer.
    """

    def __init__(self, kind: OperationKind, operation_id: str = "") -> None:
        self.kind = kind
        self.operation_id = operation_id
        self._completed: dict[str, int] = {}

    def decode(self, line: str) -> list[StreamEvent]:
        events = decode(line, self.kind, self.operation_id)
        if self.kind is not OperationKind.PULL:
            return events
        return [self._normalize(e) if isinstance(e, Progress) else e for e in events]

    def _normalize(self, progress: Progress) -> Progress:
        completed = progress.completed
        if progress.digest is not None:
            completed = max(completed, self._completed.get(progress.digest, 0))
        if progress.total > 0 and completed > progress.total:
            completed = progress.total
        if progress.digest is not None:
            self._completed[progress.digest] = completed
        if completed == progress.completed:
            return progress
        return progress.model_copy(update={"completed": completed})
