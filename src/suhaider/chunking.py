"""Splitting long text into pieces that fit an embedding model's context."""

from __future__ import annotations

import logging
import re
from enum import Enum

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BREAK = re.compile(r"\n\n+")


class ChunkingStrategy(str, Enum):
    FIXED_SIZE = "FIXED_SIZE"
    SENTENCE = "SENTENCE"
    PARAGRAPH = "PARAGRAPH"


class ChunkingConfig(BaseModel):
    """How :func:`chunk_text` splits text. Sizes count characters, roughly four per token."""

    strategy: ChunkingStrategy = ChunkingStrategy.FIXED_SIZE
    chunk_size: int = Field(default=500, gt=0)
    overlap_size: int = Field(default=50, ge=0)
    enabled: bool = False

    @field_validator("strategy", mode="before")
    @classmethod
    def _known_strategy(cls, value):
        if isinstance(value, str):
            try:
                return ChunkingStrategy(value.strip().upper().replace("-", "_"))
            except ValueError:
                logger.warning("unknown chunking strategy %r, using FIXED_SIZE", value)
                return ChunkingStrategy.FIXED_SIZE
        return value

    @classmethod
    def fixed_size(cls, chunk_size: int = 500, overlap_size: int = 50) -> "ChunkingConfig":
        return cls(strategy=ChunkingStrategy.FIXED_SIZE, chunk_size=chunk_size,
                   overlap_size=overlap_size, enabled=True)

    @classmethod
    def sentence(cls, max_chunk_size: int = 500) -> "ChunkingConfig":
        return cls(strategy=ChunkingStrategy.SENTENCE, chunk_size=max_chunk_size, overlap_size=0, enabled=True)

    @classmethod
    def paragraph(cls, max_chunk_size: int = 500) -> "ChunkingConfig":
        return cls(strategy=ChunkingStrategy.PARAGRAPH, chunk_size=max_chunk_size, overlap_size=0, enabled=True)


def chunk_text(text: str | None, config: ChunkingConfig) -> list[str]:
    """Split ``text`` according to ``config``.

    Empty text gives no chunks; a disabled config gives the text unchanged as
    the only chunk. Sentence and paragraph pieces are merged up to
    ``chunk_size`` and a single piece longer than that is cut hard.
    """
    if not text:
        return []
    if not config.enabled:
        return [text]

    if config.strategy is ChunkingStrategy.SENTENCE:
        chunks = _merge(_SENTENCE_END.split(text), config.chunk_size)
    elif config.strategy is ChunkingStrategy.PARAGRAPH:
        chunks = _merge(_PARAGRAPH_BREAK.split(text), config.chunk_size)
    else:
        chunks = _fixed_size(text, config.chunk_size, config.overlap_size)
    logger.debug("chunked %d chars into %d chunks", len(text), len(chunks))
    return chunks


def _fixed_size(text: str, size: int, overlap: int) -> list[str]:
    step = max(size - overlap, 1)
    chunks = []
    for start in range(0, len(text), step):
        end = min(start + size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
    return chunks


def _merge(parts: list[str], size: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for part in parts:
        part = part.strip()
        if not part:
            continue
        if len(current) + len(part) + 1 > size:
            if current:
                chunks.append(current)
                current = ""
            if len(part) > size:
                chunks.extend(part[i:i + size] for i in range(0, len(part), size))
                continue
        current = f"{current} {part}" if current else part
    if current:
        chunks.append(current)
    return chunks
