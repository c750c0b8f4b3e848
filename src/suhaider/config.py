"""Client configuration and its YAML / environment loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import httpx
import yaml
from pydantic import BaseModel, Field

from .chunking import ChunkingConfig

DEFAULT_BASE_URL = "http://127.0.0.1:11434"


class SecurityConfig(BaseModel):
    """Optional authentication header added to every request."""

    header_name: str = "X-API-Key"
    header_value_format: str = "{value}"
    api_key: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def header(self) -> dict[str, str]:
        """Return the header mapping, empty when no key is configured."""
        if not self.enabled:
            return {}
        return {self.header_name: self.header_value_format.replace("{value}", self.api_key)}

    @property
    def masked_key(self) -> str:
        """The API key with all but its first four characters hidden, for logs."""
        if not self.api_key or len(self.api_key) <= 4:
            return "****"
        return self.api_key[:4] + "****"


class ModelRefreshConfig(BaseModel):
    """How the in-memory model catalogue is populated."""

    load_on_startup: bool = True
    reload_interval: int = 300


class EmbeddingConfig(BaseModel):
    """Defaults applied to embedding requests that leave them unset."""

    default_model: str = "nomic-embed-text"
    truncate: bool = True
    keep_alive: str | None = "5m"
    dimensions: int | None = None
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)


class ClientConfig(BaseModel):
    """Static connection settings for :class:`~suhaider.client.SuhAiderClient`.

    Timeouts are in seconds. ``read_timeout`` applies to buffered calls and to
    generate/chat streams; pull streams always read without a timeout.
    """

    base_url: str = DEFAULT_BASE_URL
    connect_timeout: float = 30
    read_timeout: float = 120
    write_timeout: float = 30
    max_workers: int = 16
    debug: bool = False
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    model_refresh: ModelRefreshConfig = Field(default_factory=ModelRefreshConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    def timeout(self, *, unbounded_read: bool = False) -> httpx.Timeout:
        """Build the ``httpx.Timeout`` for a request."""
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=None if unbounded_read else self.read_timeout,
            write=self.write_timeout,
            pool=self.connect_timeout,
        )

    @classmethod
    def from_file(cls, file_path: str | Path) -> "ClientConfig":
        """Load settings from a YAML file, then apply environment overrides."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping")

        # accept the 'suh.aider' property nesting
        if "suh" in data and isinstance(data["suh"], dict):
            data = (data["suh"].get("aider") or {})
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: dict[str, Any], env: dict[str, str] | None = None) -> "ClientConfig":
        """Build a config from ``data`` with ``SUH_AIDER_*`` environment overrides."""
        env = os.environ if env is None else env
        merged = {k.replace("-", "_"): v for k, v in data.items()}
        for section in ("security", "model_refresh", "embedding"):
            if isinstance(merged.get(section), dict):
                merged[section] = {k.replace("-", "_"): v for k, v in merged[section].items()}
        embedding = merged.get("embedding")
        if isinstance(embedding, dict) and isinstance(embedding.get("chunking"), dict):
            embedding["chunking"] = {k.replace("-", "_"): v for k, v in embedding["chunking"].items()}

        if env.get("SUH_AIDER_BASE_URL"):
            merged["base_url"] = env["SUH_AIDER_BASE_URL"]
        if env.get("SUH_AIDER_READ_TIMEOUT"):
            merged["read_timeout"] = float(env["SUH_AIDER_READ_TIMEOUT"])
        api_key = env.get("SUH_AIDER_API_KEY") or env.get("AI_API_KEY")
        if api_key:
            merged.setdefault("security", {})
            merged["security"] = {**merged["security"], "api_key": api_key}

        return cls(**merged)


def load_config(file_path: str | Path | None = None) -> ClientConfig:
    """Load a :class:`ClientConfig` from ``file_path`` or from the environment only."""
    if file_path is None:
        return ClientConfig.from_mapping({})
    return ClientConfig.from_file(file_path)
