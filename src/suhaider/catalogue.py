"""In-memory catalogue of models installed on the server."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from .models import ModelInfo

logger = logging.getLogger(__name__)


class ModelCatalogue:
    """Models known to be installed, keyed by name.

    All reads and writes go through one lock, so pull workers adding models
    never race with readers. ``fetch`` runs under a separate lock so a slow
    refresh does not block readers.
    """

    def __init__(self, fetch: Callable[[], List[ModelInfo]], reload_interval: int = 300) -> None:
        self._fetch = fetch
        self._reload_interval = reload_interval
        self._lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._models: List[ModelInfo] = []
        self._initialized = False
        self._last_loaded = 0.0

    @property
    def initialized(self) -> bool:
        return self._initialized

    def refresh(self, force: bool = False) -> List[ModelInfo]:
        """Reload from the server when forced or when the reload interval elapsed."""
        with self._refresh_lock:
            now = time.time()
            if force or not self._initialized or now - self._last_loaded >= self._reload_interval:
                models = list(self._fetch())
                with self._lock:
                    self._models = models
                    self._initialized = True
                    self._last_loaded = now
                logger.info("model catalogue refreshed: %d models", len(models))
        return self.models()

    def models(self) -> List[ModelInfo]:
        with self._lock:
            return list(self._models)

    def names(self) -> List[str]:
        with self._lock:
            return [m.name for m in self._models]

    def contains(self, name: str) -> bool:
        """Whether ``name`` is installed. True before the first refresh; the server decides then."""
        with self._lock:
            if not self._initialized:
                return True
            return any(m.name == name for m in self._models)

    def get(self, name: str) -> Optional[ModelInfo]:
        with self._lock:
            return next((m for m in self._models if m.name == name), None)

    def add(self, name: str) -> None:
        with self._lock:
            if not self._initialized:
                return
            if any(m.name == name for m in self._models):
                return
            self._models.append(ModelInfo(name=name, model=name))
        logger.debug("catalogue: added %s", name)

    def remove(self, name: str) -> None:
        with self._lock:
            if not self._initialized:
                return
            self._models = [m for m in self._models if m.name != name]
        logger.debug("catalogue: removed %s", name)
