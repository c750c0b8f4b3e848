"""Optional logging setup for applications embedding the client."""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

DEFAULT_LOG_FILENAME = "suhaider.log"
DEFAULT_LOG_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 3

_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"


def init_logging(
    level: str = "INFO",
    log_dir: Path | None = None,
    log_name: str = DEFAULT_LOG_FILENAME,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    http_level: str = "WARNING",
) -> Path | None:
    """Configure the root logger with a console handler and an optional rotating file.

    ``http_level`` applies to ``suhaider.http`` (request/response JSONL records)
    as well as ``httpx`` and ``httpcore``. Calling it again replaces the handlers.
    Returns the log file path when ``log_dir`` is given.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(_FORMAT, "%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(numeric)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    log_path = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / log_name
        fh = logging.handlers.RotatingFileHandler(str(log_path), maxBytes=max_bytes,
                                                  backupCount=backup_count, encoding="utf-8", delay=True)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    http_numeric = getattr(logging, http_level.upper(), logging.WARNING)
    for noisy in ("suhaider.http", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(http_numeric)

    logging.getLogger(__name__).info("logging initialized%s", f" -> {log_path}" if log_path else "")
    return log_path
