"""Logging setup: a rotating text log, an optional JSON-lines twin, and stderr."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import Any, Dict, Union

LOG_SUBPATH = Path("logs") / "cfgsync.log"
STRUCTURED_LOG_SUBPATH = Path("logs") / "cfgsync.jsonl"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3
REPO_ROOT = Path(__file__).resolve().parent.parent
FALLBACK_ROOT = REPO_ROOT / ".cfgsync_runtime"
NOISY_LOGGERS = ("httpx", "httpcore")
ROOT_LOGGER = "cfgsync"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = getattr(record, "extra", None)
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    home_dir: Path,
    level: Union[str, int] = logging.WARNING,
    structured: bool = True,
) -> Path:
    """Point the ``cfgsync`` logger tree at ``<home>/logs``.

    Calling it again replaces the previous handlers. Returns the text log
    path, which lives under ``FALLBACK_ROOT`` when the home is read-only.
    """

    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(_numeric_level(level))
    logger.propagate = False

    text_format = logging.Formatter(TEXT_FORMAT)
    log_path = _writable_path(home_dir, LOG_SUBPATH)
    logger.addHandler(_rotating(log_path, text_format))

    console = logging.StreamHandler()
    console.setFormatter(text_format)
    logger.addHandler(console)

    if structured:
        logger.addHandler(_rotating(_writable_path(home_dir, STRUCTURED_LOG_SUBPATH), JSONFormatter()))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_path


def _rotating(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def _numeric_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.WARNING


def _writable_path(home_dir: Path, subpath: Path) -> Path:
    target = home_dir / subpath
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        target = FALLBACK_ROOT / subpath
        target.parent.mkdir(parents=True, exist_ok=True)
        print(
            f"[config] Cannot write logs under '{home_dir}'; using '{target.parent}' instead.",
            file=sys.stderr,
        )
    return target


__all__ = ["FALLBACK_ROOT", "JSONFormatter", "LOG_SUBPATH", "STRUCTURED_LOG_SUBPATH", "setup_logging"]
