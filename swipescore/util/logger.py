"""Project-wide logger: stderr plus a rotating file under ``settings.log_dir``."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from swipescore.config.settings import settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_NAME = "swipescore.log"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 5

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def _normalize_level(raw: str) -> int:
    return _LEVELS.get(str(raw or "INFO").strip().upper(), logging.INFO)


def _file_handler(raw_dir: str, level: int, formatter: logging.Formatter) -> logging.Handler | None:
    if not raw_dir.strip():
        return None
    log_dir = Path(raw_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError:
        # unwritable log dir (read-only container mount): stderr only
        return None
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _build_logger() -> logging.Logger:
    root = logging.getLogger("swipescore")
    if root.handlers:
        return root

    level = _normalize_level(settings.log_level)
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    file_handler = _file_handler(settings.log_dir, level, formatter)
    if file_handler is not None:
        root.addHandler(file_handler)

    root.propagate = False
    return root


logger = _build_logger()


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the swipescore namespace."""

    return logger.getChild(name)
