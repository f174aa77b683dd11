"""Process-wide ``syncgate`` logger: stderr always, plus a rotating file when ``log_dir`` is writable."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from syncgate.config.settings import settings

LOG_FILE_NAME = "syncgate.log"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 10
_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _level_from(raw: str) -> int:
    name = str(raw or "").strip().upper()
    return getattr(logging, name) if name in _LEVELS else logging.INFO


def _file_handler(log_dir: str) -> logging.Handler | None:
    # empty log_dir means stderr only
    if not log_dir.strip():
        return None
    directory = Path(log_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            directory / LOG_FILE_NAME,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError:
        # serverless and read-only container filesystems
        return None


def _build_logger() -> logging.Logger:
    built = logging.getLogger("syncgate")
    if built.handlers:
        return built

    level = _level_from(settings.log_level)
    formatter = logging.Formatter(
        f"%(asctime)s | %(levelname)s | {settings.env} | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_handler = _file_handler(settings.log_dir)
    if file_handler is not None:
        handlers.append(file_handler)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        built.addHandler(handler)

    built.setLevel(level)
    built.propagate = False
    return built


logger = _build_logger()
