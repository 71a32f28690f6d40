"""Logging setup shared by the CLI and the Celery worker."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_level(level_name: str | None) -> int:
    if not level_name:
        return logging.INFO
    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def build_file_handler(file_path: str) -> logging.FileHandler:
    path = Path(file_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(config: LoggingConfig | None = None) -> None:
    config = config or LoggingConfig()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.file_path:
        handlers.append(build_file_handler(config.file_path))
    logging.basicConfig(level=resolve_level(config.level), format=LOG_FORMAT, handlers=handlers)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
