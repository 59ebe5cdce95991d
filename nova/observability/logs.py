"""Logging setup for Nova: stdout plus an optional rotating log file."""

from __future__ import annotations

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nova.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _gzip_namer(name: str) -> str:
    return name + ".gz"


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


def build_file_handler(settings: Settings) -> RotatingFileHandler:
    """Create the size-rotated file handler described by the settings."""
    path = Path(settings.LOG_FILE or "logs/nova.log")
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        path,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    if settings.LOG_COMPRESS:
        handler.namer = _gzip_namer
        handler.rotator = _gzip_rotator
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(settings: Settings) -> None:
    """Configure root logging from the settings.

    Safe to call more than once; later calls replace earlier handlers.
    """
    handlers: list[logging.Handler] = []
    if settings.LOG_CONSOLE:
        handlers.append(logging.StreamHandler(sys.stdout))
    if settings.LOG_FILE:
        handlers.append(build_file_handler(settings))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
