"""Centralized logging helpers for the updater and downloader."""

from __future__ import annotations

import logging
import sys
import tempfile
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
UPDATER_LOG_FILE = Path(tempfile.gettempdir()) / "ytDownloader_updater.log"


def setup_logging(log_file: Optional[Path] = None) -> Path:
    """Configure logging to write to both stdout and ``log_file``."""

    target = Path(log_file) if log_file is not None else UPDATER_LOG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    handlers = [
        logging.FileHandler(target, encoding="utf-8"),
        logging.StreamHandler(sys.stdout),
    ]
    logging.basicConfig(
        level=logging.DEBUG,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    return target


def get_logger(name: str) -> logging.Logger:
    """Return a logger instance with the shared configuration."""

    return logging.getLogger(name)


__all__ = ["LOG_FORMAT", "UPDATER_LOG_FILE", "get_logger", "setup_logging"]
