"""
Logging for the CLI: the `perp_bot` logger writes to stdout and, when a log
file is configured, to a size-rotated file (the live loop runs for days).
"""

from __future__ import annotations
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP clients behind python-binance and the Telegram notifier log every request at DEBUG
NOISY_LOGGERS = ("urllib3", "binance", "requests")


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 5_000_000,
    backup_count: int = 5,
) -> logging.Logger:
    """
    (Re)configure the package logger. Safe to call repeatedly: previous
    handlers are closed first. Never log the Telegram token.
    """
    logger = logging.getLogger("perp_bot")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    while logger.handlers:
        handler = logger.handlers[0]
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir and log_file:
        path = Path(log_dir) / log_file
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger
