"""
logging.py — Logging Setup for the Modeling Engine

Purpose:
- One console format shared by the API and the modeling services:
  timestamp | level | module | message
- Rejected row-tree edits and invalid revenue configurations are reported
  here as warnings instead of exceptions, so the log is the place to look
  when an edit "did nothing".
"""

import logging
import sys
from typing import Iterable

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("uvicorn.access", "multipart", "httpx")


def configure_logging(level: str = "INFO", quiet: Iterable[str] = NOISY_LOGGERS) -> None:
    """
    Configure the root logger. Called once from `main.py`.

    Parameters:
        level (str): "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL";
            unknown names fall back to INFO.
        quiet: logger names capped at WARNING.
    """
    resolved = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, stream=sys.stdout)
    logging.getLogger().setLevel(resolved)
    for name in quiet:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    logging.getLogger(__name__).info("Logging configured (level=%s)", logging.getLevelName(resolved))


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from finmodel.core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
