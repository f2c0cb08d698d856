from __future__ import annotations

import logging
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Chatty third-party loggers that drown out export progress at DEBUG.
NOISY_LOGGERS = ("httpx", "httpcore", "multipart", "redis")


def configure_logging(level: str = "INFO", *, quiet: Iterable[str] = NOISY_LOGGERS) -> None:
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    for name in quiet:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(getattr(logging, level.upper(), logger.level))
    return logger


def megabytes(num_bytes: int | float) -> str:
    return f"{num_bytes / 1024 / 1024:.2f}MB"
