"""
logger.py
---------
One stdout handler for the API, the workflows and the client.

Modules call `get_logger(__name__)`. The first call installs the handler at
LOG_LEVEL and turns down the chatty third-party loggers (per-request httpx
lines, SQLAlchemy pool and engine chatter, the Gemini SDK) to
LIBRARY_LOG_LEVEL, unless DEBUG is set.
"""

import logging
import sys

import config

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "sqlalchemy.pool", "google")

_initialized = False


def _level(name: str, default: int) -> int:
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def _init_logging() -> None:
    global _initialized
    if _initialized:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    root = logging.getLogger()
    root.setLevel(_level(config.LOG_LEVEL, logging.INFO))
    root.addHandler(handler)
    if not config.DEBUG:
        library_level = _level(config.LIBRARY_LOG_LEVEL, logging.WARNING)
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(library_level)
    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Named logger; configures logging on first use."""
    _init_logging()
    return logging.getLogger(name)
