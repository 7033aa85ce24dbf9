# utils/logger.py
"""
Console + rotating-file logging for the engine.

Settings come from the loaded config (``LOG_LEVEL``, ``LOG_FILE``,
``LOG_MAX_MB``, ``LOG_BACKUPS``), not from the process environment at
import time, so values from ``config.env`` take effect.  ``configure_logging``
attaches the handlers to the root logger; module loggers created with
``logging.getLogger(__name__)`` propagate to it.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Mapping, Optional, Union

DEFAULT_LOG_FILE = "logs/engine.log"
DEFAULT_MAX_MB = 5
DEFAULT_BACKUPS = 5

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

# libraries that log every request or loop event at INFO/DEBUG
_NOISY = ("aiohttp.access", "asyncio", "httpx", "telegram")


def setup_logger(name: str,
                 level: Union[str, int] = "INFO",
                 log_file: Optional[str] = DEFAULT_LOG_FILE,
                 to_console: bool = True,
                 max_mb: int = DEFAULT_MAX_MB,
                 backups: int = DEFAULT_BACKUPS) -> logging.Logger:
    """
    Create/get a logger with console and rotating-file handlers.
    Re-using the same name returns the same configured logger (no duplicate handlers).
    ``log_file=None`` disables the file handler.
    """
    logger = logging.getLogger(name)
    if any(getattr(h, "_engine_handler", False) for h in logger.handlers):
        return logger

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(level)

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    handlers = []

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=int(max_mb) * 1024 * 1024,
            backupCount=int(backups),
            encoding="utf-8",
        ))

    if to_console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler._engine_handler = True
        logger.addHandler(handler)

    for noisy in _NOISY:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def configure_logging(config: Mapping, name: str = "PredictionEngine") -> logging.Logger:
    """Install the root handlers from config and return the named engine logger."""
    setup_logger(
        "",
        config.get("LOG_LEVEL") or "INFO",
        log_file=config.get("LOG_FILE", DEFAULT_LOG_FILE),
        max_mb=config.get("LOG_MAX_MB") or DEFAULT_MAX_MB,
        backups=config.get("LOG_BACKUPS", DEFAULT_BACKUPS),
    )
    return logging.getLogger(name)
