"""
Logging for the bundler.

All modules log through children of the ``tsbundler`` logger, e.g.
``tsbundler.core.module_loader``. The package logger owns the handlers: a
console handler writing ``LEVEL: message`` to stderr and, when requested, a
rotating file handler with timestamps and source locations. Bundle text goes
to stdout, so log output never mixes with it.

Examples:
    >>> from tsbundler.utils.logger import get_logger, setup_logger
    >>> setup_logger("tsbundler", level="DEBUG", log_file=Path("logs/tsbundler.log"))
    >>> get_logger("tsbundler.core.reachability").debug("Renamed Age -> Age_profile")
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from .path_utils import ensure_directory

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
SIMPLE_FORMAT = "%(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Rotation limits of the file handler
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _level_number(level: str) -> int:
    name = level.upper()
    if name not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of {VALID_LOG_LEVELS}")
    return getattr(logging, name)


def _is_console_handler(handler: logging.Handler) -> bool:
    # RotatingFileHandler is itself a StreamHandler subclass
    return isinstance(handler, logging.StreamHandler) and not isinstance(
        handler, logging.handlers.RotatingFileHandler
    )


def setup_logger(
    name: str,
    level: str = "INFO",
    log_file: Path | None = None
) -> logging.Logger:
    """
    Configure the logger ``name`` with a console handler and, optionally, a
    rotating log file.

    Calling it again for the same logger updates its level but never adds a
    second console or file handler.

    Args:
        name: Logger name, normally ``"tsbundler"``.
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive).
        log_file: File receiving DEBUG and above in the detailed format.

    Raises:
        ValueError: If level is not a valid log level.
    """
    numeric = _level_number(level)

    logger = logging.getLogger(name)
    logger.setLevel(numeric)

    if not any(_is_console_handler(h) for h in logger.handlers):
        add_console_handler(logger, level)

    has_file_handler = any(
        isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers
    )
    if log_file is not None and not has_file_handler:
        add_file_handler(logger, log_file, level="DEBUG")

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Return the logger ``name`` for use by a module.

    Nothing is configured when the logger, one of its ancestors or the root
    logger already has handlers; records reach them through propagation.
    Otherwise the top-level package logger (``"tsbundler"`` for
    ``"tsbundler.core.emitter"``) is set up at INFO, so all module loggers
    of the package share one console handler.
    """
    logger = logging.getLogger(name)
    if logger.hasHandlers():
        return logger

    package = name.split(".", 1)[0]
    setup_logger(package)
    return logger


def set_log_level(logger: logging.Logger, level: str) -> None:
    """
    Set the level of ``logger`` and of its console handlers.

    File handlers keep their own level so a log file can stay at DEBUG
    while the console is quieter.

    Raises:
        ValueError: If level is not valid.
    """
    numeric = _level_number(level)
    logger.setLevel(numeric)
    for handler in logger.handlers:
        if _is_console_handler(handler):
            handler.setLevel(numeric)


def add_file_handler(
    logger: logging.Logger,
    log_file: Path,
    level: str = "DEBUG"
) -> None:
    """
    Attach a UTF-8 rotating file handler using the detailed format.

    The parent directory of ``log_file`` is created when missing.

    Raises:
        ValueError: If level is not valid.
        OSError: If the log directory cannot be created.
    """
    numeric = _level_number(level)
    ensure_directory(log_file.parent)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric)
    file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)


def add_console_handler(logger: logging.Logger, level: str = "INFO") -> None:
    """Attach a stderr handler using the simple ``LEVEL: message`` format."""
    console_handler = logging.StreamHandler()
    console_handler.setLevel(_level_number(level))
    console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
    logger.addHandler(console_handler)
