"""
Logging for Funcbase.

Everything logs through loguru. Records from uvicorn and SQLAlchemy, which use
the standard library, are forwarded to it, so one sink configuration covers
the request log, SQL echo and pipeline runs alike.
"""

import inspect
import logging
import sys

from loguru import logger as _logger

from funcbase.settings import settings

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Standard library loggers forwarded to loguru
FORWARDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine")


class InterceptHandler(logging.Handler):
    """Forwards standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the frame that called logging, not the logging module itself
        frame, depth = inspect.currentframe(), 0
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging() -> None:
    """Configure sinks from ``settings``: stderr always, a rotated file when enabled."""
    level = settings.log_level
    format = settings.log_format or DEFAULT_FORMAT

    _logger.remove()
    _logger.add(sys.stderr, level=level, format=format, colorize=True, backtrace=True)

    if settings.log_to_file:
        log_dir = settings.get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        _logger.add(
            str(log_dir / "funcbase.log"),
            level=level,
            format=format,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in FORWARDED_LOGGERS:
        logging.getLogger(name).handlers = [InterceptHandler()]


setup_logging()

logger = _logger
