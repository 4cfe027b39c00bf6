"""
logging_config.py — Centralized Logging Configuration for OrderSync

Sets up Loguru as the single logging backend. The store, connector,
scheduler and service modules log through logging.getLogger(__name__);
an intercept handler routes those records into Loguru.

Business Rules:
- All logs go through Loguru (no direct print() or bare stdlib handlers)
- APP_ENV=production → JSON lines on stdout, plus a rotating JSON file
  when LOG_FILE is set (50MB files, 7-day retention)
- Anything else → colored human format
- Lines emitted during a Dolibarr import carry its sync_run tag ("-"
  outside an import)

Called by: ordersync/main.py (lifespan startup)
Depends on: environment (LOG_LEVEL, APP_ENV, LOG_FILE)
"""

import logging
import os
import sys

from loguru import logger

_DEV_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[sync_run]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging. Call once at startup."""
    logger.remove()
    logger.configure(extra={"sync_run": "-"})

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    is_production = os.getenv("APP_ENV", "development").lower() == "production"

    if is_production:
        logger.add(sys.stdout, level=log_level, format="{message}", serialize=True)
        log_file = os.getenv("LOG_FILE")
        if log_file:
            logger.add(
                log_file,
                level=log_level,
                rotation="50 MB",
                retention="7 days",
                compression="gz",
                serialize=True,
            )
    else:
        logger.add(sys.stdout, level=log_level, format=_DEV_FORMAT, colorize=True)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, production=is_production)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
