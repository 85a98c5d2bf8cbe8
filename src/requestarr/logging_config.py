"""
Logging configuration for Requestarr.

This module provides the structlog setup shared by the CLI and any process
embedding the data core:
- Console output plus rotating log files
- Separate error log, and a debug log when LOG_LEVEL=DEBUG
- JSON rendering in production, human-readable rendering elsewhere
- Automatic filtering of sensitive values
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog

from requestarr.config import Settings

MAX_LOG_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5

SENSITIVE_KEYS = {
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "auth",
    "authorization",
    "key",
    "pepper",
    "p256dh",
    "database_url",
}


def drop_color_message_key(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Remove the color_message key some libraries attach to records."""
    event_dict.pop("color_message", None)
    return event_dict


def censor_sensitive_data(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Filter sensitive data from log messages.

    Any key containing one of SENSITIVE_KEYS has its string value masked,
    keeping the first four characters for debugging.
    """
    for key, value in event_dict.items():
        if key == "event":
            continue
        if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
            if isinstance(value, str) and len(value) > 0:
                event_dict[key] = f"{value[:4]}{'*' * (min(max(len(value) - 4, 0), 8))}"

    return event_dict


def _rotating_handler(path: Path, level: int, fmt: str) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def configure_logging(app_settings: Settings | None = None, to_files: bool = True) -> None:
    """
    Configure application logging.

    Sets up:
    1. Console handler - always enabled, respects LOG_LEVEL
    2. File handlers with rotation (when to_files is True):
       - all.log - everything at INFO and above (DEBUG in debug mode)
       - error.log - ERROR and CRITICAL only
       - debug.log - everything, only when LOG_LEVEL=DEBUG

    Args:
        app_settings: Settings to configure from (defaults to the global settings)
        to_files: Whether to attach the rotating file handlers
    """
    if app_settings is None:
        from requestarr.config import settings as app_settings

    log_level = getattr(logging, app_settings.log_level.upper())
    is_debug = app_settings.log_level.upper() == "DEBUG"
    is_production = app_settings.environment == "production"

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        censor_sensitive_data,
        drop_color_message_key,
    ]

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    log_dir = Path(app_settings.log_dir)
    if to_files:
        log_dir.mkdir(parents=True, exist_ok=True)
        plain = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        handlers.append(
            _rotating_handler(log_dir / "all.log", logging.DEBUG if is_debug else logging.INFO, plain)
        )
        handlers.append(_rotating_handler(log_dir / "error.log", logging.ERROR, plain))
        if is_debug:
            handlers.append(
                _rotating_handler(
                    log_dir / "debug.log",
                    logging.DEBUG,
                    "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d\n%(message)s\n",
                )
            )

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=handlers,
        force=True,
    )

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer() if is_production else structlog.dev.ConsoleRenderer(),
        ],
    )

    for handler in handlers:
        handler.setFormatter(formatter)

    # SQL echo is controlled by the engine, keep the pool chatter down
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING if not is_debug else logging.INFO)

    logger = structlog.get_logger(__name__)
    logger.info(
        "logging_configured",
        log_level=app_settings.log_level,
        environment=app_settings.environment,
        log_dir=str(log_dir.absolute()) if to_files else None,
        handlers={
            "console": True,
            "all_log": to_files,
            "error_log": to_files,
            "debug_log": to_files and is_debug,
        },
    )
