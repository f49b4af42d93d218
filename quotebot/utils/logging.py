"""Structured logging configuration for the market making bot."""

from __future__ import annotations

import logging
import logging.config
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from pythonjsonlogger import jsonlogger

from ..core.config.settings import Settings

ROOT_LOGGER = "quotebot"

# Attributes every LogRecord carries; anything else came in through structlog.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "environment",
    "service",
}


class QuoteBotLogFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter for bot logs."""

    def __init__(self, *args, **kwargs):
        """Initialize the formatter with custom field names."""
        kwargs.setdefault('rename_fields', {
            'levelname': 'level',
            'name': 'logger',
            'asctime': 'timestamp',
        })
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        """Add custom fields to log records."""
        super().add_fields(log_record, record, message_dict)

        log_record['service'] = getattr(record, 'service', ROOT_LOGGER)
        log_record['environment'] = getattr(record, 'environment', 'development')


class KeyValueFormatter(logging.Formatter):
    """Human readable formatter that appends structured context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }
        if not context:
            return line
        pairs = " ".join(f"{key}={_render(value)}" for key, value in sorted(context.items()))
        return f"{line} {pairs}"


def _render(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)


class QuoteBotLogFilter(logging.Filter):
    """Stamp environment and service names on every record."""

    def __init__(self, environment: str = "development", service: str = ROOT_LOGGER):
        super().__init__()
        self.environment = environment
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = self.environment
        record.service = self.service
        return True


def build_log_config(settings: Settings, log_level: Optional[str] = None) -> Dict[str, Any]:
    """Build a ``logging.config.dictConfig`` mapping from settings.

    Args:
        settings: Application settings
        log_level: Override for the configured level

    Returns:
        Logging configuration dictionary
    """
    level = (log_level or settings.app.log_level).upper()
    console_formatter = "json" if settings.logging.enable_json_logging else "readable"

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "readable": {
                "()": KeyValueFormatter,
                "format": settings.logging.log_format,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": QuoteBotLogFormatter,
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": console_formatter,
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            ROOT_LOGGER: {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }

    if settings.logging.log_to_file:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "json",
            "filename": settings.logging.log_file_path,
            "maxBytes": settings.logging.log_max_file_size,
            "backupCount": settings.logging.log_backup_count,
        }
        config["loggers"][ROOT_LOGGER]["handlers"].append("file")

    return config


def setup_logging(settings: Settings, log_level: Optional[str] = None) -> None:
    """Configure stdlib logging and route structlog through it.

    Args:
        settings: Application settings
        log_level: Override log level
    """
    if settings.logging.log_to_file:
        Path(settings.logging.log_file_path).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(build_log_config(settings, log_level))

    logger = logging.getLogger(ROOT_LOGGER)
    logger.addFilter(QuoteBotLogFilter(
        environment=settings.app.environment,
        service=settings.app.name,
    ))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **context) -> structlog.stdlib.BoundLogger:
    """Get a logger under the ``quotebot`` namespace.

    Args:
        name: Logger name
        **context: Values bound to every event of this logger

    Returns:
        structlog logger
    """
    logger = structlog.get_logger(f"{ROOT_LOGGER}.{name}")
    if context:
        logger = logger.bind(**context)
    return logger


def log_error_with_context(logger, error: BaseException, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
    """Log error with additional context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context
        **kwargs: Additional error details
    """
    extra = {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs,
    }

    if context:
        extra.update(context)

    logger.error(f"Error: {type(error).__name__}: {error}", **extra)


def fallback_logging() -> None:
    """Basic stderr logging for failures that happen before settings exist."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )
