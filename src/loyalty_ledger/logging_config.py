"""Structured logging configuration using structlog.

Two pipelines share the same front half:
- console: colored, human-readable output for development
- json: one JSON object per line for production, with the app name and
  environment attached and client personal data masked

Services log snake_case events with ids as keyword fields, e.g.
``logger.info("points_credited", account_id=account_id, amount=100)``.
"""

import logging
import sys
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from loyalty_ledger.config import Settings, get_settings

# Event keys that carry personal data and must not reach production logs verbatim
SENSITIVE_KEYS = frozenset({"email", "actor_email", "identity_document"})

# Store drivers are chatty at DEBUG
_QUIET_LOGGERS = ("psycopg2", "asyncio")


def mask_value(value: Any) -> str | None:
    """Mask a value, keeping only enough of it to correlate log lines.

    Emails keep their first character and domain: ``a***@example.com``.
    """
    if value is None:
        return None
    text = str(value)
    if "@" in text:
        local, _, domain = text.partition("@")
        return f"{local[:1]}***@{domain}"
    return f"{text[:2]}***" if len(text) > 2 else "***"


def _mask_sensitive_values(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    for key in SENSITIVE_KEYS & event_dict.keys():
        event_dict[key] = mask_value(event_dict[key])
    return event_dict


def _add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    settings = get_settings()
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("environment", settings.environment.value)
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def get_console_processors() -> list[Processor]:
    return [
        *_shared_processors(),
        structlog.dev.ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        ),
    ]


def get_json_processors() -> list[Processor]:
    return [
        *_shared_processors(),
        _add_app_context,
        _mask_sensitive_values,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog and the stdlib root logger from settings.

    Call once at process start, before the container is built.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.value)
    processors = (
        get_json_processors()
        if settings.log_format == "json"
        else get_console_processors()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if settings.log_file:
        _add_file_handler(settings.log_file, level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))


def _add_file_handler(log_file: Path, level: int) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    logging.getLogger().addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, usually with ``get_logger(__name__)``."""
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every log line emitted from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind log fields for the duration of a with block.

    Fields that were already bound are restored on exit:

        with LogContext(client_id=client_id, account_id=account_id):
            ledger.credit_points(...)
    """

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self._bound: AbstractContextManager[None] | None = None

    def __enter__(self) -> "LogContext":
        self._bound = structlog.contextvars.bound_contextvars(**self.kwargs)
        self._bound.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        if self._bound is not None:
            self._bound.__exit__(*args)
            self._bound = None
