"""
structlog setup for the movement service.

Events are rendered as colored key/value lines in development and as one
JSON object per line everywhere else (or whenever ``LOG_JSON=true``). Per
request values such as the request id and acting user travel through
``structlog.contextvars`` so any logger picks them up.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from src.config.settings import get_settings

# Libraries that are chatty at INFO.
QUIET_LOGGERS = ("aiosqlite", "httpcore", "httpx", "uvicorn.access")


def add_service_info(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    settings = get_settings()
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.environment)
    return event_dict


def _renderer(json_output: bool) -> list[Processor]:
    if json_output:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def configure_logging() -> None:
    """Route structlog through stdlib logging at the configured level."""
    settings = get_settings()
    json_output = settings.log_json or settings.environment != "development"

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_service_info,
        *_renderer(json_output),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = logging.getLevelName(settings.log_level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


@contextmanager
def request_log_context(**values: Any) -> Iterator[None]:
    """Attach values to every event logged inside the block, then drop them."""
    structlog.contextvars.clear_contextvars()
    try:
        with structlog.contextvars.bound_contextvars(**values):
            yield
    finally:
        structlog.contextvars.clear_contextvars()


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
