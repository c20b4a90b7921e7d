"""Settings and logging."""

from src.config.logging import configure_logging, get_logger, request_log_context
from src.config.settings import Settings, get_settings, reset_settings

__all__ = [
    "Settings",
    "configure_logging",
    "get_logger",
    "get_settings",
    "request_log_context",
    "reset_settings",
]
