"""Logging and user-facing notices."""

from .logging import clear_log_context, configure_logging, set_log_context
from .notifications import Notification, NotificationCenter

__all__ = [
    "clear_log_context",
    "configure_logging",
    "set_log_context",
    "Notification",
    "NotificationCenter",
]
