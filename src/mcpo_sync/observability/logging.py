"""Structured logging configuration for mcpo-sync.

Lines emitted inside a reconciliation pass carry that pass's id (and the
model or server being written, when there is one) through contextvars, so a
pass can be followed across the queue worker, the remote client and the
host bridge.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Dict, Optional

# field name -> (context variable, short label used in human-readable output)
_CONTEXT_FIELDS = {
    "pass_id": (ContextVar("pass_id", default=None), "pass"),
    "server_id": (ContextVar("server_id", default=None), "server"),
    "model_id": (ContextVar("model_id", default=None), "model"),
}

_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiodocker")


def set_log_context(
    pass_id: Optional[str] = None,
    server_id: Optional[str] = None,
    model_id: Optional[str] = None,
):
    """Set pass-scoped fields; arguments left as None keep their value."""
    for name, value in (("pass_id", pass_id), ("server_id", server_id), ("model_id", model_id)):
        if value is not None:
            _CONTEXT_FIELDS[name][0].set(value)


def clear_log_context():
    for var, _label in _CONTEXT_FIELDS.values():
        var.set(None)


def get_log_context() -> Dict[str, str]:
    """Fields currently set, in declaration order."""
    return {
        name: var.get()
        for name, (var, _label) in _CONTEXT_FIELDS.items()
        if var.get()
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **get_log_context(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class HumanReadableFormatter(logging.Formatter):
    """Development output: ``[time] LEVEL logger: message [pass=..., server=...]``."""

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"[{self.formatTime(record, self.datefmt)}] "
            f"{record.levelname:8s} {record.name}: {record.getMessage()}"
        )

        context = get_log_context()
        labels = [
            f"{_CONTEXT_FIELDS[name][1]}={value}" for name, value in context.items()
        ]
        if labels:
            line += f" [{', '.join(labels)}]"

        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(environment: str = "development", log_level: str = "INFO"):
    """Install a single stdout handler on the root logger.

    Args:
        environment: "production" selects JSON lines, anything else plain text
        log_level: level name, case-insensitive; unknown names mean INFO
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
