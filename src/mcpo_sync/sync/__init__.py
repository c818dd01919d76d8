"""Reconciliation of Open WebUI state against the mcpo document."""

from .openai_proxy import OpenAIConnection, ensure_openai_proxy_connection
from .queue import PassQueue
from .reconciler import SyncResult, ToolServerSync

__all__ = [
    "OpenAIConnection",
    "ensure_openai_proxy_connection",
    "PassQueue",
    "SyncResult",
    "ToolServerSync",
]
