"""Client for the Open WebUI configuration API."""

from .client import OpenWebUIClient, is_not_found_response
from .types import (
    AccessControl,
    ConnectionConfig,
    ConnectionInfo,
    ToolServerConfig,
    ToolServerConnection,
)

__all__ = [
    "OpenWebUIClient",
    "is_not_found_response",
    "AccessControl",
    "ConnectionConfig",
    "ConnectionInfo",
    "ToolServerConfig",
    "ToolServerConnection",
]
