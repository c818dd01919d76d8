"""Wire types of the Open WebUI configuration API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AccessGroups(BaseModel):
    group_ids: List[str] = Field(default_factory=list)
    user_ids: List[str] = Field(default_factory=list)


class AccessControl(BaseModel):
    read: AccessGroups = Field(default_factory=AccessGroups)
    write: AccessGroups = Field(default_factory=AccessGroups)


class ConnectionConfig(BaseModel):
    enable: bool = True
    function_name_filter_list: List[str] = Field(default_factory=list)
    access_control: AccessControl = Field(default_factory=AccessControl)


class ConnectionInfo(BaseModel):
    id: str
    name: str
    description: str = ""


class ToolServerConnection(BaseModel):
    """One entry of ``TOOL_SERVER_CONNECTIONS``."""

    url: str
    path: str = "openapi.json"
    type: str = "openapi"
    auth_type: str = "bearer"
    headers: Optional[Dict[str, str]] = None
    key: str = ""
    config: ConnectionConfig = Field(default_factory=ConnectionConfig)
    spec_type: str = "url"
    spec: str = ""
    info: ConnectionInfo

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ToolServerConfig(BaseModel):
    """The tool server settings block.

    Connections are kept as raw dicts so that entries created by other
    clients go back exactly as they came.
    """

    enable_direct_connections: bool = False
    enable_base_models_cache: bool = False
    connections: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "ToolServerConfig":
        connections = payload.get("TOOL_SERVER_CONNECTIONS") or []
        return cls(
            enable_direct_connections=bool(payload.get("ENABLE_DIRECT_CONNECTIONS")),
            enable_base_models_cache=bool(payload.get("ENABLE_BASE_MODELS_CACHE")),
            connections=[c for c in connections if isinstance(c, dict)],
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "ENABLE_DIRECT_CONNECTIONS": self.enable_direct_connections,
            "ENABLE_BASE_MODELS_CACHE": self.enable_base_models_cache,
            "TOOL_SERVER_CONNECTIONS": self.connections,
        }
