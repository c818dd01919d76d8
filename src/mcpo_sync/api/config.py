"""API for the mcpo document and its reconciliation."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..mcpo.document import (
    SERVER_ID_PATTERN,
    ManagedServer,
    ServerDefinition,
    build_docker_server,
)
from ..services.configuration import ConfigurationService, EditSession
from .dependencies import get_config_service

router = APIRouter()


class ConfigUpdate(BaseModel):
    text: str


class ServerCreate(ServerDefinition):
    """A server definition together with its id."""

    id: str = Field(pattern=SERVER_ID_PATTERN.pattern)


class DockerServerCreate(BaseModel):
    """A containerized stdio server launched with `docker run`."""

    id: str = Field(pattern=SERVER_ID_PATTERN.pattern)
    image: str = Field(..., min_length=1)
    tag: str = "latest"
    env: Dict[str, str] = Field(default_factory=dict)
    name: Optional[str] = None
    description: Optional[str] = None


class ServerResponse(BaseModel):
    id: str
    name: str
    description: str
    url: str

    @classmethod
    def from_server(cls, server: ManagedServer) -> "ServerResponse":
        return cls(id=server.id, name=server.name, description=server.description, url=server.url)


class ConfigResponse(BaseModel):
    text: str
    masked_keys: List[str]
    servers: List[ServerResponse]


class ServerChangeResponse(BaseModel):
    changed: bool
    servers: List[ServerResponse]


def _servers(service: ConfigurationService) -> List[ServerResponse]:
    return [ServerResponse.from_server(s) for s in service.servers()]


def _config_response(service: ConfigurationService, session: EditSession) -> ConfigResponse:
    return ConfigResponse(
        text=session.masked_text,
        masked_keys=sorted(session.mask_map),
        servers=_servers(service),
    )


@router.get("/config", response_model=ConfigResponse)
async def get_config(
    reload: bool = Query(default=False),
    service: ConfigurationService = Depends(get_config_service),
):
    """Return the masked document, loading it from the host when needed."""
    session = service.session
    if session is None or reload:
        session = await service.load()
    return _config_response(service, session)


@router.put("/config", response_model=ConfigResponse)
async def update_config(
    body: ConfigUpdate,
    service: ConfigurationService = Depends(get_config_service),
):
    """Write an edited (masked) document back to the host."""
    session = await service.apply(body.text)
    return _config_response(service, session)


@router.get("/servers", response_model=List[ServerResponse])
async def list_servers(service: ConfigurationService = Depends(get_config_service)):
    if service.session is None:
        await service.load()
    return _servers(service)


@router.post("/servers", response_model=ServerChangeResponse)
async def create_server(
    body: ServerCreate,
    service: ConfigurationService = Depends(get_config_service),
):
    definition = ServerDefinition.model_validate(body.model_dump(exclude={"id"}))
    changed = await service.add_server(body.id, definition)
    return ServerChangeResponse(changed=changed, servers=_servers(service))


@router.post("/servers/docker", response_model=ServerChangeResponse)
async def create_docker_server(
    body: DockerServerCreate,
    service: ConfigurationService = Depends(get_config_service),
):
    definition = build_docker_server(
        body.image,
        tag=body.tag,
        env=body.env,
        name=body.name,
        description=body.description,
    )
    changed = await service.add_server(body.id, definition)
    return ServerChangeResponse(changed=changed, servers=_servers(service))


@router.delete("/servers/{server_id}", response_model=ServerChangeResponse)
async def delete_server(
    server_id: str,
    service: ConfigurationService = Depends(get_config_service),
):
    changed = await service.remove_server(server_id)
    return ServerChangeResponse(changed=changed, servers=_servers(service))


@router.post("/sync")
async def sync_now(service: ConfigurationService = Depends(get_config_service)) -> Dict[str, Any]:
    """Queue a reconciliation pass and wait for its result."""
    future = await service.request_sync()
    result = await future
    return result.to_dict()
