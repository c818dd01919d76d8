"""Parsing and serialization of the mcpo configuration document.

The document is a JSON object of the shape::

    {"mcpServers": {"<id>": {"command": ..., "args": [...], "env": {...},
                             "info": {"name": ..., "description": ...}}}}

Reads are tolerant: anything unparseable becomes an empty document. The
strict loader is used on the write path so that a malformed edit is
rejected before anything touches the host or the remote API.
"""

import copy
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ..exceptions import FormatError

logger = logging.getLogger(__name__)

SERVERS_KEY = "mcpServers"
SERVER_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

McpoDocument = Dict[str, Any]


@dataclass(frozen=True)
class ManagedServer:
    """A server definition as seen by the reconciler."""

    id: str
    name: str
    description: str
    url: str


class ServerInfo(BaseModel):
    """Optional human metadata of a server definition."""

    name: Optional[str] = None
    description: Optional[str] = None


class ServerDefinition(BaseModel):
    """Process launch spec the proxy runs for one server."""

    command: str = Field(..., min_length=1, description="Executable to launch")
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    info: Optional[ServerInfo] = None

    def to_document_entry(self) -> Dict[str, Any]:
        """Render the definition the way it is stored in the document."""
        entry: Dict[str, Any] = {"command": self.command, "args": list(self.args)}
        if self.env:
            entry["env"] = dict(self.env)
        if self.info is not None:
            entry["info"] = self.info.model_dump(exclude_none=True)
        return entry


def is_valid_server_id(server_id: Any) -> bool:
    return isinstance(server_id, str) and bool(SERVER_ID_PATTERN.match(server_id))


def normalize_config_text(text: str) -> str:
    """Normalize line endings and surrounding whitespace."""
    return (text or "").replace("\r\n", "\n").strip()


def _ensure_servers(document: McpoDocument) -> McpoDocument:
    if not isinstance(document.get(SERVERS_KEY), dict):
        document[SERVERS_KEY] = {}
    return document


def parse_config(text: str) -> McpoDocument:
    """Parse document text, never raising.

    Invalid JSON or a non-object root yields ``{"mcpServers": {}}``.
    """
    try:
        parsed = json.loads(text) if text and text.strip() else {}
    except (TypeError, ValueError):
        logger.debug("Document is not valid JSON, treating it as empty")
        parsed = {}
    if not isinstance(parsed, dict):
        parsed = {}
    return _ensure_servers(parsed)


def load_config_strict(text: str) -> McpoDocument:
    """Parse document text for writing.

    Raises:
        FormatError: invalid JSON, a non-object root or ``mcpServers``,
            or a server id outside ``[A-Za-z0-9._-]+``.
    """
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as e:
        raise FormatError(f"Invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise FormatError("Configuration must be a JSON object.")

    servers = parsed.get(SERVERS_KEY)
    if servers is None:
        parsed[SERVERS_KEY] = {}
    elif not isinstance(servers, dict):
        raise FormatError(f"'{SERVERS_KEY}' must be a JSON object.")

    invalid = [server_id for server_id in parsed[SERVERS_KEY] if not is_valid_server_id(server_id)]
    if invalid:
        raise FormatError(
            "Invalid server id(s): " + ", ".join(repr(i) for i in invalid),
            detail="Server ids may only contain letters, digits, '.', '_' and '-'.",
        )
    return parsed


def serialize_config(document: McpoDocument) -> str:
    """Serialize with a stable two-space indent."""
    return json.dumps(document, indent=2, ensure_ascii=False)


def clone_config(document: Optional[McpoDocument]) -> McpoDocument:
    """Deep copy a document, guaranteeing ``mcpServers`` is present."""
    clone = copy.deepcopy(document) if isinstance(document, dict) else {}
    return _ensure_servers(clone)


def extract_managed_servers(
    source: Union[str, McpoDocument],
    base_url: str,
) -> List[ManagedServer]:
    """Derive the managed entities from a document or its text.

    Entries with an empty id are skipped. ``name`` falls back to the id and
    the reachable URL is always ``<base_url>/<id>``.
    """
    document = parse_config(source) if isinstance(source, str) else _ensure_servers(source)
    prefix = base_url.rstrip("/")

    servers: List[ManagedServer] = []
    for server_id, definition in document[SERVERS_KEY].items():
        if not server_id:
            continue
        info = definition.get("info") if isinstance(definition, dict) else None
        if not isinstance(info, dict):
            info = {}

        name = info.get("name")
        name = name.strip() if isinstance(name, str) and name.strip() else server_id
        description = info.get("description")
        description = description if isinstance(description, str) else ""

        servers.append(ManagedServer(
            id=server_id,
            name=name,
            description=description,
            url=f"{prefix}/{server_id}",
        ))
    return servers


def add_server(document: McpoDocument, server_id: str, definition: Dict[str, Any]) -> bool:
    """Insert or replace a server entry in place.

    Returns:
        True if the document changed
    """
    if not is_valid_server_id(server_id):
        raise FormatError(f"Invalid server id: {server_id!r}")
    servers = _ensure_servers(document)[SERVERS_KEY]
    existing = servers.get(server_id)
    servers[server_id] = definition
    return existing != definition


def remove_server(document: McpoDocument, server_id: str) -> bool:
    """Drop a server entry in place. Returns True if it existed."""
    servers = _ensure_servers(document)[SERVERS_KEY]
    if server_id not in servers:
        return False
    del servers[server_id]
    return True


def build_docker_server(
    image: str,
    tag: str = "latest",
    env: Optional[Dict[str, str]] = None,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Definition that runs a containerized stdio server via ``docker run``.

    Environment values are passed by name (``-e KEY``) so they never appear
    on the command line.
    """
    image = image.strip()
    if not image:
        raise FormatError("Provide a valid container image.")
    env = {k.strip(): v for k, v in (env or {}).items() if k and k.strip()}

    args = ["run", "-i", "--rm"]
    for key in env:
        args.extend(["-e", key])
    args.append(f"{image}:{(tag or '').strip() or 'latest'}")

    definition: Dict[str, Any] = {"command": "docker", "args": args}
    if env:
        definition["env"] = env
    info = {k: v for k, v in (("name", name), ("description", description)) if v is not None}
    if info:
        definition["info"] = info
    return definition
