"""Reconcile Open WebUI tool servers and model tool assignments to mcpo.

The mcpo document is the single source of truth. Remote state is read
fresh on every pass and only the entries this service owns are rewritten:

* a tool-server connection is ours iff its ``url`` starts with the proxy
  base URL; every other connection is carried over untouched, in order;
* a model tool id is ours iff it starts with ``server:``; every other tool
  id on a model is kept verbatim.

Writes happen only when the computed state differs from the fetched one,
so a pass over unchanged state performs no writes at all. Passes run one
at a time through ``PassQueue``; nothing here is transactional, and a
concurrent edit by another client between fetch and write is overwritten
and left for the next pass to converge.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..exceptions import AuthError, NotFoundError, ReconciliationError, format_error
from ..mcpo.document import ManagedServer, extract_managed_servers, normalize_config_text
from ..observability.logging import clear_log_context, set_log_context
from ..observability.notifications import NotificationCenter
from ..openwebui.client import OpenWebUIClient
from ..openwebui.types import (
    ConnectionInfo,
    ToolServerConfig,
    ToolServerConnection,
)
from .queue import PassQueue

logger = logging.getLogger(__name__)

TOOL_SERVER_PREFIX = "server:"
TOOL_SERVER_PATH = "openapi.json"
TOKEN_NOTICE_ID = "mcp-sync-token"
TOKEN_NOTICE = "Provide an Open WebUI token in Settings to sync MCP connections."


@dataclass
class SyncResult:
    """Outcome of one reconciliation pass."""

    pass_id: str
    ok: bool = True
    error: Optional[str] = None
    tool_servers_changed: bool = False
    models_updated: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass_id": self.pass_id,
            "ok": self.ok,
            "error": self.error,
            "tool_servers_changed": self.tool_servers_changed,
            "models_updated": list(self.models_updated),
        }


def build_tool_server_connection(server: ManagedServer) -> Dict[str, Any]:
    """Deterministic connection entry for one managed server."""
    return ToolServerConnection(
        url=server.url,
        path=TOOL_SERVER_PATH,
        info=ConnectionInfo(id=server.id, name=server.name, description=server.description),
    ).to_wire()


def normalize_headers(headers: Any) -> str:
    if not isinstance(headers, dict) or not headers:
        return ""
    return json.dumps(sorted(headers.items()))


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def _info(connection: Dict[str, Any]) -> Dict[str, Any]:
    info = connection.get("info")
    return info if isinstance(info, dict) else {}


def connection_equal(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    """Field-by-field comparison of two connection entries."""
    for key in ("url", "path", "type", "auth_type", "key", "spec_type", "spec"):
        if a.get(key) != b.get(key):
            return False
    if normalize_headers(a.get("headers")) != normalize_headers(b.get("headers")):
        return False
    if _canonical(a.get("config")) != _canonical(b.get("config")):
        return False
    info_a, info_b = _info(a), _info(b)
    return all(info_a.get(k) == info_b.get(k) for k in ("id", "name", "description"))


def connections_equal(a: List[Dict[str, Any]], b: List[Dict[str, Any]]) -> bool:
    if len(a) != len(b):
        return False
    return all(connection_equal(x, y) for x, y in zip(a, b))


def merge_tool_ids(current: List[str], desired: List[str]) -> List[str]:
    """Drop our prefixed ids from *current*, then append *desired* ids."""
    merged = [tool_id for tool_id in current if not tool_id.startswith(TOOL_SERVER_PREFIX)]
    for tool_id in desired:
        if tool_id not in merged:
            merged.append(tool_id)
    return merged


def current_tool_ids(model: Dict[str, Any]) -> List[str]:
    info = model.get("info") if isinstance(model.get("info"), dict) else {}
    meta = info.get("meta") if isinstance(info.get("meta"), dict) else {}
    tool_ids = meta.get("toolIds")
    if not isinstance(tool_ids, list):
        return []
    return [tool_id for tool_id in tool_ids if isinstance(tool_id, str)]


def _default_access_control() -> Dict[str, Any]:
    return {
        "read": {"group_ids": [], "user_ids": []},
        "write": {"group_ids": [], "user_ids": []},
    }


def build_default_model_payload(
    model_id: str,
    tool_ids: List[str],
    info: Dict[str, Any],
) -> Dict[str, Any]:
    """Full model record for a model that is listed but has no detail yet."""
    meta = dict(info["meta"]) if isinstance(info.get("meta"), dict) else {}
    params = dict(info["params"]) if isinstance(info.get("params"), dict) else {}
    access_control = (
        info["access_control"] if isinstance(info.get("access_control"), dict)
        else _default_access_control()
    )
    return {
        "id": model_id,
        "name": info["name"] if isinstance(info.get("name"), str) else model_id,
        "base_model_id": info.get("base_model_id"),
        "meta": {**meta, "toolIds": tool_ids},
        "params": {**params, "function_calling": "native"},
        "access_control": access_control,
        "is_active": True,
        "user_id": info["user_id"] if isinstance(info.get("user_id"), str) else "system",
    }


class ToolServerSync:
    """Converges Open WebUI to the managed servers of an mcpo document."""

    def __init__(
        self,
        client: OpenWebUIClient,
        queue: PassQueue,
        base_url: str,
        notifier: Optional[NotificationCenter] = None,
    ):
        self.client = client
        self.queue = queue
        self.base_url = base_url.rstrip("/")
        self.notifier = notifier

    def is_managed(self, connection: Dict[str, Any]) -> bool:
        # A foreign connection sharing the prefix is indistinguishable from ours.
        url = connection.get("url")
        return isinstance(url, str) and url.startswith(self.base_url)

    def request_sync(self, config_text: str) -> "asyncio.Future[SyncResult]":
        """Queue a pass for *config_text*; it runs after all earlier passes."""
        pass_id = uuid.uuid4().hex[:8]
        text = normalize_config_text(config_text or "")
        return self.queue.submit(lambda: self._run_pass(pass_id, text), name=f"sync pass {pass_id}")

    async def _run_pass(self, pass_id: str, config_text: str) -> SyncResult:
        result = SyncResult(pass_id=pass_id)
        set_log_context(pass_id=pass_id)
        try:
            await self.reconcile(config_text, result)
            logger.info(
                "Sync pass finished (tool servers changed: %s, models updated: %d)",
                result.tool_servers_changed,
                len(result.models_updated),
            )
        except AuthError as e:
            result.ok = False
            result.error = format_error(e)
            logger.info("Sync pass skipped: %s", result.error)
            if self.notifier is not None:
                self.notifier.info(TOKEN_NOTICE, notice_id=TOKEN_NOTICE_ID)
        except Exception as e:
            result.ok = False
            result.error = format_error(e)
            logger.error("Sync pass failed: %s", result.error)
            if self.notifier is not None:
                self.notifier.error(result.error)
        finally:
            clear_log_context()
        return result

    async def reconcile(self, config_text: str, result: Optional[SyncResult] = None) -> SyncResult:
        """Run one pass without queueing. Prefer ``request_sync``."""
        result = result or SyncResult(pass_id="direct")
        servers = extract_managed_servers(config_text, self.base_url) if config_text else []

        if not servers:
            await self.clear_managed_state(result)
            return result

        result.tool_servers_changed = await self.sync_tool_servers(servers)
        result.models_updated = await self.sync_model_tool_assignments([s.id for s in servers])
        return result

    async def clear_managed_state(self, result: Optional[SyncResult] = None) -> None:
        """Remove every owned connection and every owned model tool id."""
        changed = await self.disable_managed_tool_servers()
        updated = await self.sync_model_tool_assignments([])
        if result is not None:
            result.tool_servers_changed = changed
            result.models_updated = updated

    async def disable_managed_tool_servers(self) -> bool:
        try:
            config = await self.client.fetch_tool_server_config()
            remaining = [c for c in config.connections if not self.is_managed(c)]
            if connections_equal(config.connections, remaining):
                return False
            await self.client.save_tool_server_config(
                config.model_copy(update={"connections": remaining})
            )
            logger.info("Removed %d managed tool server(s)", len(config.connections) - len(remaining))
            return True
        except AuthError:
            raise
        except Exception as e:
            raise ReconciliationError(
                f"Failed to disable MCP tool servers: {format_error(e)}"
            ) from e

    async def sync_tool_servers(self, servers: List[ManagedServer]) -> bool:
        """Write foreign connections followed by one per managed server.

        Returns:
            True if the connection list was written
        """
        try:
            config = await self.client.fetch_tool_server_config()
            preserved = [c for c in config.connections if not self.is_managed(c)]
            desired = preserved + [build_tool_server_connection(s) for s in servers]
            if connections_equal(config.connections, desired):
                logger.debug("Tool servers already up to date")
                return False
            await self.client.save_tool_server_config(ToolServerConfig(
                enable_direct_connections=config.enable_direct_connections,
                enable_base_models_cache=config.enable_base_models_cache,
                connections=desired,
            ))
            logger.info(
                "Updated tool servers: %d foreign, %d managed", len(preserved), len(servers)
            )
            return True
        except AuthError:
            raise
        except Exception as e:
            raise ReconciliationError(
                f"Failed to synchronize tool servers: {format_error(e)}"
            ) from e

    async def sync_model_tool_assignments(self, server_ids: List[str]) -> List[str]:
        """Point every model's managed tool ids at *server_ids*.

        Returns:
            Ids of the models that were written
        """
        desired = [f"{TOOL_SERVER_PREFIX}{server_id}" for server_id in dict.fromkeys(server_ids)]
        updated: List[str] = []
        try:
            models = await self.client.fetch_models()
            for model in models:
                model_id = model.get("id")
                if not model_id:
                    continue
                current = current_tool_ids(model)
                merged = merge_tool_ids(current, desired)
                if current != merged:
                    await self.upsert_model_with_tool_ids(model, merged)
                    updated.append(model_id)
        except (AuthError, ReconciliationError):
            raise
        except Exception as e:
            raise ReconciliationError(
                f"Failed to synchronize models: {format_error(e)}"
            ) from e
        return updated

    async def upsert_model_with_tool_ids(self, model: Dict[str, Any], tool_ids: List[str]) -> None:
        """Write *tool_ids* to a model, creating its record if needed.

        Update is tried first; a 404 from update falls back to create once.
        """
        model_id = model["id"]
        set_log_context(model_id=model_id)
        try:
            existing = await self.client.fetch_model_details(model_id)
            if existing is None:
                info = model.get("info") if isinstance(model.get("info"), dict) else {}
                await self.client.create_model(build_default_model_payload(model_id, tool_ids, info))
                logger.info("Created model record for %s", model_id)
                return

            meta = existing.get("meta") if isinstance(existing.get("meta"), dict) else {}
            params = existing.get("params") if isinstance(existing.get("params"), dict) else {}
            payload = {
                **existing,
                "meta": {**meta, "toolIds": tool_ids},
                "params": {**params, "function_calling": "native"},
            }
            try:
                await self.client.update_model(payload)
                logger.info("Updated tool ids of model %s", model_id)
            except NotFoundError:
                logger.info("Model %s vanished before update, creating it", model_id)
                await self.client.create_model(payload)
        except AuthError:
            raise
        except Exception as e:
            raise ReconciliationError(
                f"Failed to upsert model {model_id}: {format_error(e)}"
            ) from e
