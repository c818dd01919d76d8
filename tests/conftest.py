"""Test configuration and fixtures."""

import asyncio
import base64
import json
import os
from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

# Set test environment variables BEFORE importing the package
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ.pop("OPENWEBUI_TOKEN", None)

from mcpo_sync.host.base import BaseHostRuntime, ComposeStack, HelperResult
from mcpo_sync.openwebui.client import OpenWebUIClient
from mcpo_sync.sync.queue import PassQueue
from mcpo_sync.sync.reconciler import ToolServerSync
from mcpo_sync.observability.notifications import NotificationCenter

OPENWEBUI_URL = "http://openwebui.test"
PROXY_BASE_URL = "http://host.docker.internal:11600"


class FakeOpenWebUI:
    """In-memory Open WebUI admin API served through ``httpx.MockTransport``."""

    def __init__(self):
        self.tool_servers: Dict[str, Any] = {
            "ENABLE_DIRECT_CONNECTIONS": False,
            "ENABLE_BASE_MODELS_CACHE": False,
            "TOOL_SERVER_CONNECTIONS": [],
        }
        self.summaries: Dict[str, Dict[str, Any]] = {}
        self.details: Dict[str, Dict[str, Any]] = {}
        self.openai_config: Dict[str, Any] = {}
        self.update_not_found: set = set()
        self.fail_paths: Dict[str, int] = {}
        self.requests: List[httpx.Request] = []
        self.writes: List[str] = []

    # Seeding helpers

    def add_model(self, model_id: str, tool_ids: Optional[List[str]] = None, materialized: bool = True):
        info = {"meta": {"toolIds": list(tool_ids or [])}, "params": {}}
        self.summaries[model_id] = {"id": model_id, "name": model_id, "info": info}
        if materialized:
            self.details[model_id] = {
                "id": model_id,
                "name": model_id,
                "meta": {"toolIds": list(tool_ids or []), "description": f"{model_id} model"},
                "params": {"temperature": 0.2},
            }

    def tool_ids(self, model_id: str) -> List[str]:
        return self.summaries[model_id]["info"]["meta"]["toolIds"]

    @property
    def connections(self) -> List[Dict[str, Any]]:
        return self.tool_servers["TOOL_SERVER_CONNECTIONS"]

    # Transport

    def _store_model(self, payload: Dict[str, Any]) -> None:
        model_id = payload["id"]
        self.details[model_id] = payload
        summary = self.summaries.setdefault(model_id, {"id": model_id, "name": model_id, "info": {}})
        summary["info"] = {
            "meta": dict(payload.get("meta") or {}),
            "params": dict(payload.get("params") or {}),
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], json={"detail": "Internal error"})
        body = json.loads(request.content) if request.content else None

        if path == "/api/v1/configs/tool_servers":
            if request.method == "GET":
                return httpx.Response(200, json=self.tool_servers)
            self.writes.append(path)
            self.tool_servers = body
            return httpx.Response(200, json=body)

        if path == "/api/models":
            return httpx.Response(200, json={"data": list(self.summaries.values())})

        if path == "/api/v1/models/model":
            model_id = request.url.params.get("id")
            if model_id in self.details:
                return httpx.Response(200, json=self.details[model_id])
            return httpx.Response(404, json={"detail": "We could not find what you're looking for :/"})

        if path == "/api/v1/models/model/update":
            self.writes.append(path)
            if body["id"] in self.update_not_found or body["id"] not in self.details:
                self.update_not_found.discard(body["id"])
                return httpx.Response(404, json={"detail": "Not found"})
            self._store_model(body)
            return httpx.Response(200, json=body)

        if path == "/api/v1/models/create":
            self.writes.append(path)
            self._store_model(body)
            return httpx.Response(200, json=body)

        if path == "/openai/config":
            return httpx.Response(200, json=self.openai_config)

        if path == "/openai/config/update":
            self.writes.append(path)
            self.openai_config = body
            return httpx.Response(200, json=body)

        return httpx.Response(404, json={"detail": "Not Found"})


class FakeHostRuntime(BaseHostRuntime):
    """Host runtime that executes the helper scripts against a dict of files."""

    def __init__(self, stacks: Optional[List[ComposeStack]] = None):
        self.stacks = stacks if stacks is not None else [
            ComposeStack(
                name="rancher-desktop-rdx-open-webui",
                config_files=["/home/user/rdx/compose.yaml"],
                services=["open-webui", "mcpo"],
            )
        ]
        self.files: Dict[str, str] = {}
        self.commands: List[List[str]] = []
        self.restarts: List[tuple] = []
        self.fail_after: Optional[int] = None
        # Suspend once per helper so concurrent callers interleave.
        self.yield_per_helper = False

    def _host_path(self, mount_source: str, mount_target: str, path: str) -> str:
        return mount_source + path[len(mount_target):]

    async def run_helper(self, mount_source, mount_target, command):
        if self.yield_per_helper:
            await asyncio.sleep(0)
        self.commands.append(list(command))
        if self.fail_after is not None and len(self.commands) > self.fail_after:
            return HelperResult(exit_code=1, stdout="", stderr="disk full")

        if command[0] == "cat":
            path = self._host_path(mount_source, mount_target, command[1])
            if path not in self.files:
                return HelperResult(exit_code=1, stdout="", stderr="No such file or directory")
            return HelperResult(exit_code=0, stdout=self.files[path], stderr="")

        script, args = command[2], command[4:]
        if "mv -f" in script:
            source = self._host_path(mount_source, mount_target, args[0])
            target = self._host_path(mount_source, mount_target, args[1])
            self.files[target] = self.files.pop(source)
        elif "rm -f" in script:
            self.files.pop(self._host_path(mount_source, mount_target, args[0]), None)
        else:
            path = self._host_path(mount_source, mount_target, args[0])
            # Chunks may split a character; keep partial bytes until the file is complete.
            chunk = base64.b64decode(args[1])
            if ">>" in script:
                chunk = self.files.get(path, "").encode("utf-8", "surrogateescape") + chunk
            self.files[path] = chunk.decode("utf-8", "surrogateescape")
        return HelperResult(exit_code=0, stdout="", stderr="")

    async def list_compose_stacks(self):
        return list(self.stacks)

    async def restart_service(self, project_name, service_name):
        self.restarts.append((project_name, service_name))
        return 1

    async def health_check(self):
        return True


@pytest.fixture
def fake_openwebui():
    return FakeOpenWebUI()


@pytest_asyncio.fixture
async def openwebui_client(fake_openwebui):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_openwebui.handle))
    client = OpenWebUIClient(OPENWEBUI_URL, token_provider=lambda: "test-token", http_client=http_client)
    yield client
    await http_client.aclose()


@pytest.fixture
def notifier():
    return NotificationCenter()


@pytest_asyncio.fixture
async def pass_queue():
    queue = PassQueue()
    queue.start()
    yield queue
    await queue.stop(drain=False)


@pytest.fixture
def tool_sync(openwebui_client, pass_queue, notifier):
    return ToolServerSync(openwebui_client, pass_queue, PROXY_BASE_URL, notifier)


@pytest.fixture
def host_runtime():
    return FakeHostRuntime()
