"""Typed operations against the Open WebUI configuration endpoints.

Every call resolves the bearer token first and fails with ``AuthError``
before any I/O when none is configured. A 404 on model detail or model
update is an expected outcome, not a failure: detail lookups return None
and updates raise ``RemoteNotFoundError`` so the caller can create instead.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..exceptions import AuthError, McpoIOError, RemoteAPIError, RemoteNotFoundError
from .http_client import get_http_client
from .types import ToolServerConfig

logger = logging.getLogger(__name__)

TOKEN_MISSING_MESSAGE = "Open WebUI token is not configured. Set one in Settings."

TokenProvider = Callable[[], Optional[str]]


def is_not_found_response(status_code: int, body: str) -> bool:
    """True for a 404 or an error body whose detail reads like "not found"."""
    if status_code == 404:
        return True
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return False
    detail = parsed.get("detail") if isinstance(parsed, dict) else None
    if isinstance(detail, str):
        detail = detail.lower()
        return "could not find" in detail or "not found" in detail
    return False


class OpenWebUIClient:
    """Async client for the Open WebUI admin configuration API."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self._http_client = http_client

    def _client(self) -> httpx.AsyncClient:
        return self._http_client or get_http_client(self.timeout)

    def _require_token(self) -> str:
        token = self.token_provider()
        if not token:
            raise AuthError(TOKEN_MISSING_MESSAGE)
        return token

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Any] = None,
    ) -> httpx.Response:
        token = self._require_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        if payload is not None:
            headers["Content-Type"] = "application/json"

        try:
            return await self._client().request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise McpoIOError(f"Request to Open WebUI timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise McpoIOError(f"Request to Open WebUI failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response, what: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise McpoIOError(f"Invalid JSON in {what} response") from e

    async def fetch_tool_server_config(self) -> ToolServerConfig:
        response = await self._request("GET", "/api/v1/configs/tool_servers")
        if not response.is_success:
            raise RemoteAPIError(
                f"Failed to fetch tool servers ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
            )
        payload = self._json(response, "tool server")
        return ToolServerConfig.from_wire(payload if isinstance(payload, dict) else {})

    async def save_tool_server_config(self, config: ToolServerConfig) -> None:
        response = await self._request(
            "POST", "/api/v1/configs/tool_servers", payload=config.to_wire()
        )
        if not response.is_success:
            raise RemoteAPIError(
                response.text or f"Failed to update tool server connections ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
            )

    async def fetch_models(self) -> List[Dict[str, Any]]:
        """Return the model summaries (the ``data`` list)."""
        response = await self._request("GET", "/api/models")
        if not response.is_success:
            raise RemoteAPIError(
                f"Failed to fetch models ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
            )
        payload = self._json(response, "models")
        data = payload.get("data") if isinstance(payload, dict) else None
        return [m for m in data or [] if isinstance(m, dict)]

    async def fetch_model_details(self, model_id: str) -> Optional[Dict[str, Any]]:
        """Return the full model record, or None when the model is absent."""
        response = await self._request(
            "GET", "/api/v1/models/model", params={"id": model_id}
        )
        if response.status_code == 404:
            return None
        if not response.is_success:
            if is_not_found_response(response.status_code, response.text):
                logger.debug("Model %s reported as not found: %s", model_id, response.text)
                return None
            raise RemoteAPIError(
                response.text or f"Failed to fetch model {model_id} ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
            )
        payload = self._json(response, f"model {model_id}")
        return payload if isinstance(payload, dict) else None

    async def _post_model(self, path: str, model: Dict[str, Any]) -> None:
        response = await self._request("POST", path, payload=model)
        if response.is_success:
            return
        logger.debug("Model request failed via %s: %s", path, response.text or response.status_code)
        message = response.text or f"Failed to persist model {model.get('id')} ({response.status_code})"
        if response.status_code == 404:
            raise RemoteNotFoundError(message, response_body=response.text)
        raise RemoteAPIError(message, status_code=response.status_code, response_body=response.text)

    async def update_model(self, model: Dict[str, Any]) -> None:
        await self._post_model("/api/v1/models/model/update", model)

    async def create_model(self, model: Dict[str, Any]) -> None:
        await self._post_model("/api/v1/models/create", model)

    async def fetch_openai_config(self) -> Dict[str, Any]:
        response = await self._request("GET", "/openai/config")
        if not response.is_success:
            raise RemoteAPIError(
                f"Failed to fetch Open WebUI config ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
            )
        payload = self._json(response, "OpenAI config")
        return payload if isinstance(payload, dict) else {}

    async def update_openai_config(self, config: Dict[str, Any]) -> None:
        response = await self._request("POST", "/openai/config/update", payload=config)
        if not response.is_success:
            raise RemoteAPIError(
                response.text or f"Failed to update Open WebUI config ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
            )

    def has_token(self) -> bool:
        return bool(self.token_provider())
