"""Shared httpx client with connection pooling."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_client: Optional[httpx.AsyncClient] = None


def get_http_client(timeout: float = 30.0) -> httpx.AsyncClient:
    """Return the process-wide AsyncClient, creating it on first use."""
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
        )
        logger.debug("Created shared HTTP client")
    return _client


async def close_http_client():
    """Close the shared client."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
