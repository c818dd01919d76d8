"""Keep the OpenAI-compatible proxy registered as an Open WebUI connection.

Open WebUI stores its OpenAI connections as three index-aligned wire fields
(``OPENAI_API_BASE_URLS``, ``OPENAI_API_KEYS`` and ``OPENAI_API_CONFIGS``
keyed by the stringified index). ``connections_from_wire`` and
``connections_to_wire`` are the only two functions that know that layout;
everything else works on a list of ``OpenAIConnection`` records.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..openwebui.client import OpenWebUIClient

logger = logging.getLogger(__name__)

BASE_URLS_KEY = "OPENAI_API_BASE_URLS"
KEYS_KEY = "OPENAI_API_KEYS"
CONFIGS_KEY = "OPENAI_API_CONFIGS"
ENABLE_KEY = "ENABLE_OPENAI_API"


@dataclass
class OpenAIConnection:
    url: str
    key: str = ""
    config: Dict[str, Any] = field(default_factory=dict)


def normalize_base_url(value: str) -> str:
    return value.strip().rstrip("/").lower()


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def clean_config_entry(value: Any) -> Dict[str, Any]:
    """Copy a per-connection config, dropping fields of the wrong type."""
    if not isinstance(value, dict):
        return {}
    entry = dict(value)
    for key in ("tags", "model_ids"):
        if isinstance(value.get(key), list):
            entry[key] = _string_list(value[key])
        else:
            entry.pop(key, None)
    for key in ("prefix_id", "connection_type", "auth_type"):
        if not isinstance(value.get(key), str):
            entry.pop(key, None)
    if not isinstance(value.get("enable"), bool):
        entry.pop("enable", None)
    return entry


def connections_from_wire(config: Dict[str, Any]) -> List[OpenAIConnection]:
    """Project the three parallel wire lists onto connection records.

    Keys beyond the URL list are dropped and missing keys read as "".
    """
    urls = _string_list(config.get(BASE_URLS_KEY))
    keys = _string_list(config.get(KEYS_KEY))
    raw_configs = config.get(CONFIGS_KEY)
    if not isinstance(raw_configs, dict):
        raw_configs = {}
    return [
        OpenAIConnection(
            url=url,
            key=keys[index] if index < len(keys) else "",
            config=clean_config_entry(raw_configs.get(str(index))),
        )
        for index, url in enumerate(urls)
    ]


def connections_to_wire(connections: List[OpenAIConnection]) -> Dict[str, Any]:
    return {
        BASE_URLS_KEY: [c.url for c in connections],
        KEYS_KEY: [c.key for c in connections],
        CONFIGS_KEY: {str(index): dict(c.config) for index, c in enumerate(connections)},
    }


def normalize_target_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {
        **entry,
        "enable": True,
        "tags": list(entry.get("tags", [])),
        "prefix_id": entry.get("prefix_id", ""),
        "model_ids": list(entry.get("model_ids", [])),
        "connection_type": "external",
        "auth_type": "bearer",
    }


async def ensure_openai_proxy_connection(
    client: OpenWebUIClient,
    base_url: str,
    api_key: str,
) -> bool:
    """Make sure *base_url* is an enabled OpenAI connection using *api_key*.

    Returns:
        True if the Open WebUI config was written
    """
    if not client.has_token():
        logger.info("Open WebUI token not configured, skipping OpenAI proxy connection")
        return False
    target_url = base_url.strip()
    if not target_url or not api_key:
        return False

    try:
        config = await client.fetch_openai_config()
        wire_keys = _string_list(config.get(KEYS_KEY))
        connections = connections_from_wire(config)
        # Key list length mismatches are repaired on write.
        changed = len(wire_keys) != len(connections)

        target = normalize_base_url(target_url)
        match = next(
            (c for c in connections if normalize_base_url(c.url) == target), None
        )
        if match is None:
            match = OpenAIConnection(url=target_url)
            connections.append(match)
            changed = True

        if match.key != api_key:
            match.key = api_key
            changed = True

        normalized = normalize_target_entry(match.config)
        if normalized != match.config:
            match.config = normalized
            changed = True

        if not config.get(ENABLE_KEY):
            changed = True

        if not changed:
            logger.debug("OpenAI proxy connection already up to date")
            return False

        await client.update_openai_config({
            **config,
            ENABLE_KEY: True,
            **connections_to_wire(connections),
        })
        logger.info("Registered OpenAI proxy connection %s", target_url)
        return True
    except Exception as e:
        logger.error("Failed to ensure OpenAI proxy connection: %s", e)
        raise
