"""Tests for the OpenAI proxy connection ensurer."""

import pytest

from mcpo_sync.sync.openai_proxy import (
    OpenAIConnection,
    clean_config_entry,
    connections_from_wire,
    connections_to_wire,
    ensure_openai_proxy_connection,
    normalize_base_url,
)

PROXY_URL = "http://host.docker.internal:11700"
PROXY_KEY = "0p3n-w3bu!"

NORMALIZED_ENTRY = {
    "enable": True,
    "tags": [],
    "prefix_id": "",
    "model_ids": [],
    "connection_type": "external",
    "auth_type": "bearer",
}


class TestWireProjection:
    """Conversion between parallel wire lists and records."""

    def test_from_wire_pads_missing_keys(self):
        connections = connections_from_wire({
            "OPENAI_API_BASE_URLS": ["https://api.openai.com/v1", "http://local"],
            "OPENAI_API_KEYS": ["sk-1"],
            "OPENAI_API_CONFIGS": {"1": {"enable": False}},
        })

        assert connections == [
            OpenAIConnection(url="https://api.openai.com/v1", key="sk-1", config={}),
            OpenAIConnection(url="http://local", key="", config={"enable": False}),
        ]

    def test_from_wire_drops_extra_keys_and_non_strings(self):
        connections = connections_from_wire({
            "OPENAI_API_BASE_URLS": ["http://a", 42],
            "OPENAI_API_KEYS": ["k1", "k2", "k3"],
            "OPENAI_API_CONFIGS": ["not", "a", "dict"],
        })

        assert connections == [OpenAIConnection(url="http://a", key="k1", config={})]

    def test_to_wire_keys_configs_by_index(self):
        wire = connections_to_wire([
            OpenAIConnection("http://a", "k1", {"enable": True}),
            OpenAIConnection("http://b", "", {}),
        ])

        assert wire == {
            "OPENAI_API_BASE_URLS": ["http://a", "http://b"],
            "OPENAI_API_KEYS": ["k1", ""],
            "OPENAI_API_CONFIGS": {"0": {"enable": True}, "1": {}},
        }

    def test_clean_config_entry_drops_wrong_types(self):
        cleaned = clean_config_entry({
            "enable": "yes",
            "tags": ["a", 1, "b"],
            "model_ids": "gpt-4",
            "prefix_id": None,
            "connection_type": "external",
            "custom": {"x": 1},
        })

        assert cleaned == {"tags": ["a", "b"], "connection_type": "external", "custom": {"x": 1}}

    def test_normalize_base_url(self):
        assert normalize_base_url("  HTTP://Host:11700//  ") == "http://host:11700"


@pytest.mark.asyncio
class TestEnsureConnection:
    """Registration of the proxy connection."""

    async def test_appends_connection_to_empty_config(self, openwebui_client, fake_openwebui):
        wrote = await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, PROXY_KEY)

        assert wrote
        config = fake_openwebui.openai_config
        assert config["ENABLE_OPENAI_API"] is True
        assert config["OPENAI_API_BASE_URLS"] == [PROXY_URL]
        assert config["OPENAI_API_KEYS"] == [PROXY_KEY]
        assert config["OPENAI_API_CONFIGS"] == {"0": NORMALIZED_ENTRY}

    async def test_second_call_is_a_no_op(self, openwebui_client, fake_openwebui):
        await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, PROXY_KEY)
        writes = len(fake_openwebui.writes)

        wrote = await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, PROXY_KEY)

        assert not wrote
        assert len(fake_openwebui.writes) == writes

    async def test_updates_existing_entry_in_place(self, openwebui_client, fake_openwebui):
        fake_openwebui.openai_config = {
            "ENABLE_OPENAI_API": True,
            "OPENAI_API_BASE_URLS": ["https://api.openai.com/v1", PROXY_URL.upper() + "/"],
            "OPENAI_API_KEYS": ["sk-1", "stale"],
            "OPENAI_API_CONFIGS": {
                "0": {"enable": True},
                "1": {"enable": False, "tags": ["local"], "prefix_id": "proxy"},
            },
            "OTHER_SETTING": "kept",
        }

        wrote = await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, PROXY_KEY)

        assert wrote
        config = fake_openwebui.openai_config
        assert config["OPENAI_API_BASE_URLS"] == ["https://api.openai.com/v1", PROXY_URL.upper() + "/"]
        assert config["OPENAI_API_KEYS"] == ["sk-1", PROXY_KEY]
        assert config["OPENAI_API_CONFIGS"]["0"] == {"enable": True}
        assert config["OPENAI_API_CONFIGS"]["1"] == dict(
            NORMALIZED_ENTRY, tags=["local"], prefix_id="proxy"
        )
        assert config["OTHER_SETTING"] == "kept"

    async def test_enables_openai_api(self, openwebui_client, fake_openwebui):
        fake_openwebui.openai_config = {
            "ENABLE_OPENAI_API": False,
            "OPENAI_API_BASE_URLS": [PROXY_URL],
            "OPENAI_API_KEYS": [PROXY_KEY],
            "OPENAI_API_CONFIGS": {"0": dict(NORMALIZED_ENTRY)},
        }

        assert await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, PROXY_KEY)
        assert fake_openwebui.openai_config["ENABLE_OPENAI_API"] is True

    async def test_repairs_key_list_length(self, openwebui_client, fake_openwebui):
        fake_openwebui.openai_config = {
            "ENABLE_OPENAI_API": True,
            "OPENAI_API_BASE_URLS": [PROXY_URL],
            "OPENAI_API_KEYS": [PROXY_KEY, "orphan"],
            "OPENAI_API_CONFIGS": {"0": dict(NORMALIZED_ENTRY)},
        }

        assert await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, PROXY_KEY)
        assert fake_openwebui.openai_config["OPENAI_API_KEYS"] == [PROXY_KEY]

    async def test_without_token_does_nothing(self, openwebui_client, fake_openwebui):
        openwebui_client.token_provider = lambda: None

        assert not await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, PROXY_KEY)
        assert fake_openwebui.requests == []

    async def test_blank_url_or_key_does_nothing(self, openwebui_client, fake_openwebui):
        assert not await ensure_openai_proxy_connection(openwebui_client, "   ", PROXY_KEY)
        assert not await ensure_openai_proxy_connection(openwebui_client, PROXY_URL, "")
        assert fake_openwebui.requests == []
