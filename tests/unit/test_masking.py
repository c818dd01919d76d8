"""Tests for masking of sensitive environment values."""

import json

import pytest

from mcpo_sync.exceptions import FormatError
from mcpo_sync.mcpo.document import serialize_config
from mcpo_sync.mcpo.masking import (
    MASK_PLACEHOLDER,
    is_sensitive_key,
    mask_sensitive_env_values,
    unmask_sensitive_env_values,
)

DOCUMENT = {
    "mcpServers": {
        "github": {
            "command": "docker",
            "env": {"GITHUB_TOKEN": "ghp_secret", "LOG_LEVEL": "debug", "API_KEY": "k-1"},
        },
        "db": {"command": "uvx", "env": {"DB_PASSWORD": "hunter2", "PORT": 5432, "SESSION_ID": 7}},
        "plain": {"command": "uvx"},
    }
}


class TestSensitiveKeys:
    """Keyword heuristic."""

    @pytest.mark.parametrize("key", ["GITHUB_TOKEN", "api_key", "Password", "AUTH_HEADER", "x_cookie"])
    def test_sensitive(self, key):
        assert is_sensitive_key(key)

    @pytest.mark.parametrize("key", ["LOG_LEVEL", "PORT", "HOST"])
    def test_not_sensitive(self, key):
        assert not is_sensitive_key(key)


class TestMasking:
    """Mask and unmask behavior."""

    def test_masks_only_sensitive_string_values(self):
        result = mask_sensitive_env_values(serialize_config(DOCUMENT))
        masked = json.loads(result.masked_text)

        assert masked["mcpServers"]["github"]["env"] == {
            "GITHUB_TOKEN": MASK_PLACEHOLDER,
            "LOG_LEVEL": "debug",
            "API_KEY": MASK_PLACEHOLDER,
        }
        assert masked["mcpServers"]["db"]["env"]["SESSION_ID"] == 7
        assert result.mask_map == {
            "github::GITHUB_TOKEN": "ghp_secret",
            "github::API_KEY": "k-1",
            "db::DB_PASSWORD": "hunter2",
        }

    def test_round_trip_is_byte_exact_for_canonical_text(self):
        text = serialize_config(DOCUMENT)
        result = mask_sensitive_env_values(text)

        assert unmask_sensitive_env_values(result.masked_text, result.mask_map) == text

    def test_round_trip_is_structural_for_other_formatting(self):
        text = json.dumps(DOCUMENT)
        result = mask_sensitive_env_values(text)

        restored = unmask_sensitive_env_values(result.masked_text, result.mask_map)
        assert json.loads(restored) == DOCUMENT

    def test_nothing_to_mask_returns_text_unchanged(self):
        text = '{"mcpServers":{"a":{"command":"x","env":{"PORT":"1"}}}}'
        result = mask_sensitive_env_values(text)

        assert result.masked_text == text
        assert result.mask_map == {}
        assert unmask_sensitive_env_values(text, {}) == text

    def test_unparseable_text_is_returned_unchanged(self):
        result = mask_sensitive_env_values("{oops")
        assert result.masked_text == "{oops"
        assert result.mask_map == {}

    def test_user_edit_over_placeholder_is_kept(self):
        result = mask_sensitive_env_values(serialize_config(DOCUMENT))
        edited = json.loads(result.masked_text)
        edited["mcpServers"]["github"]["env"]["GITHUB_TOKEN"] = "ghp_new"

        restored = json.loads(unmask_sensitive_env_values(json.dumps(edited), result.mask_map))

        assert restored["mcpServers"]["github"]["env"]["GITHUB_TOKEN"] == "ghp_new"
        assert restored["mcpServers"]["github"]["env"]["API_KEY"] == "k-1"

    def test_renamed_server_keeps_placeholder(self):
        result = mask_sensitive_env_values(serialize_config(DOCUMENT))
        edited = json.loads(result.masked_text)
        edited["mcpServers"]["gh"] = edited["mcpServers"].pop("github")

        restored = json.loads(unmask_sensitive_env_values(json.dumps(edited), result.mask_map))

        assert restored["mcpServers"]["gh"]["env"]["GITHUB_TOKEN"] == MASK_PLACEHOLDER

    @pytest.mark.parametrize("text", ["{oops", "[]", '"str"'])
    def test_unmask_rejects_non_objects(self, text):
        with pytest.raises(FormatError):
            unmask_sensitive_env_values(text, {"a::KEY": "v"})
