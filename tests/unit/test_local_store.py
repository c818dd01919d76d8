"""Tests for the local state file."""

import json
import os
from unittest.mock import patch

from mcpo_sync.config import Settings
from mcpo_sync.security.encryption import get_fernet, is_encrypted
from mcpo_sync.storage.local_store import LocalStore


class TestLocalStore:
    """Token and cached document persistence."""

    def test_missing_file_reads_empty(self, tmp_path):
        store = LocalStore(tmp_path / "missing" / "state.json")

        assert store.get_token() is None
        assert store.get_cached_config() is None

    def test_token_is_encrypted_at_rest(self, tmp_path):
        path = tmp_path / "state.json"
        LocalStore(path).set_token("sk-abc")

        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["openwebui_token"] != "sk-abc"
        assert is_encrypted(raw["openwebui_token"])
        assert LocalStore(path).get_token() == "sk-abc"

    def test_blank_token_clears(self, tmp_path):
        store = LocalStore(tmp_path / "state.json")
        store.set_token("sk-abc")

        store.set_token("   ")

        assert store.get_token() is None

    def test_cached_config_roundtrip(self, tmp_path):
        store = LocalStore(tmp_path / "state.json")
        text = '{\n  "mcpServers": {"é": {}}\n}'

        store.set_cached_config(text)
        assert store.get_cached_config() == text

        store.set_cached_config(None)
        assert store.get_cached_config() is None

    def test_values_are_independent(self, tmp_path):
        store = LocalStore(tmp_path / "state.json")
        store.set_token("sk-abc")
        store.set_cached_config("{}")

        store.set_token(None)

        assert store.get_cached_config() == "{}"

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")

        assert LocalStore(path).get_token() is None

    def test_write_leaves_no_temp_files(self, tmp_path):
        store = LocalStore(tmp_path / "state.json")
        store.set_token("a")
        store.set_token("b")

        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_values_survive_restart_with_generated_key(self, tmp_path):
        """A fresh process without SECRET_KEY still reads what the last one stored."""
        env = {"SECRET_KEY": "", "MCPO_SYNC_DATA_DIR": str(tmp_path)}
        get_fernet.cache_clear()
        try:
            with patch.dict(os.environ, env), patch(
                "mcpo_sync.config.get_settings", return_value=Settings()
            ):
                store = LocalStore(Settings().get_store_path())
                store.set_token("tok")
                store.set_cached_config('{"mcpServers": {}}')

            get_fernet.cache_clear()
            with patch.dict(os.environ, env), patch(
                "mcpo_sync.config.get_settings", return_value=Settings()
            ):
                restarted = LocalStore(Settings().get_store_path())
                assert restarted.get_token() == "tok"
                assert restarted.get_cached_config() == '{"mcpServers": {}}'
        finally:
            get_fernet.cache_clear()
