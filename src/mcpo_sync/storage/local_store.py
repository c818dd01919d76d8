"""Small JSON file holding the Open WebUI token and the cached document.

Both values are encrypted at rest. The file is rewritten atomically on every
change; a missing or corrupt file reads as empty.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from ..security.encryption import decrypt_value, encrypt_value

logger = logging.getLogger(__name__)

TOKEN_KEY = "openwebui_token"
CONFIG_CACHE_KEY = "mcpo_config_cache"


class LocalStore:
    """File-backed key/value store for local state."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable local store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(prefix=self.path.name, dir=str(self.path.parent))
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def _get_secret(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        if not isinstance(value, str) or not value:
            return None
        return decrypt_value(value)

    def _set_secret(self, key: str, value: Optional[str]) -> None:
        data = self._load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = encrypt_value(value)
        self._save(data)

    def get_token(self) -> Optional[str]:
        return self._get_secret(TOKEN_KEY) or None

    def set_token(self, token: Optional[str]) -> None:
        """Store the bearer token; None or an empty string clears it."""
        self._set_secret(TOKEN_KEY, token.strip() if token and token.strip() else None)

    def get_cached_config(self) -> Optional[str]:
        return self._get_secret(CONFIG_CACHE_KEY)

    def set_cached_config(self, text: Optional[str]) -> None:
        self._set_secret(CONFIG_CACHE_KEY, text)
