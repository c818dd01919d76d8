"""Display-safe masking of secret environment values.

Values under env keys that look sensitive are swapped for a placeholder
before the document is shown for editing. The originals are kept in a
per-session map keyed by ``"<serverId>::<envKey>"`` and restored when the
edited text is applied. A placeholder carries no payload of its own, so the
map must be rebuilt every time the document is reloaded.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

from ..exceptions import FormatError
from .document import SERVERS_KEY, clone_config, parse_config, serialize_config

logger = logging.getLogger(__name__)

MASK_PLACEHOLDER = "********"

SENSITIVE_KEYWORDS: Tuple[str, ...] = (
    "key",
    "token",
    "secret",
    "password",
    "passwd",
    "pwd",
    "auth",
    "credential",
    "private",
    "session",
    "cookie",
)

SensitiveValueMap = Dict[str, str]


@dataclass
class MaskResult:
    """Masked document text and the map needed to undo it."""

    masked_text: str
    mask_map: SensitiveValueMap = field(default_factory=dict)


def is_sensitive_key(key: str) -> bool:
    """Case-insensitive substring match against the keyword list."""
    lowered = key.lower()
    return any(keyword in lowered for keyword in SENSITIVE_KEYWORDS)


def mask_path(server_id: str, env_key: str) -> str:
    return f"{server_id}::{env_key}"


def mask_sensitive_env_values(text: str) -> MaskResult:
    """Replace sensitive env values with the placeholder.

    The input text is returned untouched when nothing matched, so an
    unchanged document never shows a formatting diff.
    """
    document = parse_config(text)
    masked = clone_config(document)
    mask_map: SensitiveValueMap = {}

    for server_id, definition in masked[SERVERS_KEY].items():
        if not isinstance(definition, dict) or not isinstance(definition.get("env"), dict):
            continue
        env = definition["env"]
        for env_key, value in env.items():
            if isinstance(value, str) and is_sensitive_key(env_key):
                mask_map[mask_path(server_id, env_key)] = value
                env[env_key] = MASK_PLACEHOLDER

    if not mask_map:
        return MaskResult(masked_text=text, mask_map={})

    logger.debug("Masked %d sensitive value(s)", len(mask_map))
    return MaskResult(masked_text=serialize_config(masked), mask_map=mask_map)


def unmask_sensitive_env_values(text: str, mask_map: SensitiveValueMap) -> str:
    """Restore masked values from *mask_map*.

    Only entries still equal to the placeholder are restored; a value the
    user typed over the placeholder is kept as typed.

    Raises:
        FormatError: *text* is not a JSON object
    """
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as e:
        raise FormatError(f"Invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise FormatError("Configuration must be a JSON object.")

    servers = parsed.get(SERVERS_KEY)
    if not mask_map or not isinstance(servers, dict):
        return text

    restored = 0
    for server_id, definition in servers.items():
        if not isinstance(definition, dict) or not isinstance(definition.get("env"), dict):
            continue
        env = definition["env"]
        for env_key, value in env.items():
            path = mask_path(server_id, env_key)
            if value == MASK_PLACEHOLDER and path in mask_map:
                env[env_key] = mask_map[path]
                restored += 1

    if not restored:
        return text
    return serialize_config(parsed)
