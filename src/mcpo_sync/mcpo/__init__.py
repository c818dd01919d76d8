"""The mcpo configuration document: parsing, entity extraction and masking."""

from .document import (
    SERVER_ID_PATTERN,
    ManagedServer,
    ServerDefinition,
    ServerInfo,
    add_server,
    build_docker_server,
    clone_config,
    extract_managed_servers,
    is_valid_server_id,
    load_config_strict,
    normalize_config_text,
    parse_config,
    remove_server,
    serialize_config,
)
from .masking import (
    MASK_PLACEHOLDER,
    MaskResult,
    SensitiveValueMap,
    is_sensitive_key,
    mask_sensitive_env_values,
    unmask_sensitive_env_values,
)

__all__ = [
    "SERVER_ID_PATTERN",
    "ManagedServer",
    "ServerDefinition",
    "ServerInfo",
    "add_server",
    "build_docker_server",
    "clone_config",
    "extract_managed_servers",
    "is_valid_server_id",
    "load_config_strict",
    "normalize_config_text",
    "parse_config",
    "remove_server",
    "serialize_config",
    "MASK_PLACEHOLDER",
    "MaskResult",
    "SensitiveValueMap",
    "is_sensitive_key",
    "mask_sensitive_env_values",
    "unmask_sensitive_env_values",
]
