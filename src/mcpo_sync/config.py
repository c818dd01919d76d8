"""Configuration management for mcpo-sync."""

import os
import secrets
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SECRET_KEY_FILE = "secret.key"


def load_or_create_secret_key(path: Path) -> str:
    """Return the key stored at *path*, generating it on first use.

    The file is created with mode 0600. When two processes race, the one
    that loses the exclusive create reads the winner's key.
    """
    try:
        key = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        key = ""
    if key:
        return key

    path.parent.mkdir(parents=True, exist_ok=True)
    key = secrets.token_urlsafe(32)
    flags = os.O_WRONLY | os.O_CREAT | (os.O_TRUNC if path.exists() else os.O_EXCL)
    try:
        fd = os.open(path, flags, 0o600)
    except FileExistsError:
        return path.read_text(encoding="utf-8").strip()
    try:
        os.write(fd, key.encode("utf-8"))
    finally:
        os.close(fd)
    return key


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env" if os.getenv("ENVIRONMENT") != "test" else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "mcpo-sync"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False, validation_alias="DEBUG")
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")

    # Server
    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=11650, validation_alias="PORT")

    # Security (key for encrypting the local store; persisted in data_dir when unset)
    secret_key: str = Field(default="", validation_alias="SECRET_KEY")

    # Local state
    data_dir: str = Field(default="~/.mcpo-sync", validation_alias="MCPO_SYNC_DATA_DIR")

    # mcpo proxy
    mcpo_base_url: str = Field(
        default="http://host.docker.internal:11600", validation_alias="MCPO_BASE_URL"
    )
    mcpo_service_name: str = Field(default="mcpo", validation_alias="MCPO_SERVICE_NAME")

    # Host file bridge
    stack_identifier: str = Field(
        default="rancher-desktop-rdx-open-webui", validation_alias="MCPO_STACK_IDENTIFIER"
    )
    config_relative_path: str = Field(
        default="linux/mcpo/config.json", validation_alias="MCPO_CONFIG_RELATIVE_PATH"
    )
    helper_image: str = Field(default="alpine:3.20", validation_alias="MCPO_HELPER_IMAGE")
    write_chunk_size: int = Field(
        default=16 * 1024, ge=1024, validation_alias="MCPO_WRITE_CHUNK_SIZE"
    )
    atomic_writes: bool = Field(default=True, validation_alias="MCPO_ATOMIC_WRITES")

    # Open WebUI
    openwebui_base_url: str = Field(
        default="http://localhost:11500", validation_alias="OPENWEBUI_BASE_URL"
    )
    openwebui_token: Optional[str] = Field(default=None, validation_alias="OPENWEBUI_TOKEN")
    openwebui_timeout: float = Field(default=30.0, validation_alias="OPENWEBUI_TIMEOUT")

    # OpenAI-compatible proxy connection
    openai_proxy_base_url: str = Field(
        default="http://host.docker.internal:11700", validation_alias="OPENAI_PROXY_BASE_URL"
    )
    openai_proxy_key: str = Field(default="0p3n-w3bu!", validation_alias="OPENAI_PROXY_KEY")

    # CORS Configuration
    cors_allowed_origins: Optional[str] = Field(
        default=None,
        validation_alias="CORS_ALLOWED_ORIGINS",
        description="Comma-separated list of allowed CORS origins. Defaults to ['*'] in dev.",
    )

    # Feature Flags
    ensure_openai_proxy: bool = Field(default=True, validation_alias="ENSURE_OPENAI_PROXY")
    sync_on_startup: bool = Field(default=True, validation_alias="SYNC_ON_STARTUP")

    @model_validator(mode="after")
    def load_secret_key(self):
        if not self.secret_key:
            self.secret_key = load_or_create_secret_key(self.get_secret_key_path())
        return self

    @field_validator("mcpo_base_url", "openwebui_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def get_cors_origins(self) -> List[str]:
        """Parse CORS allowed origins from config."""
        if self.cors_allowed_origins:
            return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]
        # Default: allow all in development
        if self.environment != "production":
            return ["*"]
        return []

    def get_data_dir(self) -> Path:
        """Resolve the local state directory."""
        return Path(self.data_dir).expanduser()

    def get_store_path(self) -> Path:
        """Path of the local store file."""
        return self.get_data_dir() / "state.json"

    def get_secret_key_path(self) -> Path:
        """Where the generated SECRET_KEY is kept between runs."""
        return self.get_data_dir() / SECRET_KEY_FILE


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
