"""Relay configuration loaded from the environment.

The bootstrap calls ``load_dotenv()`` first, so every variable below can
also come from a ``.env`` file in the working directory.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from authrelay.auth.client.models.registration import LOOPBACK_HOSTS

ENV_PREFIX = "AUTHRELAY_"
DEFAULT_CACHE_ROOT = Path("~/.authrelay")


class ConfigError(ValueError):
    """Raised when the relay configuration is missing or invalid."""


class RelayConfig(BaseModel):
    """Everything the relay needs to reach and authenticate to the remote."""

    remote_url: str
    redirect_uri: str = "http://127.0.0.1:38573/callback"
    scopes: str = "openid profile mcp"
    client_name: str = "MCP STDIO OAuth Relay"
    cache_dir: Path | None = None
    http_timeout: float = Field(default=30.0, gt=0)
    login_timeout: float = Field(default=300.0, gt=0)
    max_concurrency: int = Field(default=16, ge=1)
    shutdown_grace: float = Field(default=0.0, ge=0)
    log_level: str = "INFO"

    @field_validator("remote_url")
    @classmethod
    def validate_remote_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"remote_url must be an absolute http(s) URL: {v!r}")
        return v

    @field_validator("redirect_uri")
    @classmethod
    def validate_redirect_uri(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme == "http" and parsed.hostname not in LOOPBACK_HOSTS:
            raise ValueError(f"redirect_uri must be https or a loopback address: {v!r}")
        if parsed.scheme not in ("http", "https") or parsed.port is None:
            raise ValueError(f"redirect_uri needs an http(s) scheme and a port: {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @property
    def namespace(self) -> str:
        """Filesystem-safe name for the remote endpoint's cache directory."""
        parsed = urlparse(self.remote_url)
        raw = f"{parsed.netloc}{parsed.path}"
        return re.sub(r"[^A-Za-z0-9.-]+", "_", raw).strip("_") or "default"

    @property
    def resolved_cache_dir(self) -> Path:
        if self.cache_dir is not None:
            return self.cache_dir.expanduser()
        return (DEFAULT_CACHE_ROOT / self.namespace).expanduser()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RelayConfig:
        """Build the configuration from ``AUTHRELAY_*`` variables.

        Raises:
            ConfigError: If the remote URL is missing or a value is invalid
        """
        if environ is None:
            environ = os.environ

        values = {}
        for field_name in cls.model_fields:
            value = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
            if value not in (None, ""):
                values[field_name] = value

        if "remote_url" not in values:
            raise ConfigError(f"{ENV_PREFIX}REMOTE_URL is not set")

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid relay configuration: {e}") from e
