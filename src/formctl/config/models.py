"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, formctl.toml only contains
overrides. A fresh project needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# --- formctl.toml sections ---


class LockConfig(BaseModel):
    """[lock] section."""

    model_config = {"frozen": True}

    ttl_seconds: int = Field(default=1800, gt=0)
    timeout_seconds: float = Field(default=10.0, gt=0)
    retries: int = Field(default=1, ge=0)
    renew_interval_seconds: int = Field(default=300, gt=0)
    server_url: str | None = None  # remote lock authority; local store when unset


class HistoryConfig(BaseModel):
    """[history] section."""

    model_config = {"frozen": True}

    max_size: int = Field(default=50, ge=1)


class ValidationConfig(BaseModel):
    """[validation] section."""

    model_config = {"frozen": True}

    async_timeout_seconds: float = Field(default=5.0, gt=0)
    required_message: str = "This field is required"


class VersionsConfig(BaseModel):
    """[versions] section."""

    model_config = {"frozen": True}

    track_position: bool = False


class CacheConfig(BaseModel):
    """[cache] section."""

    model_config = {"frozen": True}

    ttl_seconds: float = Field(default=300.0, ge=0)


class StoreConfig(BaseModel):
    """[store] section. ``directory`` is relative to the project root."""

    model_config = {"frozen": True}

    directory: str = ".formctl"
