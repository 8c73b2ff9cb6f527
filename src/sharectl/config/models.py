"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults live here, ``sharectl.toml`` only carries
overrides. An empty file (or none at all) yields a working loopback setup.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ConductorConfig(BaseModel):
    """[conductor] section."""

    model_config = {"frozen": True}

    backend: str = "loopback"
    app_id: str = "sharefeed"
    role_name: str = "sharefeed"


class StorageConfig(BaseModel):
    """[storage] section."""

    model_config = {"frozen": True}

    dir: str = ".sharectl"
    db_name: str = "sharectl.db"


class NetworkConfig(BaseModel):
    """[network] section."""

    model_config = {"frozen": True}

    default_join_name: str = "Shared Feed"
    fallback_name: str = "Unnamed Network"


class PluginsConfig(BaseModel):
    """[plugins] section."""

    model_config = {"frozen": True}

    enabled: bool = True
    local: dict[str, Any] = Field(default_factory=dict)


class SharectlConfig(BaseModel):
    """Root configuration composing all sections."""

    model_config = {"frozen": True}

    conductor: ConductorConfig = Field(default_factory=ConductorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
