from __future__ import annotations

from .raindrop import DEFAULT_API_URL, RaindropConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import SyncConfig

__all__ = [
    "DEFAULT_API_URL",
    "AppConfig",
    "RaindropConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "load_config",
]
