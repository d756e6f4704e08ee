"""Configuration loading utilities for pushrelay."""

from .settings import (
    DEFAULT_CONFIG_PATH,
    SecretStore,
    Settings,
    load_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SecretStore",
    "Settings",
    "load_settings",
]
