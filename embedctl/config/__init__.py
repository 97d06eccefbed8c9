"""Local configuration: the stored credential, its file store and settings."""

from __future__ import annotations

from .errors import ConfigError, SettingsError
from .models import Config, Region
from .settings import CLISettings
from .store import ConfigStore

__all__ = [
    "CLISettings",
    "Config",
    "ConfigError",
    "ConfigStore",
    "Region",
    "SettingsError",
]
