"""memshield configuration module."""

from memshield.config.models import LogLevel, MemshieldSettings
from memshield.config.settings import (
    DEFAULT_SETTINGS_PATH,
    SettingsError,
    get_custom_patterns,
    load_settings,
    save_settings,
)

__all__ = [
    "LogLevel", "MemshieldSettings", "DEFAULT_SETTINGS_PATH", "SettingsError",
    "get_custom_patterns", "load_settings", "save_settings",
]
