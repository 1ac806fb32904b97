"""
memshield settings loading.

Settings live in ~/.memshield/settings.yaml (JSON content is accepted too,
since JSON is valid YAML). Environment variables named MEMSHIELD_<FIELD>
override file values, e.g. MEMSHIELD_REDACT_PATTERNS.

Loading never raises: a missing, unreadable or invalid file falls back to
defaults with a warning, so a broken settings file cannot stop content
from being sanitized.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from memshield.config.models import MemshieldSettings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".memshield" / "settings.yaml"
ENV_PREFIX = "MEMSHIELD_"


class SettingsError(Exception):
    """Error writing settings."""
    pass


def _read_settings_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning("Failed to read settings at %s, using defaults: %s", path, e)
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Settings at %s is not a mapping, using defaults", path)
        return {}

    # Legacy layout nested everything under "env"
    if isinstance(data.get("env"), dict):
        data = data["env"]

    # Accept the legacy upper-case MEMSHIELD_* keys as well
    normalized = {}
    for key, value in data.items():
        key = str(key)
        if key.upper().startswith(ENV_PREFIX):
            key = key[len(ENV_PREFIX):]
        normalized[key.lower()] = value
    return normalized


def _env_overrides() -> Dict[str, str]:
    overrides = {}
    for field in MemshieldSettings.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{field.upper()}")
        if value is not None:
            overrides[field] = value
    return overrides


def load_settings(path: Optional[Path] = None) -> MemshieldSettings:
    """Load settings from file, with environment overrides and defaults.

    Args:
        path: Settings file. Defaults to ~/.memshield/settings.yaml

    Returns:
        Validated settings
    """
    path = Path(path) if path else DEFAULT_SETTINGS_PATH
    data = _read_settings_file(path)
    # The data directory defaults to the one holding the settings file
    data.setdefault("data_dir", str(path.parent))
    data.update(_env_overrides())

    try:
        return MemshieldSettings.model_validate(data)
    except ValidationError as e:
        logger.warning(
            "Invalid settings (%d errors), using defaults", e.error_count()
        )
        return MemshieldSettings(data_dir=path.parent)


def save_settings(settings: MemshieldSettings, path: Optional[Path] = None) -> Path:
    """Write settings to YAML with owner-only permissions.

    Raises:
        SettingsError: If the file cannot be written
    """
    from memshield.utils.file_permissions import ensure_secure_directory, set_secure_permissions

    path = Path(path) if path else DEFAULT_SETTINGS_PATH
    data = settings.model_dump(mode="json")

    try:
        ensure_secure_directory(path.parent)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
    except OSError as e:
        raise SettingsError(f"Failed to write settings to {path}: {e}") from e

    set_secure_permissions(path)
    return path


def get_custom_patterns(path: Optional[Path] = None) -> str:
    """Return the configured custom redaction pattern string.

    Called on every redaction pass so edits apply without a restart.
    """
    return load_settings(path).redact_patterns
