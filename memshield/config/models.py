"""
Pydantic models for memshield configuration validation.

These models define the schema for settings.yaml. They provide:
- Type-safe configuration loading with automatic validation
- Human-readable error messages for invalid configuration
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, field_validator

from memshield.privacy.patterns import MAX_CUSTOM_PATTERNS, parse_pattern_list


class LogLevel(str, Enum):
    """Valid operational log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


def _default_data_dir() -> Path:
    return Path.home() / ".memshield"


class MemshieldSettings(BaseModel):
    """Root settings model (settings.yaml)."""
    data_dir: Path = Field(default_factory=_default_data_dir)
    log_level: LogLevel = LogLevel.INFO

    # Comma-separated regex sources applied after the default detectors
    redact_patterns: str = ""

    audit_log_enabled: bool = True
    redact_audit_logs: bool = True

    # Read by the retention job
    retention_enabled: bool = True
    retention_days: int = Field(default=90, gt=0)

    model_config = {"extra": "allow"}

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v):
        if v is None or v == "":
            return _default_data_dir()
        return Path(str(v)).expanduser()

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("redact_patterns", mode="before")
    @classmethod
    def join_pattern_list(cls, v):
        # YAML users may write the patterns as a list
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return ",".join(str(p) for p in v)
        return v

    @property
    def custom_patterns(self) -> List[str]:
        """Configured custom patterns, at most MAX_CUSTOM_PATTERNS of them."""
        return parse_pattern_list(self.redact_patterns)[:MAX_CUSTOM_PATTERNS]

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.yaml"

    @property
    def audit_db_path(self) -> Path:
        return self.data_dir / "security.db"
