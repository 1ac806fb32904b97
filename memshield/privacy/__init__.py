"""memshield privacy: tag stripping and secret redaction."""

from memshield.privacy.patterns import (
    DEFAULT_REDACTION_PATTERNS,
    MAX_CUSTOM_PATTERNS,
    MAX_PATTERN_LENGTH,
    REDACTION_MARKER,
    PatternScope,
    RedactionPattern,
    compile_user_patterns,
    get_redaction_patterns,
)

__all__ = [
    "DEFAULT_REDACTION_PATTERNS", "MAX_CUSTOM_PATTERNS", "MAX_PATTERN_LENGTH",
    "REDACTION_MARKER", "PatternScope", "RedactionPattern",
    "compile_user_patterns", "get_redaction_patterns",
    "ContentRedactor", "RedactionResult", "redact_secrets",
    "strip_memory_tags_from_prompt", "strip_memory_tags_from_json",
]

_TAG_STRIPPING_NAMES = (
    "ContentRedactor", "RedactionResult", "redact_secrets",
    "strip_memory_tags_from_prompt", "strip_memory_tags_from_json",
)


# Lazy import: tag_stripping depends on the audit logger, which itself
# depends on the pattern library above
def __getattr__(name):
    if name in _TAG_STRIPPING_NAMES:
        from memshield.privacy import tag_stripping
        return getattr(tag_stripping, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
