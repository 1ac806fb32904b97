"""
memshield Tag Stripping

Sanitizes prompts and tool payloads before they reach memory storage.

Three tags control what is persisted:
1. <memshield-context> - system tag around auto-injected memory context.
   Removed entirely so injected context is never stored again recursively.
2. <private> - user tag for content that must not be persisted. Removed.
3. <secret> - user tag for sensitive values. Replaced with [REDACTED].

After tag handling, every redaction pattern (defaults plus the custom
patterns configured at call time) is applied to the remaining text.

Content bodies are never logged; log records carry counts and lengths only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

import re2

from memshield.logging.security_log import EventType, audit_event
from memshield.privacy.patterns import (
    DEFAULT_REDACTION_PATTERNS,
    MAX_CUSTOM_PATTERNS,
    REDACTION_MARKER,
    RedactionPattern,
    apply_patterns,
    compile_user_patterns,
    parse_pattern_list,
)

logger = logging.getLogger(__name__)

CONTEXT_TAG = "memshield-context"
PRIVATE_TAG = "private"
SECRET_TAG = "secret"

# Opening tags above this count are logged as anomalous but still processed
MAX_TAG_COUNT = 100

# Removal passes allowed for tags rebuilt from fragments by earlier removals
MAX_TAG_PASSES = 10

_CONTEXT_SPAN = re2.compile(rf"<{CONTEXT_TAG}>[\s\S]*?</{CONTEXT_TAG}>")
_PRIVATE_SPAN = re2.compile(rf"<{PRIVATE_TAG}>[\s\S]*?</{PRIVATE_TAG}>")
_SECRET_SPAN = re2.compile(rf"<{SECRET_TAG}>[\s\S]*?</{SECRET_TAG}>")

_OPENING_TAGS = (f"<{CONTEXT_TAG}>", f"<{PRIVATE_TAG}>", f"<{SECRET_TAG}>")


@dataclass(frozen=True)
class RedactionResult:
    """Sanitized content and the number of pattern redactions applied."""
    redacted: str
    count: int


def count_tags(content: str) -> int:
    """Count opening tags of all three kinds."""
    if not isinstance(content, str):
        return 0
    return sum(content.count(tag) for tag in _OPENING_TAGS)


def _remove_tag_spans(content: str) -> Tuple[str, bool]:
    """Remove tagged spans, returning (text, settled).

    Removing a span can join fragments into a new tag, so passes repeat
    while they change anything, up to MAX_TAG_PASSES. ``settled`` is False
    when the text was still changing after the last pass.
    """
    for _ in range(MAX_TAG_PASSES):
        result = _CONTEXT_SPAN.sub("", content)
        result = _PRIVATE_SPAN.sub("", result)
        result = _SECRET_SPAN.sub(REDACTION_MARKER, result)
        if result == content:
            return result, True
        content = result
    return content, False


def _settings_pattern_source() -> Optional[str]:
    from memshield.config.settings import get_custom_patterns
    return get_custom_patterns()


class ContentRedactor:
    """Applies tag stripping and secret redaction to content strings.

    Custom patterns are fetched from ``pattern_source`` on every call, so
    configuration changes take effect without a restart.
    """

    def __init__(
        self,
        pattern_source: Optional[Callable[[], Optional[str]]] = None,
        audit: Optional[Any] = None,
    ):
        """
        Args:
            pattern_source: Callable returning the comma-separated custom
                pattern string. Defaults to the settings file.
            audit: Optional SecurityLogger for the audit trail
        """
        self.pattern_source = pattern_source or _settings_pattern_source
        self.audit = audit
        # Last pattern setting whose rejections were audited
        self._audited_source: Optional[str] = None

    def _load_custom_patterns(self) -> Optional[str]:
        try:
            return self.pattern_source()
        except Exception as e:
            logger.warning(
                "Failed to load custom redaction patterns, using defaults: %s",
                type(e).__name__,
            )
            return None

    def get_patterns(self) -> List[RedactionPattern]:
        """Default patterns followed by the currently configured custom ones."""
        raw = self._load_custom_patterns()
        requested = parse_pattern_list(raw)[:MAX_CUSTOM_PATTERNS]
        compiled = compile_user_patterns(requested)

        rejected = len(requested) - len(compiled)
        if rejected and raw != self._audited_source:
            self._audited_source = raw
            audit_event(
                self.audit,
                EventType.PATTERN_REJECTED,
                "redaction",
                metadata={"rejected_count": rejected, "requested_count": len(requested)},
            )

        return list(DEFAULT_REDACTION_PATTERNS) + compiled

    def redact_secrets(self, content: Any) -> RedactionResult:
        """Redact secrets using the default and custom patterns.

        Args:
            content: Content to redact

        Returns:
            RedactionResult with redacted text and match count
        """
        if not content or not isinstance(content, str):
            return RedactionResult(redacted="", count=0)

        redacted, count = apply_patterns(content, self.get_patterns())

        if count > 0:
            logger.info(
                "Secrets redacted from content (count=%d, content_length=%d)",
                count, len(content),
            )
            audit_event(
                self.audit,
                EventType.SECRETS_REDACTED,
                "redaction",
                metadata={"redaction_count": count, "content_length": len(content)},
            )

        return RedactionResult(redacted=redacted, count=count)

    def strip_tags(self, content: Any) -> RedactionResult:
        """Strip memory tags and redact secrets.

        Returns:
            RedactionResult whose text is trimmed. An empty string means
            nothing is left worth persisting.
        """
        if not content or not isinstance(content, str):
            return RedactionResult(redacted="", count=0)

        tag_count = count_tags(content)
        if tag_count > MAX_TAG_COUNT:
            logger.warning(
                "Tag count exceeds limit (tag_count=%d, max=%d, content_length=%d)",
                tag_count, MAX_TAG_COUNT, len(content),
            )
            audit_event(
                self.audit,
                EventType.TAG_LIMIT_EXCEEDED,
                "redaction",
                metadata={
                    "tag_count": tag_count,
                    "max_allowed": MAX_TAG_COUNT,
                    "content_length": len(content),
                },
            )

        stripped, settled = _remove_tag_spans(content)
        if not settled:
            # Tags crafted to reassemble after removal; persist nothing
            logger.warning(
                "Tag removal did not settle after %d passes, dropping content (content_length=%d)",
                MAX_TAG_PASSES, len(content),
            )
            audit_event(
                self.audit,
                EventType.TAG_LIMIT_EXCEEDED,
                "redaction",
                metadata={"max_passes": MAX_TAG_PASSES, "content_length": len(content)},
            )
            return RedactionResult(redacted="", count=0)

        result = self.redact_secrets(stripped)
        return RedactionResult(redacted=result.redacted.strip(), count=result.count)

    def strip_memory_tags_from_prompt(self, content: Any) -> str:
        """Strip memory tags from user prompt text."""
        return self.strip_tags(content).redacted

    def strip_memory_tags_from_json(self, content: Any) -> str:
        """Strip memory tags from JSON-serialized tool input or output.

        Secret values are replaced inside their quotes and tagged spans
        inside their strings, so valid JSON text stays valid.
        """
        return self.strip_tags(content).redacted


def redact_secrets(content: Any) -> RedactionResult:
    """Redact secrets from content using the configured patterns."""
    return ContentRedactor().redact_secrets(content)


def strip_memory_tags_from_prompt(content: Any) -> str:
    """Strip memory tags from user prompt text."""
    return ContentRedactor().strip_memory_tags_from_prompt(content)


def strip_memory_tags_from_json(content: Any) -> str:
    """Strip memory tags from JSON-serialized tool content."""
    return ContentRedactor().strip_memory_tags_from_json(content)
