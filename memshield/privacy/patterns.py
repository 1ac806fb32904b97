"""
memshield Redaction Patterns

Default secret detectors plus a guarded compiler for user-supplied patterns.

All patterns are compiled with RE2, whose matching time is linear in the
input size, so no pattern (default or custom) can backtrack catastrophically.
Custom patterns are additionally bounded in length and count, and RE2
rejects constructs it cannot run in linear time (backreferences,
lookaround), which are skipped like any other invalid pattern.

Assignment-style detectors replace only the secret value. The key name,
separator and surrounding quotes are kept, so a JSON document stays
parseable after redaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

import re2

logger = logging.getLogger(__name__)

# Placeholder written wherever content is redacted. Contains no character
# that any default detector can consume as part of a secret value.
REDACTION_MARKER = "[REDACTED]"

# ReDoS limits for user-defined patterns
MAX_PATTERN_LENGTH = 200
MAX_CUSTOM_PATTERNS = 50

# Rounds of re-scanning text next to fresh markers before giving up and
# redacting the whole unsettled stretch
MAX_REDACTION_PASSES = 16


class PatternScope(str, Enum):
    """Where a redaction pattern came from."""
    DEFAULT = "default"
    CUSTOM = "custom"


@dataclass(frozen=True)
class RedactionPattern:
    """A compiled redaction pattern.

    ``secret_group`` names the capture group holding the secret. When set,
    only that group is replaced and the rest of the match is kept.
    """
    name: str
    regex: Any
    scope: PatternScope = PatternScope.DEFAULT
    secret_group: Optional[int] = None


# Optional quote before or after a key, JSON-escaped or not
_QUOTE = r"""(?:\\?["'])?"""

# (name, source, secret_group). Order matters only for which detector
# claims an overlapping span; every detector runs on every pass.
_DEFAULT_PATTERN_SOURCES: Tuple[Tuple[str, str, Optional[int]], ...] = (
    # API keys
    ("openai_api_key", r"\bsk-[a-zA-Z0-9]{20,}", None),
    ("generic_api_prefix", r"\bapi_[a-zA-Z0-9]{20,}", None),
    ("generic_key_prefix", r"\bkey_[a-zA-Z0-9]{20,}", None),

    # Authorization headers; the scheme word is kept
    ("bearer_token", r"(?i)\bBearer\s+([a-zA-Z0-9\-._~+/]+=*)", 1),

    # AWS access key IDs, also when run together with following lowercase text
    ("aws_access_key_id", r"\b(AKIA[0-9A-Z]{16})(?:[^0-9A-Z]|$)", 1),

    # PEM private keys, including the RSA-qualified form
    ("private_key_block",
     r"-----BEGIN\s+(?:RSA\s+)?PRIVATE\s+KEY-----[\s\S]*?"
     r"-----END\s+(?:RSA\s+)?PRIVATE\s+KEY-----", None),

    # password=..., passwd: ..., "pwd": "..."
    # A value never starts with JSON punctuation: a quote before one closes a string
    ("password_assignment",
     r"(?i)(?:password|passwd|pwd)" + _QUOTE + r"\s*[=:]\s*" + _QUOTE + r"""([^\s'"\\,:;{}\[\]][^\s'"\\]*)""", 1),

    # JSON Web Tokens (base64url segments)
    ("jwt",
     r"\beyJ[a-zA-Z0-9\-_.~+/]+=*\.eyJ[a-zA-Z0-9\-_.~+/]+=*\.[a-zA-Z0-9\-_.~+/]+=*", None),

    # GitHub personal access / OAuth / user / server / refresh tokens
    ("github_token", r"\bgh[pousr]_[a-zA-Z0-9]{36,}\b", None),

    # token=..., secret: "...", "auth": "..."
    ("generic_secret_assignment",
     r"(?i)\b(?:token|secret|auth)" + _QUOTE + r"\s*[=:]\s*" + _QUOTE + r"([a-zA-Z0-9\-._~+/]{20,})", 1),
)


def _compile(source: str) -> Any:
    return re2.compile(source)


DEFAULT_REDACTION_PATTERNS: Tuple[RedactionPattern, ...] = tuple(
    RedactionPattern(name=name, regex=_compile(source), scope=PatternScope.DEFAULT, secret_group=group)
    for name, source, group in _DEFAULT_PATTERN_SOURCES
)


def parse_pattern_list(raw: Optional[str]) -> List[str]:
    """Split a comma-separated pattern setting into trimmed, non-empty entries."""
    if not raw or not isinstance(raw, str):
        return []
    return [p.strip() for p in raw.split(",") if p.strip()]


def compile_user_patterns(patterns: Iterable[str]) -> List[RedactionPattern]:
    """Safely compile user-provided regex patterns.

    Only the first MAX_CUSTOM_PATTERNS entries are considered. Entries that
    are blank, longer than MAX_PATTERN_LENGTH, not compilable, or that match
    the empty string are skipped with a warning. Never raises.

    Args:
        patterns: Regex source strings

    Returns:
        Compiled patterns, in input order
    """
    compiled: List[RedactionPattern] = []

    for index, pattern in enumerate(list(patterns)[:MAX_CUSTOM_PATTERNS]):
        if not isinstance(pattern, str) or not pattern.strip():
            continue

        if len(pattern) > MAX_PATTERN_LENGTH:
            logger.warning(
                "Redaction pattern too long, skipping (length=%d, max=%d)",
                len(pattern), MAX_PATTERN_LENGTH,
            )
            continue

        try:
            regex = _compile(pattern)
        except (re2.error, TypeError, ValueError) as e:
            logger.warning("Invalid redaction pattern %r, skipping: %s", pattern, e)
            continue

        # An empty match would insert markers between every character
        if regex.search("") is not None:
            logger.warning("Redaction pattern %r matches empty text, skipping", pattern)
            continue

        compiled.append(RedactionPattern(
            name=f"custom_{index}",
            regex=regex,
            scope=PatternScope.CUSTOM,
        ))

    return compiled


def get_redaction_patterns(custom_patterns: Optional[str] = None) -> List[RedactionPattern]:
    """Get all redaction patterns: defaults followed by compiled custom patterns.

    Args:
        custom_patterns: Comma-separated regex sources, or None
    """
    patterns = list(DEFAULT_REDACTION_PATTERNS)
    patterns.extend(compile_user_patterns(parse_pattern_list(custom_patterns)))
    return patterns


def _replacement(pattern: RedactionPattern) -> Union[str, Callable[[Any], str]]:
    group = pattern.secret_group
    if group is None:
        return REDACTION_MARKER

    def replace(match: Any) -> str:
        start = match.start()
        text = match.group(0)
        return text[:match.start(group) - start] + REDACTION_MARKER + text[match.end(group) - start:]

    return replace


def apply_pattern(pattern: RedactionPattern, text: str) -> Tuple[str, int]:
    """Replace every match of one pattern with the redaction marker.

    Text already replaced by a marker is never matched again: the pattern
    only runs over the stretches between existing markers.

    Returns:
        (new_text, number_of_replacements)
    """
    replacement = _replacement(pattern)
    pieces = text.split(REDACTION_MARKER)
    total = 0
    for i, piece in enumerate(pieces):
        if not piece:
            continue
        pieces[i], count = pattern.regex.subn(replacement, piece)
        total += count
    return REDACTION_MARKER.join(pieces), total


def _single_pass(text: str, patterns: Sequence[RedactionPattern]) -> Tuple[str, int]:
    total = 0
    for pattern in patterns:
        text, count = apply_pattern(pattern, text)
        total += count
    return text, total


def _settle(piece: str, patterns: Sequence[RedactionPattern], depth: int) -> Tuple[str, int]:
    # A fresh marker turns its neighbours into stretch edges, where \b, ^
    # and $ can now match. Each stretch is re-scanned until nothing matches.
    if not piece:
        return piece, 0

    text, total = _single_pass(piece, patterns)
    if total == 0:
        return piece, 0

    if depth >= MAX_REDACTION_PASSES:
        logger.warning(
            "Redaction did not settle after %d passes, redacting the stretch (length=%d)",
            MAX_REDACTION_PASSES, len(piece),
        )
        return REDACTION_MARKER, total

    parts = []
    for part in text.split(REDACTION_MARKER):
        settled, count = _settle(part, patterns, depth + 1)
        parts.append(settled)
        total += count
    return REDACTION_MARKER.join(parts), total


def apply_patterns(text: str, patterns: Sequence[RedactionPattern]) -> Tuple[str, int]:
    """Apply patterns until no pattern matches anywhere outside a marker.

    The result is stable: applying the same patterns to it again changes
    nothing and counts nothing.

    Returns:
        (new_text, number_of_replacements across all passes)
    """
    pieces = text.split(REDACTION_MARKER)
    total = 0
    for i, piece in enumerate(pieces):
        pieces[i], count = _settle(piece, patterns, 0)
        total += count
    return REDACTION_MARKER.join(pieces), total
