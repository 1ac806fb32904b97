#!/usr/bin/env python3
"""
memshield Security Logger

SQLite-based audit trail for security events: redactions, credential
access, authentication decisions and encryption key lifecycle.

Database location: ~/.memshield/security.db

Every text field and metadata value passes through LogRedactor before it is
written, so a secret value can never land in the audit trail even if a
caller passes one by mistake. Entries are hash-chained to make tampering
detectable.
"""
from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from memshield.privacy.patterns import (
    DEFAULT_REDACTION_PATTERNS,
    REDACTION_MARKER,
    apply_patterns,
)
from memshield.utils.file_permissions import ensure_secure_directory, set_secure_permissions

logger = logging.getLogger(__name__)

# Control characters escaped in stored text so one event is always one line
_CONTROL_ESCAPES = str.maketrans({
    "\x00": "\\x00",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\x1b": "\\x1b",
})

# Columns covered by an entry's chain hash, in insert order
_HASHED_FIELDS = (
    "event_type",
    "component",
    "decision",
    "decision_reason",
    "session_id",
    "metadata_json",
    "correlation_id",
    "source",
)


def _escape_control_chars(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text.translate(_CONTROL_ESCAPES)


class LogRedactor:
    """
    Redacts sensitive information from log data.

    Uses the same detectors as content redaction, plus masking of any
    dictionary value whose key names a credential.
    """

    # Keys in dictionaries that should have their values redacted
    SENSITIVE_KEYS = {
        'password', 'passwd', 'pwd', 'secret', 'token', 'api_key', 'apikey',
        'access_key', 'secret_key', 'private_key', 'credential', 'bearer',
        'jwt', 'cookie', 'refresh_token', 'client_secret', 'signing_key',
        'encryption_key', 'old_key', 'new_key', 'value',
    }

    # Metadata keys that describe a secret without revealing it
    SAFE_KEYS = {'token_length', 'key_length', 'secret_name'}

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def redact_string(self, text: str) -> str:
        """Redact sensitive information from a string."""
        if not self.enabled or not text:
            return text
        redacted, _ = apply_patterns(text, DEFAULT_REDACTION_PATTERNS)
        return redacted

    def redact_dict(self, data: Dict[str, Any], depth: int = 0) -> Dict[str, Any]:
        """
        Redact sensitive information from a dictionary.

        Args:
            data: Dictionary to redact
            depth: Current recursion depth (to prevent infinite loops)

        Returns:
            Dictionary with sensitive values redacted
        """
        if not self.enabled or not data or depth > 10:
            return data

        result = {}
        for key, value in data.items():
            key_lower = str(key).lower()

            is_sensitive = key_lower not in self.SAFE_KEYS and any(
                sensitive in key_lower for sensitive in self.SENSITIVE_KEYS
            )

            if is_sensitive:
                result[key] = REDACTION_MARKER
            elif isinstance(value, str):
                result[key] = self.redact_string(value)
            elif isinstance(value, dict):
                result[key] = self.redact_dict(value, depth + 1)
            elif isinstance(value, list):
                result[key] = [
                    self.redact_dict(item, depth + 1) if isinstance(item, dict)
                    else self.redact_string(item) if isinstance(item, str)
                    else item
                    for item in value
                ]
            else:
                result[key] = value

        return result


class EventType(Enum):
    """Types of security events."""
    # Content redaction
    SECRETS_REDACTED = "secrets_redacted"           # Pattern matches replaced
    TAG_LIMIT_EXCEEDED = "tag_limit_exceeded"       # Too many tags in one block
    PATTERN_REJECTED = "pattern_rejected"           # Custom pattern skipped

    # Credential store
    VAULT_ACCESS = "vault_access"                   # Secret set/get/delete

    # Authentication
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    TOKEN_GENERATED = "token_generated"
    TOKEN_REGENERATED = "token_regenerated"

    # Encryption key lifecycle
    KEY_GENERATED = "key_generated"
    KEY_ROTATION_STARTED = "key_rotation_started"
    KEY_ROTATION_CONFIRMED = "key_rotation_confirmed"
    KEY_DELETED = "key_deleted"

    # System events
    PERMISSIONS_HARDENED = "permissions_hardened"
    ERROR = "error"


@dataclass
class SecurityEvent:
    """A security event to be logged."""
    event_type: EventType
    component: str
    decision: Optional[str] = None          # allow, deny
    decision_reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = None
    correlation_id: Optional[str] = None
    source: Optional[str] = None            # "cli", "worker", "hook"


class SecurityLogger:
    """SQLite-based security event logger with automatic redaction."""

    DEFAULT_DB_PATH = Path.home() / ".memshield" / "security.db"

    def __init__(
        self,
        db_path: Optional[Path] = None,
        redact_logs: bool = True
    ):
        """Initialize the security logger.

        Args:
            db_path: Path to SQLite database. Defaults to ~/.memshield/security.db
            redact_logs: Whether to redact sensitive data before logging (default True)
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.redactor = LogRedactor(enabled=redact_logs)
        self._conn: Optional[sqlite3.Connection] = None
        self._ensure_db_exists()

    def _ensure_db_exists(self):
        """Create the database, its parent directory and tables if missing."""
        ensure_secure_directory(self.db_path.parent)

        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS security_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT (datetime('now')),
                    event_type TEXT NOT NULL,
                    component TEXT NOT NULL,
                    decision TEXT,
                    decision_reason TEXT,
                    session_id TEXT,
                    metadata_json TEXT,
                    correlation_id TEXT,
                    source TEXT,
                    entry_hash TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_events_timestamp
                    ON security_events(timestamp);
                CREATE INDEX IF NOT EXISTS idx_events_type
                    ON security_events(event_type);
                CREATE INDEX IF NOT EXISTS idx_events_component
                    ON security_events(component);

                -- Hash of the newest pruned entry; the chain restarts from it
                CREATE TABLE IF NOT EXISTS chain_anchor (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    entry_hash TEXT NOT NULL
                );
            """)

        set_secure_permissions(self.db_path)

    @contextmanager
    def _connect(self):
        """Yield the shared connection; commit on success, drop it on error."""
        if self._conn is None:
            conn = sqlite3.connect(str(self.db_path), timeout=5)
            conn.row_factory = sqlite3.Row
            # The CLI and the worker may write concurrently
            conn.execute("PRAGMA journal_mode=WAL")
            self._conn = conn

        conn = self._conn
        try:
            yield conn
            conn.commit()
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        """Close the database connection."""
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def log(self, event: SecurityEvent) -> int:
        """Log a security event with automatic redaction of sensitive data.

        Returns:
            The row ID of the inserted event
        """
        reason = event.decision_reason
        if reason:
            reason = _escape_control_chars(self.redactor.redact_string(reason))
        metadata = self.redactor.redact_dict(event.metadata) if event.metadata else None

        fields: Dict[str, Any] = {
            "event_type": event.event_type.value,
            "component": event.component,
            "decision": event.decision,
            "decision_reason": reason or None,
            "session_id": event.session_id,
            "metadata_json": json.dumps(metadata, default=str) if metadata else None,
            "correlation_id": event.correlation_id,
            "source": event.source,
        }

        with self._connect() as conn:
            fields["entry_hash"] = self._chain_hash(self._head_hash(conn), fields)
            columns = list(fields)
            cursor = conn.execute(
                f"INSERT INTO security_events ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' * len(columns))})",
                [fields[column] for column in columns],
            )
            return cursor.lastrowid

    def log_quick(self, event_type: EventType, component: str, **kwargs) -> int:
        """Build a SecurityEvent from keyword fields and log it."""
        return self.log(SecurityEvent(event_type=event_type, component=component, **kwargs))

    def get_recent_events(
        self,
        limit: int = 50,
        event_type: Optional[EventType] = None,
        component: Optional[str] = None
    ) -> List[Dict]:
        """Get recent security events, most recent first."""
        clauses = []
        params: List[Any] = []
        if event_type:
            clauses.append("event_type = ?")
            params.append(event_type.value)
        if component:
            clauses.append("component = ?")
            params.append(component)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM security_events {where} ORDER BY id DESC LIMIT ?", params
            ).fetchall()
        return [dict(row) for row in rows]

    def _count_by(self, conn: sqlite3.Connection, column: str, since: str) -> Dict[str, int]:
        rows = conn.execute(
            f"SELECT {column} AS name, COUNT(*) AS n FROM security_events "
            f"WHERE timestamp > datetime('now', ?) GROUP BY {column} ORDER BY n DESC",
            (since,),
        ).fetchall()
        return {row["name"]: row["n"] for row in rows}

    def get_stats(self, days: int = 7) -> Dict[str, Any]:
        """Event totals for the last ``days`` days, overall and per type/component."""
        since = f"-{days} days"
        with self._connect() as conn:
            by_type = self._count_by(conn, "event_type", since)
            by_component = self._count_by(conn, "component", since)

        return {
            "period_days": days,
            "total_events": sum(by_type.values()),
            "by_type": by_type,
            "by_component": by_component,
        }

    def delete_events(self, days: Optional[int] = None) -> int:
        """Delete events older than ``days``, or all events when None.

        Returns:
            Number of events deleted
        """
        with self._connect() as conn:
            if days is None:
                last = conn.execute(
                    "SELECT id, entry_hash FROM security_events ORDER BY id DESC LIMIT 1"
                ).fetchone()
            else:
                last = conn.execute(
                    "SELECT id, entry_hash FROM security_events "
                    "WHERE timestamp < datetime('now', ?) ORDER BY id DESC LIMIT 1",
                    (f"-{days} days",),
                ).fetchone()

            if last is None:
                return 0

            conn.execute(
                "INSERT OR REPLACE INTO chain_anchor (id, entry_hash) VALUES (1, ?)",
                (last["entry_hash"] or "",),
            )
            cursor = conn.execute("DELETE FROM security_events WHERE id <= ?", (last["id"],))
            return cursor.rowcount

    def export_csv(self, filepath: Path, days: Optional[int] = None) -> int:
        """Write events (newest first) to a CSV file.

        Returns:
            Number of rows exported; no file is written when there are none
        """
        import csv

        where, params = "", []
        if days:
            where, params = "WHERE timestamp > datetime('now', ?)", [f"-{days} days"]

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM security_events {where} ORDER BY id DESC", params
            ).fetchall()

        if rows:
            with open(filepath, "w", newline="") as f:
                writer = csv.writer(f)
                writer.writerow(rows[0].keys())
                writer.writerows(tuple(row) for row in rows)
        return len(rows)

    # --- Hash chain ---

    @staticmethod
    def _head_hash(conn: sqlite3.Connection) -> str:
        """Hash a new entry chains onto: the newest entry, else the prune anchor."""
        row = conn.execute(
            "SELECT entry_hash FROM security_events ORDER BY id DESC LIMIT 1"
        ).fetchone()
        if row and row["entry_hash"]:
            return row["entry_hash"]
        return SecurityLogger._anchor_hash(conn)

    @staticmethod
    def _anchor_hash(conn: sqlite3.Connection) -> str:
        row = conn.execute("SELECT entry_hash FROM chain_anchor WHERE id = 1").fetchone()
        return row["entry_hash"] if row else ""

    @staticmethod
    def _chain_hash(prev_hash: str, fields: Dict[str, Any]) -> str:
        """SHA-256 of the previous hash followed by the entry's canonical JSON."""
        canonical = json.dumps(
            {name: fields.get(name) for name in _HASHED_FIELDS},
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256((prev_hash + canonical).encode("utf-8")).hexdigest()

    def verify_chain(self) -> Dict[str, Any]:
        """Recompute every entry's hash from the anchor forward.

        Returns:
            Dict with ``valid``, ``total``, ``verified``, ``broken_at`` (first
            bad row ID or None) and ``errors`` (one dict per bad entry)
        """
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM security_events ORDER BY id").fetchall()
            prev_hash = self._anchor_hash(conn)

        errors = []
        for row in rows:
            stored = row["entry_hash"] or ""
            expected = self._chain_hash(prev_hash, dict(row))
            if expected != stored:
                errors.append({
                    "id": row["id"],
                    "event_type": row["event_type"],
                    "timestamp": row["timestamp"],
                    "expected_hash": expected[:16] + "...",
                    "stored_hash": stored[:16] + "...",
                })
            prev_hash = stored

        return {
            "valid": not errors,
            "total": len(rows),
            "verified": len(rows) - len(errors),
            "broken_at": errors[0]["id"] if errors else None,
            "errors": errors,
        }


def audit_event(
    audit: Optional[SecurityLogger],
    event_type: EventType,
    component: str,
    **kwargs,
) -> None:
    """Record an audit event if an audit logger is configured.

    Audit failures are logged and never propagate into the caller's
    operation.
    """
    if audit is None:
        return
    try:
        audit.log_quick(event_type, component, **kwargs)
    except (sqlite3.Error, OSError, TypeError, ValueError) as e:
        logger.warning(
            "Failed to write audit event %s: %s", event_type.value, type(e).__name__
        )
