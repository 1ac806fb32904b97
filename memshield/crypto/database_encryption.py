"""
memshield Database Encryption Keys

Manages the symmetric key the storage layer will use to encrypt its
database. Keys are 256-bit, hex-encoded (64 characters), kept in the
credential store under DB_ENCRYPTION_KEY.

Key lifecycle:
1. First run: generate a key and store it
2. Later runs: read the stored key
3. Rotation is two-phase:
   rotate_key() returns the current and a new key WITHOUT storing the new
   one. The caller re-encrypts its data, verifies it, and only then calls
   confirm_rotation(new_key), the sole write point for rotated keys.
   Storing earlier would strand data still encrypted under the old key.
4. delete_key() makes anything encrypted under the key unrecoverable.
"""
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Optional

from memshield.logging.security_log import EventType, audit_event
from memshield.vault.keyring_store import CredentialStore, SecretKey

logger = logging.getLogger(__name__)

DB_KEY_LENGTH = 32  # bytes (256 bits)
DB_KEY_HEX_LENGTH = DB_KEY_LENGTH * 2
ENCRYPTION_KEY_NAME = SecretKey.DB_ENCRYPTION_KEY

_HEX_DIGITS = frozenset(string.hexdigits)


class EncryptionKeyError(Exception):
    """Error from encryption key operations."""
    pass


class KeyRotationError(EncryptionKeyError):
    """Key rotation cannot proceed."""
    pass


@dataclass(frozen=True)
class KeyRotation:
    """Keys handed to the caller for re-encryption."""
    old_key: str
    new_key: str

    def __repr__(self) -> str:
        return "KeyRotation(old_key=<hidden>, new_key=<hidden>)"


class DatabaseEncryption:
    """Generates, validates and rotates the database encryption key."""

    def __init__(self, store: CredentialStore, audit: Optional[Any] = None):
        self.store = store
        self.audit = audit
        # Holds a key only while it could not be persisted
        self._ephemeral_key: Optional[str] = None

    @staticmethod
    def validate_key(key: Any) -> bool:
        """Check that a key is exactly 64 hex characters."""
        if not isinstance(key, str):
            logger.warning("Invalid key type: %s", type(key).__name__)
            return False

        if len(key) != DB_KEY_HEX_LENGTH:
            logger.warning(
                "Invalid key length: expected %d, got %d", DB_KEY_HEX_LENGTH, len(key)
            )
            return False

        if not all(c in _HEX_DIGITS for c in key):
            logger.warning("Invalid key format: not a valid hex string")
            return False

        return True

    def _generate_key(self) -> str:
        key = secrets.token_hex(DB_KEY_LENGTH)
        logger.debug("Generated %d-bit encryption key", DB_KEY_LENGTH * 8)
        return key

    def _current_key(self) -> Optional[str]:
        if self._ephemeral_key:
            return self._ephemeral_key
        return self.store.get_secret(ENCRYPTION_KEY_NAME)

    def get_or_create_key(self) -> str:
        """Get the stored encryption key, generating one if needed.

        A generated key that cannot be stored is still returned and reused
        for the rest of this process, but it will not survive a restart.
        """
        existing = self._current_key()
        if existing:
            if self.validate_key(existing):
                logger.debug("Retrieved existing database encryption key")
                return existing
            logger.warning("Stored encryption key is malformed, generating a new key")

        logger.info("No encryption key found, generating new key")
        key = self._generate_key()

        if self.store.set_secret(ENCRYPTION_KEY_NAME, key):
            self._ephemeral_key = None
            logger.info("Generated and stored new database encryption key")
        else:
            self._ephemeral_key = key
            logger.warning(
                "Failed to store encryption key. Using generated key for this session only; "
                "data encrypted with it will be unreadable after restart"
            )

        audit_event(
            self.audit,
            EventType.KEY_GENERATED,
            "crypto",
            metadata={"key_length": len(key), "persisted": self._ephemeral_key is None},
        )
        return key

    def rotate_key(self) -> KeyRotation:
        """Generate a replacement key without storing it.

        Returns:
            KeyRotation with the current and the new key

        Raises:
            KeyRotationError: If there is no current key to rotate
        """
        old_key = self._current_key()
        if not old_key:
            logger.error("No existing encryption key found, cannot rotate")
            raise KeyRotationError("No existing encryption key found - cannot rotate")

        new_key = self._generate_key()
        logger.info("Generated new encryption key for rotation (not yet stored)")
        audit_event(self.audit, EventType.KEY_ROTATION_STARTED, "crypto")
        return KeyRotation(old_key=old_key, new_key=new_key)

    def confirm_rotation(self, new_key: str) -> bool:
        """Store the new key after data has been re-encrypted with it.

        Only call this once the caller has verified the re-encrypted data
        can be read with ``new_key``.

        Returns:
            True if the new key was stored
        """
        if not self.validate_key(new_key):
            logger.error("Refusing to confirm rotation with a malformed key")
            return False

        if not self.store.set_secret(ENCRYPTION_KEY_NAME, new_key):
            logger.error("Failed to store new encryption key after rotation")
            return False

        self._ephemeral_key = None
        logger.info("Key rotation confirmed - new key stored")
        audit_event(self.audit, EventType.KEY_ROTATION_CONFIRMED, "crypto")
        return True

    def delete_key(self) -> bool:
        """Delete the stored encryption key.

        WARNING: anything encrypted under this key becomes permanently
        inaccessible unless the key is backed up elsewhere.

        Returns:
            True if a key was deleted
        """
        had_ephemeral = self._ephemeral_key is not None
        self._ephemeral_key = None
        deleted = self.store.delete_secret(ENCRYPTION_KEY_NAME) or had_ephemeral

        if deleted:
            logger.warning("Database encryption key deleted - encrypted data is now inaccessible")
            audit_event(self.audit, EventType.KEY_DELETED, "crypto")
        else:
            logger.debug("No encryption key found to delete")
        return deleted

    def has_key(self) -> bool:
        """Check whether an encryption key is available."""
        return self._current_key() is not None
