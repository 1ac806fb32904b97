"""memshield crypto: database encryption key management."""

from memshield.crypto.database_encryption import (
    DB_KEY_HEX_LENGTH,
    DB_KEY_LENGTH,
    DatabaseEncryption,
    EncryptionKeyError,
    KeyRotation,
    KeyRotationError,
)

__all__ = [
    "DB_KEY_HEX_LENGTH", "DB_KEY_LENGTH", "DatabaseEncryption",
    "EncryptionKeyError", "KeyRotation", "KeyRotationError",
]
