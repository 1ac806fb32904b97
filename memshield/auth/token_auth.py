"""
memshield Token Authentication

Bearer-token authentication for the worker API. Tokens are 32 random bytes,
hex-encoded (64 characters), kept in the credential store under AUTH_TOKEN.

The current token is read from the store on every call, so a regenerated
token takes effect immediately. The only value held in memory is a token
that could not be persisted, which stays valid for this process only.
"""
from __future__ import annotations

import hmac
import logging
import secrets
from typing import Any, Optional

from memshield.logging.security_log import EventType, audit_event
from memshield.vault.keyring_store import CredentialStore, SecretKey

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


class TokenAuthenticator:
    """Manages the API bearer token."""

    TOKEN_BYTES = 32
    DISPLAY_PREFIX_LENGTH = 8

    def __init__(self, store: CredentialStore, audit: Optional[Any] = None):
        self.store = store
        self.audit = audit
        self._ephemeral_token: Optional[str] = None

    def _generate_token(self) -> str:
        return secrets.token_hex(self.TOKEN_BYTES)

    def _current_token(self) -> Optional[str]:
        if self._ephemeral_token:
            return self._ephemeral_token
        return self.store.get_secret(SecretKey.AUTH_TOKEN)

    def _persist(self, token: str) -> bool:
        stored = self.store.set_secret(SecretKey.AUTH_TOKEN, token)
        self._ephemeral_token = None if stored else token
        return stored

    def get_or_create_token(self) -> str:
        """Get the existing token or create a new one.

        A new token that cannot be persisted is still returned and remains
        valid for the current process.
        """
        existing = self._current_token()
        if existing:
            logger.debug("Retrieved existing auth token")
            return existing

        logger.info("No existing auth token found, generating new token")
        token = self._generate_token()
        if not self._persist(token):
            logger.warning("Failed to store auth token, token will not persist across restarts")

        audit_event(
            self.audit,
            EventType.TOKEN_GENERATED,
            "auth",
            metadata={"token_length": len(token), "persisted": self._ephemeral_token is None},
        )
        return token

    def validate_token(self, token: Any) -> bool:
        """Validate a presented token against the current token.

        Comparison is constant-time with respect to token content. All
        failures return False regardless of cause.
        """
        if not token or not isinstance(token, str):
            logger.debug("Token validation failed")
            return False

        current = self._current_token()
        if not current:
            logger.warning("Token validation failed: no auth token configured")
            audit_event(self.audit, EventType.AUTH_FAILURE, "auth", decision="deny")
            return False

        is_valid = hmac.compare_digest(token.encode("utf-8"), current.encode("utf-8"))
        if not is_valid:
            logger.debug("Token validation failed")
            audit_event(self.audit, EventType.AUTH_FAILURE, "auth", decision="deny")
        else:
            audit_event(self.audit, EventType.AUTH_SUCCESS, "auth", decision="allow")
        return is_valid

    def authenticate_header(self, authorization: Optional[str]) -> bool:
        """Validate an ``Authorization: Bearer <token>`` header value."""
        if not authorization or not isinstance(authorization, str):
            return self.validate_token("")

        scheme, _, credentials = authorization.strip().partition(" ")
        if scheme.lower() != BEARER_SCHEME:
            return self.validate_token("")
        return self.validate_token(credentials.strip())

    def regenerate_token(self) -> str:
        """Generate and store a new token, invalidating the old one.

        There is no grace period: once the new token is stored, the old
        token no longer validates.
        """
        logger.info("Regenerating authentication token")
        token = self._generate_token()
        if not self._persist(token):
            logger.warning("Failed to store regenerated token, new token is valid for this process only")

        audit_event(
            self.audit,
            EventType.TOKEN_REGENERATED,
            "auth",
            metadata={"token_length": len(token), "persisted": self._ephemeral_token is None},
        )
        return token

    def get_token_for_display(self) -> Optional[str]:
        """Masked token for display: first 8 characters followed by '...'.

        Returns None when no token exists.
        """
        token = self._current_token()
        if not token:
            return None
        if len(token) <= self.DISPLAY_PREFIX_LENGTH:
            return token
        return f"{token[:self.DISPLAY_PREFIX_LENGTH]}..."
