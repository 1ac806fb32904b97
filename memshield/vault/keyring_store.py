"""
memshield Credential Store

Secure storage for a small, fixed set of named secrets using the keyring
library. Backends by platform:
- macOS: Keychain
- Linux: Secret Service (GNOME Keyring, KWallet, KeePassXC)
- Windows: Windows Credential Locker

When no usable keyring exists (headless servers, containers), secrets can
still be read from environment variables of the same name. Writes never
fall back to plaintext: they fail and tell the operator to use the
environment instead.

Usage:
    store = CredentialStore()
    store.set_secret(SecretKey.AUTH_TOKEN, token)
    value = store.get_secret(SecretKey.AUTH_TOKEN)
"""
from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Union

import keyring
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError

from memshield.logging.security_log import EventType, audit_event

logger = logging.getLogger(__name__)

# Keyring service name for all memshield credentials
SERVICE_NAME = "memshield"


class SecretKey(str, Enum):
    """Names of the secrets memshield manages.

    Each value doubles as the environment variable used for fallback.
    """
    GEMINI_API_KEY = "GEMINI_API_KEY"
    OPENROUTER_API_KEY = "OPENROUTER_API_KEY"
    ANTHROPIC_API_KEY = "ANTHROPIC_API_KEY"
    DB_ENCRYPTION_KEY = "DB_ENCRYPTION_KEY"
    AUTH_TOKEN = "AUTH_TOKEN"


SecretName = Union[SecretKey, str]


class BackendUnavailableError(Exception):
    """The backend cannot perform this operation."""
    pass


class SecretBackend(ABC):
    """Storage capability behind the credential store."""

    name: str = "abstract"
    # Whether values written here survive the process
    persistent: bool = False

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a value. Returns False if it did not exist."""


class KeyringBackend(SecretBackend):
    """OS keyring storage via the keyring library."""

    persistent = True

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name
        self.name = f"keyring ({type(keyring.get_keyring()).__name__})"

    def get(self, key: str) -> Optional[str]:
        return keyring.get_password(self.service_name, key)

    def set(self, key: str, value: str) -> None:
        keyring.set_password(self.service_name, key, value)

    def delete(self, key: str) -> bool:
        try:
            keyring.delete_password(self.service_name, key)
        except PasswordDeleteError:
            return False
        return True


class EnvironmentBackend(SecretBackend):
    """Read-only view of environment variables."""

    name = "environment"
    persistent = False

    def get(self, key: str) -> Optional[str]:
        return os.environ.get(key) or None

    def set(self, key: str, value: str) -> None:
        raise BackendUnavailableError(
            f"Cannot store {key} without a keyring; set the {key} environment variable instead"
        )

    def delete(self, key: str) -> bool:
        raise BackendUnavailableError(
            f"Cannot delete {key} without a keyring; environment variables are not modified"
        )


# Keyring capability, probed once per process
_keyring_available: Optional[bool] = None
_probe_lock = threading.Lock()


def _probe() -> bool:
    try:
        backend = keyring.get_keyring()
        if isinstance(backend, fail.Keyring):
            logger.warning("No OS keyring available, falling back to environment variables")
            return False
        if float(backend.priority) <= 0:
            logger.warning(
                "Keyring backend %s is not usable, falling back to environment variables",
                type(backend).__name__,
            )
            return False
    except Exception as e:
        # Any initialization failure means environment-only
        logger.warning(
            "Keyring initialization failed, falling back to environment variables: %s",
            type(e).__name__,
        )
        return False

    logger.info("Credential store initialized with OS keyring (%s)", type(backend).__name__)
    return True


def probe_keyring() -> bool:
    """Check whether a usable OS keyring exists (cached for the process)."""
    global _keyring_available
    if _keyring_available is None:
        with _probe_lock:
            if _keyring_available is None:
                _keyring_available = _probe()
    return _keyring_available


def reset_keyring_probe() -> None:
    """Forget the cached probe result (for tests)."""
    global _keyring_available
    with _probe_lock:
        _keyring_available = None


def select_backend() -> SecretBackend:
    """Pick the keyring backend if available, otherwise environment-only."""
    if probe_keyring():
        return KeyringBackend()
    return EnvironmentBackend()


def _coerce_key(key: SecretName) -> SecretKey:
    if isinstance(key, SecretKey):
        return key
    try:
        return SecretKey(key)
    except ValueError:
        raise ValueError(f"Unknown secret name: {key!r}") from None


class CredentialStore:
    """Named-secret storage with keyring first, environment second.

    The backend is chosen once, at construction.
    """

    def __init__(self, backend: Optional[SecretBackend] = None, audit=None):
        """
        Args:
            backend: Storage backend. Defaults to select_backend()
            audit: Optional SecurityLogger for the audit trail
        """
        self.backend = backend if backend is not None else select_backend()
        self.audit = audit
        self._env = EnvironmentBackend()

    @property
    def backend_name(self) -> str:
        return self.backend.name

    def is_keyring_available(self) -> bool:
        """True if secrets written here persist in secure storage."""
        return self.backend.persistent

    def _audit_log(self, operation: str, key: SecretKey, success: bool):
        audit_event(
            self.audit,
            EventType.VAULT_ACCESS,
            "vault",
            decision="allow" if success else "deny",
            metadata={
                "operation": operation,
                "secret_name": key.value,
                "success": success,
                "backend": self.backend_name,
            },
        )

    def set_secret(self, key: SecretName, value: str) -> bool:
        """
        Store a secret in secure storage.

        Args:
            key: Secret name
            value: Secret value

        Returns:
            True if stored successfully
        """
        key = _coerce_key(key)

        if not value:
            logger.warning("Attempted to store empty secret for %s", key.value)
            self._audit_log("set", key, success=False)
            return False

        try:
            self.backend.set(key.value, value)
        except BackendUnavailableError:
            logger.warning(
                "Keyring unavailable. Set %s via environment variable instead", key.value
            )
            self._audit_log("set", key, success=False)
            return False
        except (KeyringError, OSError, RuntimeError) as e:
            logger.error("Failed to store secret %s: %s", key.value, type(e).__name__)
            self._audit_log("set", key, success=False)
            return False

        logger.info("Secret stored in %s: %s", self.backend_name, key.value)
        self._audit_log("set", key, success=True)
        return True

    def get_secret(self, key: SecretName) -> Optional[str]:
        """
        Retrieve a secret.

        Priority:
        1. Secure storage (if available)
        2. Environment variable with the same name

        Returns:
            The secret value, or None if not found
        """
        key = _coerce_key(key)

        if self.backend.persistent:
            try:
                value = self.backend.get(key.value)
            except (KeyringError, OSError, RuntimeError) as e:
                logger.error(
                    "Failed to read %s from %s: %s", key.value, self.backend_name, type(e).__name__
                )
                value = None
            if value:
                logger.debug("Secret retrieved from %s: %s", self.backend_name, key.value)
                return value

        value = self._env.get(key.value)
        if value:
            logger.debug("Secret retrieved from environment: %s", key.value)
            return value

        logger.debug("Secret not found: %s", key.value)
        return None

    def has_secret(self, key: SecretName) -> bool:
        """Check whether a secret resolves from either source."""
        return self.get_secret(key) is not None

    def delete_secret(self, key: SecretName) -> bool:
        """
        Delete a secret from secure storage.

        Environment variables are never modified.

        Returns:
            True if deleted, False if not found or unavailable
        """
        key = _coerce_key(key)

        try:
            deleted = self.backend.delete(key.value)
        except BackendUnavailableError:
            logger.warning("Keyring unavailable. Cannot delete secret: %s", key.value)
            self._audit_log("delete", key, success=False)
            return False
        except (KeyringError, OSError, RuntimeError) as e:
            logger.error("Failed to delete secret %s: %s", key.value, type(e).__name__)
            self._audit_log("delete", key, success=False)
            return False

        if deleted:
            logger.info("Secret deleted from %s: %s", self.backend_name, key.value)
        else:
            logger.debug("Secret not found in %s: %s", self.backend_name, key.value)
        self._audit_log("delete", key, success=deleted)
        return deleted

    def list_secrets(self) -> List[SecretKey]:
        """List the managed secret names that currently resolve."""
        return [key for key in SecretKey if self.has_secret(key)]
