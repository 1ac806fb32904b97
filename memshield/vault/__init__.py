"""memshield vault: named secret storage."""

from memshield.vault.keyring_store import (
    SERVICE_NAME,
    BackendUnavailableError,
    CredentialStore,
    EnvironmentBackend,
    KeyringBackend,
    SecretBackend,
    SecretKey,
    probe_keyring,
    reset_keyring_probe,
    select_backend,
)

__all__ = [
    "SERVICE_NAME", "BackendUnavailableError", "CredentialStore",
    "EnvironmentBackend", "KeyringBackend", "SecretBackend", "SecretKey",
    "probe_keyring", "reset_keyring_probe", "select_backend",
]
