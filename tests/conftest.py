"""Pytest configuration and fixtures for memshield tests."""

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from memshield.vault.keyring_store import (
    CredentialStore,
    SecretBackend,
    SecretKey,
    reset_keyring_probe,
)


class MemoryKeyring(KeyringBackend):
    """keyring backend that keeps passwords in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: Dict[Tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found")


class InMemoryBackend(SecretBackend):
    """Persistent-looking SecretBackend for unit tests."""

    name = "memory"
    persistent = True

    def __init__(self):
        self.values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> bool:
        return self.values.pop(key, None) is not None


class BrokenBackend(InMemoryBackend):
    """A keyring that reads fine but refuses every write."""

    name = "broken"

    def set(self, key: str, value: str) -> None:
        raise KeyringError("locked")


@pytest.fixture(autouse=True)
def memory_keyring(tmp_path, monkeypatch):
    """Isolate every test from the real keyring, environment and home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))

    for key in SecretKey:
        monkeypatch.delenv(key.value, raising=False)
    for name in ("DATA_DIR", "LOG_LEVEL", "REDACT_PATTERNS", "AUDIT_LOG_ENABLED",
                 "REDACT_AUDIT_LOGS", "RETENTION_ENABLED", "RETENTION_DAYS"):
        monkeypatch.delenv(f"MEMSHIELD_{name}", raising=False)

    data_dir = home / ".memshield"
    monkeypatch.setattr("memshield.config.settings.DEFAULT_SETTINGS_PATH", data_dir / "settings.yaml")
    monkeypatch.setattr(
        "memshield.logging.security_log.SecurityLogger.DEFAULT_DB_PATH", data_dir / "security.db"
    )

    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    reset_keyring_probe()
    yield backend
    reset_keyring_probe()

    # CLI runs attach a stream handler bound to the runner's stderr
    root = logging.getLogger("memshield")
    for handler in list(root.handlers):
        if getattr(handler, "_memshield", False):
            root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """The isolated ~/.memshield directory (not created)."""
    return tmp_path / "home" / ".memshield"


@pytest.fixture
def memory_backend():
    return InMemoryBackend()


@pytest.fixture
def store(memory_backend):
    """CredentialStore over an in-memory backend."""
    return CredentialStore(backend=memory_backend)


@pytest.fixture
def broken_store():
    """CredentialStore whose writes always fail."""
    return CredentialStore(backend=BrokenBackend())


@pytest.fixture
def audit(tmp_path):
    """SecurityLogger on a temporary database."""
    from memshield.logging.security_log import SecurityLogger

    logger = SecurityLogger(db_path=tmp_path / "audit" / "security.db")
    yield logger
    logger.close()
