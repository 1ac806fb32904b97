"""
memshield service wiring.

Builds the security services once at process start. Callers (worker, hooks,
CLI) hold the returned SecurityServices and pass its members where needed;
nothing here is a module-level singleton.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from memshield.auth.token_auth import TokenAuthenticator
from memshield.config.models import MemshieldSettings
from memshield.config.settings import get_custom_patterns, load_settings
from memshield.crypto.database_encryption import DatabaseEncryption
from memshield.logging.security_log import SecurityLogger
from memshield.privacy.tag_stripping import ContentRedactor
from memshield.utils.file_permissions import ensure_secure_directory
from memshield.vault.keyring_store import CredentialStore, SecretBackend

logger = logging.getLogger(__name__)


@dataclass
class SecurityServices:
    """The security services of one process."""
    settings: MemshieldSettings
    store: CredentialStore
    redactor: ContentRedactor
    tokens: TokenAuthenticator
    encryption: DatabaseEncryption
    audit: Optional[SecurityLogger] = None

    def close(self) -> None:
        if self.audit is not None:
            self.audit.close()


def _pattern_source(settings: MemshieldSettings):
    """Re-read custom patterns from the settings file on every call.

    Without a settings file, the patterns given at startup apply.
    """
    def source() -> str:
        if settings.settings_path.exists():
            return get_custom_patterns(settings.settings_path)
        return settings.redact_patterns
    return source


def build_services(
    settings: Optional[MemshieldSettings] = None,
    backend: Optional[SecretBackend] = None,
    audit: Optional[SecurityLogger] = None,
) -> SecurityServices:
    """Construct the security services.

    Args:
        settings: Settings, loaded from the settings file when omitted
        backend: Credential backend, probed when omitted
        audit: Audit logger; created under the data directory when omitted
            and audit logging is enabled
    """
    settings = settings or load_settings()

    if audit is None and settings.audit_log_enabled:
        if ensure_secure_directory(settings.data_dir):
            audit = SecurityLogger(
                db_path=settings.audit_db_path,
                redact_logs=settings.redact_audit_logs,
            )
        else:
            logger.warning("Audit log disabled: data directory %s is unusable", settings.data_dir)

    store = CredentialStore(backend=backend, audit=audit)

    return SecurityServices(
        settings=settings,
        store=store,
        redactor=ContentRedactor(pattern_source=_pattern_source(settings), audit=audit),
        tokens=TokenAuthenticator(store, audit=audit),
        encryption=DatabaseEncryption(store, audit=audit),
        audit=audit,
    )
