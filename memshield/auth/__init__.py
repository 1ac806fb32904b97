"""memshield auth: API bearer-token authentication."""

from memshield.auth.token_auth import TokenAuthenticator

__all__ = ["TokenAuthenticator"]
