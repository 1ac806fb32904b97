"""
memshield - privacy and credential security for memory pipelines.

memshield provides:
- Tag stripping and secret redaction before content is persisted
- Credential storage via the OS keyring with environment fallback
- Bearer-token authentication for the worker API
- Database encryption key generation and two-phase rotation
"""

__version__ = "0.3.1"
