"""Infrastructure components for EchoDesk.

This package contains infrastructure-level components like:
- Encryption of connected account secrets
"""

from echodesk_core.infrastructure.crypto import (
    CryptoService,
    DecryptionError,
    InvalidKeyError,
)

__all__ = [
    "CryptoService",
    "DecryptionError",
    "InvalidKeyError",
]
