"""Encryption of connected-account secrets.

Access tokens, token secrets and refresh tokens of connected platform
accounts are stored Fernet-encrypted (AES-128-CBC + HMAC) and only
decrypted in memory when an adapter needs them.

Usage:
    key = CryptoService.generate_key()  # ENCRYPTION_KEY
    crypto = CryptoService(key)

    account.access_token_encrypted = crypto.encrypt(token)
    token = crypto.decrypt(account.access_token_encrypted)
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


class InvalidKeyError(Exception):
    """Raised when an invalid encryption key is provided."""

    pass


class DecryptionError(Exception):
    """Raised when a stored secret cannot be decrypted."""

    pass


class CryptoService:
    """Symmetric encryption for account secrets."""

    def __init__(self, key: str):
        """Initialize with a Fernet key.

        Raises:
            InvalidKeyError: If the key is empty or malformed.
        """
        if not key:
            raise InvalidKeyError("Encryption key cannot be empty")

        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise InvalidKeyError(f"Invalid encryption key: {e}")

    @staticmethod
    def generate_key() -> str:
        """Generate a new base64-encoded Fernet key."""
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret and return the token as text."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored secret.

        Raises:
            DecryptionError: If the token is invalid or was made with another key.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise DecryptionError(f"Failed to decrypt: {e}")

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a secret that may be absent."""
        if not plaintext:
            return None
        return self.encrypt(plaintext)

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        """Decrypt a stored secret that may be absent."""
        if not ciphertext:
            return None
        return self.decrypt(ciphertext)
