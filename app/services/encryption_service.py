"""
Encryption service for provider tokens stored at rest
"""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.config import get_settings


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""


class EncryptionService:
    """Authenticated symmetric encryption (Fernet) for OAuth tokens."""

    def __init__(self, key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Initialize encryption service.

        Args:
            key: Fernet key (urlsafe base64, 32 bytes). Defaults to TOKEN_ENCRYPTION_KEY.
            secret_key: Password to derive a key from when no Fernet key is configured.
                Defaults to the application SECRET_KEY.
        """
        settings = get_settings()
        key = key or settings.token_encryption_key
        if key:
            self._cipher_suite = Fernet(key.encode() if isinstance(key, str) else key)
        else:
            self._cipher_suite = self._derive_cipher_suite(secret_key or settings.secret_key)

    @staticmethod
    def _derive_cipher_suite(secret: str) -> Fernet:
        """
        Create Fernet cipher suite from the application secret key.

        Returns:
            Fernet: Cipher suite for encryption/decryption
        """
        password = secret.encode()

        # Salt derived from the secret itself so the key is stable across restarts
        salt = hashes.Hash(hashes.SHA256())
        salt.update(password)
        salt_bytes = salt.finalize()[:16]

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt_bytes,
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(password))

        return Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt plaintext string.

        Args:
            plaintext: String to encrypt

        Returns:
            str: Fernet token

        Raises:
            EncryptionError: If the value is empty
        """
        if not plaintext:
            raise EncryptionError("Cannot encrypt empty string")

        return self._cipher_suite.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, encrypted_text: str) -> str:
        """
        Decrypt encrypted string.

        Args:
            encrypted_text: Fernet token

        Returns:
            str: Decrypted plaintext string

        Raises:
            EncryptionError: If the token is empty, tampered or encrypted with another key
        """
        if not encrypted_text:
            raise EncryptionError("Cannot decrypt empty string")

        try:
            return self._cipher_suite.decrypt(encrypted_text.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise EncryptionError("Decryption failed: invalid token or key") from e

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        return self.encrypt(plaintext) if plaintext else None

    def decrypt_optional(self, encrypted_text: Optional[str]) -> Optional[str]:
        return self.decrypt(encrypted_text) if encrypted_text else None


# Global encryption service instance
_encryption_service: Optional[EncryptionService] = None


def get_encryption_service() -> EncryptionService:
    """
    Get encryption service instance (singleton pattern).

    Returns:
        EncryptionService: Encryption service instance
    """
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = EncryptionService()
    return _encryption_service
