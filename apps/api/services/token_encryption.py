"""
Token Encryption Service

Encrypts and decrypts the Whoop OAuth tokens using Fernet symmetric encryption.
Tokens are only ever persisted in encrypted form.

ARCHITECTURE:
- Uses cryptography library (Fernet)
- Key from settings.TOKEN_ENCRYPTION_KEY
- Encryption failures raise; decryption failures return None so a credential
  written under an old key reads as "not connected"
"""

from cryptography.fernet import Fernet, InvalidToken
from typing import Optional
import logging
from core.config import settings

logger = logging.getLogger(__name__)


class TokenEncryptionError(RuntimeError):
    """A token could not be encrypted."""


class TokenEncryption:
    """Handles encryption/decryption of OAuth tokens."""

    def __init__(self, key: Optional[str] = None):
        encryption_key = key or settings.TOKEN_ENCRYPTION_KEY

        if not encryption_key:
            # SECURITY: Fail hard in production - no auto-generated keys
            if settings.ENVIRONMENT == "production":
                raise RuntimeError(
                    "TOKEN_ENCRYPTION_KEY must be set in production. "
                    "Generate with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
                )
            logger.warning("TOKEN_ENCRYPTION_KEY not set. Generating temporary key (NOT FOR PRODUCTION)")
            encryption_key = Fernet.generate_key().decode()

        if isinstance(encryption_key, str):
            encryption_key = encryption_key.encode()

        try:
            self.cipher = Fernet(encryption_key)
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to initialize Fernet cipher: {e}")
            raise ValueError(f"Invalid encryption key format: {e}")

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext token. Returns a base64 string."""
        if not plaintext:
            raise TokenEncryptionError("Refusing to encrypt an empty token")
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> Optional[str]:
        """
        Decrypt an encrypted token.

        Returns:
            Plain text token, or None if the ciphertext is empty or invalid
            for the current key.
        """
        if not ciphertext:
            return None

        try:
            return self.cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.error("Token decryption failed (invalid token or rotated key)")
            return None


# Global instance
_token_encryption: Optional[TokenEncryption] = None


def get_token_encryption() -> TokenEncryption:
    """Get or create global token encryption instance."""
    global _token_encryption
    if _token_encryption is None:
        _token_encryption = TokenEncryption()
    return _token_encryption


def encrypt_token(token: str) -> str:
    return get_token_encryption().encrypt(token)


def decrypt_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return get_token_encryption().decrypt(token)
