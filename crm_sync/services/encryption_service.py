"""Encryption service for securing integration secrets."""

import sys
from typing import Optional
from cryptography.fernet import Fernet
from crm_sync.config import settings

ENCRYPTED_PREFIX = "enc:v1:"


class EncryptionService:
    """Service for encrypting and decrypting sensitive config values.

    Ciphertexts carry the ``enc:v1:`` prefix so stored values can be told apart
    from plaintext written before encryption was enabled.
    """

    def __init__(self, encryption_key: Optional[str] = None):
        """Initialize encryption service.

        Args:
            encryption_key: Fernet key (defaults to settings.encryption_key).
        """
        key = encryption_key or settings.encryption_key
        self._validate_encryption_key(key)
        self._fernet = Fernet(key.encode())

    def _validate_encryption_key(self, key: Optional[str]) -> None:
        """Validate that encryption key is properly configured.

        Raises:
            SystemExit: If encryption key is missing or invalid.
        """
        if not key:
            print("ERROR: ENCRYPTION_KEY environment variable is not set.", file=sys.stderr)
            print("The service cannot start without a valid encryption key.", file=sys.stderr)
            print("Generate a key with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\"", file=sys.stderr)
            sys.exit(1)

        try:
            Fernet(key.encode())
        except Exception as e:
            print(f"ERROR: Invalid ENCRYPTION_KEY format: {e}", file=sys.stderr)
            print("Generate a valid key with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\"", file=sys.stderr)
            sys.exit(1)

    def is_encrypted(self, value: str) -> bool:
        return value.startswith(ENCRYPTED_PREFIX)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext string.

        Already encrypted values are returned unchanged.

        Args:
            plaintext: The string to encrypt.

        Returns:
            ``enc:v1:`` followed by the Fernet token.
        """
        if self.is_encrypted(plaintext):
            return plaintext
        return ENCRYPTED_PREFIX + self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ciphertext string.

        Values without the ``enc:v1:`` prefix are returned unchanged.

        Args:
            ciphertext: The encrypted string.

        Returns:
            The decrypted plaintext string.

        Raises:
            InvalidToken: If the ciphertext is invalid or corrupted.
        """
        if not self.is_encrypted(ciphertext):
            return ciphertext
        token = ciphertext[len(ENCRYPTED_PREFIX):]
        return self._fernet.decrypt(token.encode()).decode()
