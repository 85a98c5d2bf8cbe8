"""
Core security functions for Requestarr.

This module provides the cryptographic operations used by the stores:
- Password hashing with Argon2id and HMAC pepper mixing (local and share passwords)
- Field-level encryption using Fernet (MFA secrets, Jellyfin access tokens)
- Secure token generation using the secrets module (share links)
"""

import base64
import hashlib
import hmac
import secrets
from functools import lru_cache

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from requestarr.config import Settings

FERNET_TOKEN_PREFIX = "gAAAAA"


class PasswordHashingError(Exception):
    """Exception raised when password hashing operations fail."""

    pass


class EncryptionError(Exception):
    """Exception raised when encryption/decryption operations fail."""

    pass


class PasswordSecurity:
    """
    Secure password hashing using Argon2id with pepper.

    - Argon2id with configurable memory, time and parallelism costs
    - Global pepper stored separately from the database
    - Per-hash salt (handled automatically by Argon2)
    """

    def __init__(self, app_settings: Settings | None = None) -> None:
        """Initialize password hasher with parameters from settings."""
        if app_settings is None:
            from requestarr.config import settings as app_settings

        self._hasher = PasswordHasher(
            time_cost=app_settings.argon2_time_cost,
            memory_cost=app_settings.argon2_memory_cost,
            parallelism=app_settings.argon2_parallelism,
            hash_len=32,
            salt_len=16,
        )
        self._pepper = app_settings.get_pepper()

    def _peppered(self, password: str) -> str:
        digest = hmac.new(self._pepper.encode(), password.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def hash_password(self, password: str) -> str:
        """
        Hash a password using Argon2id with HMAC-based pepper mixing.

        Args:
            password: Plain-text password to hash

        Returns:
            str: Argon2id hash string (includes salt and parameters)

        Raises:
            PasswordHashingError: If hashing fails
            ValueError: If password is empty
        """
        if not password:
            raise ValueError("Password cannot be empty")

        try:
            return self._hasher.hash(self._peppered(password))
        except Exception as e:
            raise PasswordHashingError(f"Failed to hash password: {e}") from e

    def verify_password(self, password: str, password_hash: str) -> bool:
        """
        Verify a password against an Argon2id hash.

        Args:
            password: Plain-text password to verify
            password_hash: Argon2id hash to verify against

        Returns:
            bool: True if password matches hash, False otherwise

        Raises:
            PasswordHashingError: If verification process fails
            ValueError: If password or hash is empty
        """
        if not password or not password_hash:
            raise ValueError("Password and hash cannot be empty")

        try:
            self._hasher.verify(password_hash, self._peppered(password))
            return True
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False
        except Exception as e:
            raise PasswordHashingError(f"Failed to verify password: {e}") from e

    def needs_rehash(self, password_hash: str) -> bool:
        """Whether a hash was produced with different Argon2 parameters."""
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True


class FieldEncryption:
    """
    Field-level encryption using Fernet (AES-128-CBC + HMAC-SHA256).

    Used for secrets that must be recoverable: TOTP secrets and Jellyfin
    access tokens stored on the user row.
    """

    def __init__(self, app_settings: Settings | None = None) -> None:
        """Initialize Fernet cipher with a key derived from the secret key using HKDF."""
        if app_settings is None:
            from requestarr.config import settings as app_settings

        kdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"requestarr-fernet-v1",
            info=b"field-encryption",
        )
        key_bytes = kdf.derive(app_settings.get_secret_key().encode())
        self._cipher = Fernet(base64.urlsafe_b64encode(key_bytes))

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string value.

        Raises:
            EncryptionError: If encryption fails
            ValueError: If plaintext is empty
        """
        if not plaintext:
            raise ValueError("Plaintext cannot be empty")

        try:
            return self._cipher.encrypt(plaintext.encode()).decode()
        except Exception as e:
            raise EncryptionError(f"Failed to encrypt data: {e}") from e

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt an encrypted string value.

        Raises:
            EncryptionError: If decryption fails or authentication fails
            ValueError: If ciphertext is empty
        """
        if not ciphertext:
            raise ValueError("Ciphertext cannot be empty")

        try:
            return self._cipher.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            raise EncryptionError("Failed to decrypt data: Invalid token or tampered data") from e
        except Exception as e:
            raise EncryptionError(f"Failed to decrypt data: {e}") from e

    def encrypt_if_needed(self, value: str | None) -> str | None:
        """Encrypt a value unless it is None or already a Fernet token."""
        if value is None:
            return None
        if value.startswith(FERNET_TOKEN_PREFIX):
            return value
        return self.encrypt(value)

    def decrypt_if_needed(self, value: str | None) -> str | None:
        """
        Decrypt a value that looks like a Fernet token.

        Values written before encryption was enabled are returned unchanged.
        """
        if value is None:
            return None
        if not value.startswith(FERNET_TOKEN_PREFIX):
            return value
        return self.decrypt(value)


class TokenGenerator:
    """Cryptographically secure token generation."""

    @staticmethod
    def generate_token(length: int = 32) -> str:
        """
        Generate a cryptographically secure URL-safe token.

        Args:
            length: Number of bytes in the token (default: 32)

        Raises:
            ValueError: If length is less than 16
        """
        if length < 16:
            raise ValueError("Token length must be at least 16 bytes")

        return secrets.token_urlsafe(length)

    @staticmethod
    def generate_hex_token(length: int = 32) -> str:
        if length < 16:
            raise ValueError("Token length must be at least 16 bytes")

        return secrets.token_hex(length)


@lru_cache(maxsize=1)
def get_password_security() -> PasswordSecurity:
    """Process-wide password hasher built from the global settings."""
    return PasswordSecurity()


@lru_cache(maxsize=1)
def get_field_encryption() -> FieldEncryption:
    """Process-wide field cipher built from the global settings."""
    return FieldEncryption()


token_generator = TokenGenerator()


# Convenience functions
def hash_password(password: str) -> str:
    """Hash a password using Argon2id with pepper."""
    return get_password_security().hash_password(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a hash."""
    return get_password_security().verify_password(password, password_hash)


def encrypt_field(plaintext: str) -> str:
    """Encrypt a field value using Fernet."""
    return get_field_encryption().encrypt(plaintext)


def decrypt_field(ciphertext: str) -> str:
    """Decrypt a field value using Fernet."""
    return get_field_encryption().decrypt(ciphertext)


def generate_token(length: int = 32) -> str:
    """Generate a cryptographically secure token."""
    return token_generator.generate_token(length)
