"""Credential encryption for connection configs at rest.

Uses Fernet symmetric encryption (AES-128-CBC with HMAC) from the
cryptography package.

The CONNECTOR_ENCRYPTION_KEY environment variable holds either a Fernet key,
used directly, or any passphrase, which is stretched into a key with Scrypt.
Generate a Fernet key with:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .. import config

logger = logging.getLogger(__name__)

# Fixed salt so the same passphrase always yields the same key
KEY_DERIVATION_SALT = b"connector-salt-v1"

# Fernet tokens are url-safe base64 of a payload starting with version 0x80
_FERNET_TOKEN_PATTERN = re.compile(r"^gAAAAA[A-Za-z0-9_\-]+=*$")


def derive_key(passphrase: str) -> bytes:
    """Stretch a passphrase into a url-safe base64 Fernet key."""
    kdf = Scrypt(salt=KEY_DERIVATION_SALT, length=32, n=2**14, r=8, p=1)
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))


def _build_fernet(key: str) -> Fernet:
    try:
        return Fernet(key.encode())
    except (ValueError, binascii.Error):
        # Not a Fernet key; treat it as a passphrase
        return Fernet(derive_key(key))


class CredentialCipher:
    """Encrypts and decrypts credential strings and JSON objects."""

    def __init__(self, encryption_key: str | None = None) -> None:
        """Initialize the cipher.

        Args:
            encryption_key: Fernet key or passphrase (defaults to env var)
        """
        key = encryption_key or config.CONNECTOR_ENCRYPTION_KEY
        self._fernet: Fernet | None = _build_fernet(key) if key else None

    @property
    def encryption_enabled(self) -> bool:
        """Check if encryption is properly configured."""
        return self._fernet is not None

    def _require_fernet(self) -> Fernet:
        if self._fernet is None:
            raise ValueError(
                "Encryption not configured. Set CONNECTOR_ENCRYPTION_KEY env var."
            )
        return self._fernet

    def encrypt(self, value: str) -> str:
        """Encrypt a string value.

        Raises:
            ValueError: If encryption is not configured
        """
        return self._require_fernet().encrypt(value.encode()).decode()

    def decrypt(self, encrypted_value: str) -> str:
        """Decrypt a value produced by encrypt().

        Raises:
            ValueError: If encryption is not configured, or the value was
                tampered with or encrypted under another key
        """
        fernet = self._require_fernet()
        try:
            return fernet.decrypt(encrypted_value.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Invalid encrypted value or wrong key") from e

    def encrypt_object(self, value: Any) -> str:
        """JSON-serialize and encrypt a value."""
        return self.encrypt(json.dumps(value, default=str))

    def decrypt_object(self, encrypted_value: str) -> Any:
        """Decrypt and JSON-decode a value produced by encrypt_object()."""
        return json.loads(self.decrypt(encrypted_value))


def is_encrypted(value: Any) -> bool:
    """Whether ``value`` looks like a Fernet token."""
    return isinstance(value, str) and bool(_FERNET_TOKEN_PATTERN.match(value))


# Global singleton instance
_cipher: CredentialCipher | None = None


def get_cipher() -> CredentialCipher:
    """Get or create the global CredentialCipher instance."""
    global _cipher

    if _cipher is None:
        _cipher = CredentialCipher()
        if not _cipher.encryption_enabled:
            logger.warning("CONNECTOR_ENCRYPTION_KEY not set - encryption disabled")

    return _cipher


def reset_cipher() -> None:
    """Drop the global cipher so the next call re-reads the key."""
    global _cipher
    _cipher = None


def encrypt_value(value: str) -> str:
    """Convenience function to encrypt a value."""
    return get_cipher().encrypt(value)


def decrypt_value(encrypted: str) -> str:
    """Convenience function to decrypt a value."""
    return get_cipher().decrypt(encrypted)


def encrypt_object(value: Any) -> str:
    return get_cipher().encrypt_object(value)


def decrypt_object(encrypted: str) -> Any:
    return get_cipher().decrypt_object(encrypted)
