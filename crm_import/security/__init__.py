"""Security module for credential encryption.

Provides symmetric encryption for connection configs stored at rest.
"""

from .credentials import (
    CredentialCipher,
    decrypt_object,
    decrypt_value,
    derive_key,
    encrypt_object,
    encrypt_value,
    get_cipher,
    is_encrypted,
    reset_cipher,
)

__all__ = [
    "CredentialCipher",
    "get_cipher",
    "reset_cipher",
    "encrypt_value",
    "decrypt_value",
    "encrypt_object",
    "decrypt_object",
    "is_encrypted",
    "derive_key",
]
