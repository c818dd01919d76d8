"""Encryption of secrets kept in the local store."""

from .encryption import decrypt_value, encrypt_value, get_fernet, is_encrypted

__all__ = [
    "encrypt_value",
    "decrypt_value",
    "is_encrypted",
    "get_fernet",
]
