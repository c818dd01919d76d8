"""Fernet encryption for the token and cached document in the local store.

The key comes from SECRET_KEY through PBKDF2 and is cached for the process.
Stored ciphertexts are Fernet tokens, which always start with ``gAAAAA``;
anything else in the store is treated as a legacy plain value.
"""

import base64
import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

# Changing the salt invalidates every stored value.
STORE_KDF_SALT = b"mcpo-sync-local-store-v1"
STORE_KDF_ITERATIONS = 480_000

FERNET_PREFIX = "gAAAAA"


def store_key_from_secret(secret: str) -> bytes:
    """urlsafe-base64 Fernet key for *secret*."""
    raw = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=STORE_KDF_SALT,
        iterations=STORE_KDF_ITERATIONS,
    ).derive(secret.encode("utf-8"))
    return base64.urlsafe_b64encode(raw)


# A new SECRET_KEY is only picked up after a restart.
@lru_cache(maxsize=1)
def get_fernet() -> Fernet:
    from ..config import get_settings

    return Fernet(store_key_from_secret(get_settings().secret_key))


def is_encrypted(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(FERNET_PREFIX)


def encrypt_value(plaintext: str) -> str:
    return get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_value(stored: str) -> Optional[str]:
    """Plain text for a stored value.

    Empty and plain values come back unchanged. A token sealed under another
    SECRET_KEY reads as None, which the store treats as "not set".
    """
    if not is_encrypted(stored):
        return stored
    try:
        return get_fernet().decrypt(stored.encode("utf-8")).decode("utf-8")
    except InvalidToken:
        logger.warning("Stored value could not be decrypted; was SECRET_KEY changed?")
        return None
