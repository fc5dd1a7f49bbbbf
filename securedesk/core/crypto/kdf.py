"""
Key Derivation Functions
========================

Password-based derivation of the field encryption key.
"""

from __future__ import annotations

import secrets
from typing import Final

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

PBKDF2_ITERATIONS: Final[int] = 600_000
SALT_LENGTH: Final[int] = 16


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Generate a random salt for key derivation."""
    return secrets.token_bytes(length)


def derive_key_pbkdf2(
    password: str,
    salt: bytes,
    length: int = 32,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """
    Derive a key from password using PBKDF2-HMAC-SHA256.

    Args:
        password: User password or passphrase
        salt: Random salt (at least 16 bytes)
        length: Output key length
        iterations: PBKDF2 iteration count

    Returns:
        Derived key bytes
    """
    if not password:
        raise ValueError("Password cannot be empty")
    if len(salt) < 16:
        raise ValueError("Salt must be at least 16 bytes")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))
