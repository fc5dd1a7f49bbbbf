"""
AES-256-GCM Authenticated Encryption
====================================

Implements AES-256-GCM with a random nonce per operation under a
caller-supplied key.

Security Properties:
    - 256-bit key (128-bit security level)
    - 96-bit nonce (NIST recommended)
    - 128-bit authentication tag
    - Authenticated Additional Data (AAD) support

NIST SP 800-38D Compliance:
    - GCM mode with 96-bit IV
    - Unique nonce for each encryption under same key

WARNING:
    - Never reuse (key, nonce) pairs
    - Always verify tag before using plaintext
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Final, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

# Constants following NIST recommendations
AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits (NIST recommended for GCM)
AES_TAG_SIZE: Final[int] = 16  # 128 bits


@dataclass(frozen=True, slots=True)
class AesGcmResult:
    """
    Immutable result of AES-GCM encryption.

    Attributes:
        ciphertext: Encrypted data with appended authentication tag
        nonce: Unique nonce used for this encryption (must be stored with ciphertext)
    """

    ciphertext: bytes
    nonce: bytes

    def __repr__(self) -> str:
        return f"AesGcmResult(ciphertext_len={len(self.ciphertext)}, nonce_len={len(self.nonce)})"

    def to_bytes(self) -> bytes:
        """Nonce followed by ciphertext, the layout stored by the field codec."""
        return self.nonce + self.ciphertext

    @classmethod
    def from_bytes(cls, data: bytes) -> AesGcmResult:
        """
        Split a stored ``nonce || ciphertext`` blob.

        Raises:
            ValueError: If the blob is too short to hold a nonce and tag
        """
        if len(data) < AES_NONCE_SIZE + AES_TAG_SIZE:
            raise ValueError("Sealed data too short")
        return cls(ciphertext=data[AES_NONCE_SIZE:], nonce=data[:AES_NONCE_SIZE])


class AesGcmCipher:
    """
    AES-256-GCM Authenticated Encryption with Associated Data (AEAD).

    Usage:
        cipher = AesGcmCipher()
        key = cipher.generate_key()

        result = cipher.encrypt(plaintext, key, aad=b"credentials.password")
        plaintext = cipher.decrypt(result.ciphertext, result.nonce, key,
                                   aad=b"credentials.password")
    """

    __slots__ = ()

    @staticmethod
    def generate_key() -> bytes:
        """
        Generate a cryptographically secure random AES-256 key.

        Returns:
            32 bytes of cryptographic random data
        """
        return secrets.token_bytes(AES_KEY_SIZE)

    @staticmethod
    def generate_nonce() -> bytes:
        """
        Generate a cryptographically secure random nonce.

        Security:
            96-bit nonces with random generation have negligible collision
            probability for up to 2^32 encryptions under same key.
        """
        return secrets.token_bytes(AES_NONCE_SIZE)

    def encrypt(
        self,
        plaintext: bytes,
        key: bytes,
        aad: Optional[bytes] = None,
    ) -> AesGcmResult:
        """
        Encrypt plaintext using AES-256-GCM.

        Args:
            plaintext: Data to encrypt (can be empty)
            key: 32-byte key
            aad: Additional Authenticated Data (authenticated but not encrypted)

        Raises:
            ValueError: If key is the wrong size
        """
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")

        nonce = self.generate_nonce()
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, aad)

        return AesGcmResult(ciphertext=ciphertext, nonce=nonce)

    def decrypt(
        self,
        ciphertext: bytes,
        nonce: bytes,
        key: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt ciphertext using AES-256-GCM with integrity verification.

        Raises:
            ValueError: If parameters are invalid
            cryptography.exceptions.InvalidTag: If authentication fails

        Security Notes:
            - Integrity is verified BEFORE any plaintext is returned
            - InvalidTag means data was tampered or wrong key/nonce/AAD
        """
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        if len(nonce) != AES_NONCE_SIZE:
            raise ValueError(f"Nonce must be exactly {AES_NONCE_SIZE} bytes")
        if len(ciphertext) < AES_TAG_SIZE:
            raise ValueError("Ciphertext too short (missing authentication tag)")

        return AESGCM(key).decrypt(nonce, ciphertext, aad)
