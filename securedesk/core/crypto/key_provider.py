"""
Field Key Providers
===================

Supplies the symmetric key used by the field codec.

The record store never touches key material directly; it only sees a
FieldCodec built over one of these providers. A stronger scheme (per-user
derived key, KMS-backed key) plugs in by implementing CryptoKeyProvider.

WARNING:
    The bundled providers hold a single static key in process memory.
    There is no rotation.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
from abc import ABC, abstractmethod
from typing import Optional

from securedesk.core.crypto.aes_gcm import AES_KEY_SIZE, AesGcmCipher
from securedesk.core.crypto.kdf import PBKDF2_ITERATIONS, derive_key_pbkdf2
from securedesk.core.exceptions import ConfigurationError


def generate_key() -> bytes:
    """Generate a fresh random field key."""
    return AesGcmCipher.generate_key()


def _fingerprint(key: bytes) -> str:
    return hashlib.sha256(b"securedesk-key-id" + key).hexdigest()[:16]


class CryptoKeyProvider(ABC):
    """Source of the field encryption key."""

    @abstractmethod
    def get_key(self) -> bytes:
        """Return the 32-byte AES key."""

    @property
    def key_id(self) -> str:
        """Short non-reversible fingerprint of the current key, safe to log."""
        return _fingerprint(self.get_key())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key_id={self.key_id})"


class StaticKeyProvider(CryptoKeyProvider):
    """Holds a key given at construction time."""

    __slots__ = ("_key",)

    def __init__(self, key: bytes) -> None:
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        self._key = bytes(key)

    def get_key(self) -> bytes:
        return self._key


class EnvironmentKeyProvider(CryptoKeyProvider):
    """
    Reads the key from an environment variable, hex or base64 encoded.

    The variable is read once, on first use.
    """

    __slots__ = ("_var_name", "_key")

    def __init__(self, var_name: str = "SECUREDESK_FIELD_KEY") -> None:
        self._var_name = var_name
        self._key: Optional[bytes] = None

    def get_key(self) -> bytes:
        if self._key is None:
            self._key = self._load()
        return self._key

    def _load(self) -> bytes:
        raw = os.environ.get(self._var_name)
        if not raw:
            raise ConfigurationError(f"{self._var_name} must be set before using field encryption.")

        raw = raw.strip()
        if len(raw) == AES_KEY_SIZE * 2:
            try:
                return bytes.fromhex(raw)
            except ValueError:
                pass

        try:
            key = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError(f"{self._var_name} is not valid hex or base64") from e

        if len(key) != AES_KEY_SIZE:
            raise ConfigurationError(f"{self._var_name} must decode to {AES_KEY_SIZE} bytes")
        return key


class PassphraseKeyProvider(CryptoKeyProvider):
    """Derives the key from a passphrase with PBKDF2-HMAC-SHA256."""

    __slots__ = ("_key",)

    def __init__(
        self,
        passphrase: str,
        salt: bytes,
        iterations: int = PBKDF2_ITERATIONS,
    ) -> None:
        self._key = derive_key_pbkdf2(passphrase, salt, AES_KEY_SIZE, iterations)

    def get_key(self) -> bytes:
        return self._key
