"""
Field Codec
===========

Reversible protection of individual string field values.

Token format:
    ``sd1:`` + base64( nonce(12) || ciphertext || tag(16) )

Empty and missing values pass through untouched, so optional fields
round-trip as absent instead of as an encrypted empty string.
"""

from __future__ import annotations

import base64
import binascii
from typing import Final, Optional

from cryptography.exceptions import InvalidTag

from securedesk.core.crypto.aes_gcm import AesGcmCipher, AesGcmResult
from securedesk.core.crypto.key_provider import CryptoKeyProvider
from securedesk.core.exceptions import DecryptionError

TOKEN_PREFIX: Final[str] = "sd1:"


def is_token(value: object) -> bool:
    """True if value looks like a codec-produced ciphertext."""
    return isinstance(value, str) and value.startswith(TOKEN_PREFIX)


class FieldCodec:
    """
    AES-256-GCM string codec over an injected key provider.

    Usage:
        codec = FieldCodec(StaticKeyProvider(generate_key()))
        token = codec.encrypt("hunter2", context="credentials.password")
        codec.decrypt(token, context="credentials.password")  # "hunter2"

    ``context`` is bound as associated data: a token only decrypts under
    the same context it was produced with.
    """

    __slots__ = ("_key_provider", "_cipher")

    def __init__(self, key_provider: CryptoKeyProvider) -> None:
        self._key_provider = key_provider
        self._cipher = AesGcmCipher()

    @property
    def key_id(self) -> str:
        return self._key_provider.key_id

    @staticmethod
    def _aad(context: Optional[str]) -> Optional[bytes]:
        return context.encode("utf-8") if context else None

    def encrypt(self, plaintext: Optional[str], context: Optional[str] = None) -> Optional[str]:
        """
        Encrypt a single value.

        Returns:
            The input unchanged when falsy, otherwise a ``sd1:`` token.
            Every call uses a fresh nonce, so equal plaintexts give
            different tokens.
        """
        if not plaintext:
            return plaintext
        if not isinstance(plaintext, str):
            raise TypeError("Only string values can be encrypted")

        result = self._cipher.encrypt(
            plaintext.encode("utf-8"),
            self._key_provider.get_key(),
            aad=self._aad(context),
        )
        return TOKEN_PREFIX + base64.b64encode(result.to_bytes()).decode("ascii")

    def decrypt(self, token: Optional[str], context: Optional[str] = None) -> Optional[str]:
        """
        Decrypt a value produced by encrypt().

        Raises:
            DecryptionError: Malformed token, wrong key, wrong context or tampering
        """
        if not token:
            return token
        if not is_token(token):
            raise DecryptionError("Value is not a field ciphertext")

        try:
            sealed = AesGcmResult.from_bytes(
                base64.b64decode(token[len(TOKEN_PREFIX):], validate=True)
            )
            plaintext = self._cipher.decrypt(
                sealed.ciphertext,
                sealed.nonce,
                self._key_provider.get_key(),
                aad=self._aad(context),
            )
            return plaintext.decode("utf-8")
        except InvalidTag as e:
            raise DecryptionError("Ciphertext failed authentication") from e
        except (binascii.Error, ValueError) as e:
            # UnicodeDecodeError is a ValueError
            raise DecryptionError("Malformed ciphertext") from e
