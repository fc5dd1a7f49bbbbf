"""
SecureDesk Field Cryptography
=============================

Field-level encryption for sensitive record attributes.

Architecture:
    1. AES-256-GCM: authenticated symmetric encryption, random nonce per value
    2. CryptoKeyProvider: isolates where the key comes from
    3. FieldCodec: string-in, string-out wrapper used by the record store

WARNING: A single static key protects every record. Rotation and
         per-user keys are not implemented.
"""

from securedesk.core.crypto.aes_gcm import AesGcmCipher, AesGcmResult
from securedesk.core.crypto.field_codec import FieldCodec, is_token
from securedesk.core.crypto.key_provider import (
    CryptoKeyProvider,
    EnvironmentKeyProvider,
    PassphraseKeyProvider,
    StaticKeyProvider,
    generate_key,
)

__all__ = [
    "AesGcmCipher",
    "AesGcmResult",
    "FieldCodec",
    "is_token",
    "CryptoKeyProvider",
    "EnvironmentKeyProvider",
    "PassphraseKeyProvider",
    "StaticKeyProvider",
    "generate_key",
]
