# Tests for field-level encryption
# Covers: AES-GCM primitive, FieldCodec token format and failure modes,
#          key providers (static, environment, passphrase), PBKDF2.

import base64

import pytest
from cryptography.exceptions import InvalidTag

from securedesk.core.crypto import (
    AesGcmCipher,
    AesGcmResult,
    EnvironmentKeyProvider,
    FieldCodec,
    PassphraseKeyProvider,
    StaticKeyProvider,
    generate_key,
    is_token,
)
from securedesk.core.crypto.field_codec import TOKEN_PREFIX
from securedesk.core.crypto.kdf import derive_key_pbkdf2, generate_salt
from securedesk.core.exceptions import ConfigurationError, DecryptionError


# ── AES-GCM primitive ────────────────────────────────────────────────

class TestAesGcmCipher:
    def test_roundtrip_with_aad(self):
        cipher = AesGcmCipher()
        key = cipher.generate_key()
        result = cipher.encrypt(b"secret", key, aad=b"ctx")
        assert cipher.decrypt(result.ciphertext, result.nonce, key, aad=b"ctx") == b"secret"

    def test_wrong_aad_rejected(self):
        cipher = AesGcmCipher()
        key = cipher.generate_key()
        result = cipher.encrypt(b"secret", key, aad=b"ctx")
        with pytest.raises(InvalidTag):
            cipher.decrypt(result.ciphertext, result.nonce, key, aad=b"other")

    def test_short_key_rejected(self):
        with pytest.raises(ValueError):
            AesGcmCipher().encrypt(b"x", b"short")

    def test_result_bytes_layout(self):
        result = AesGcmResult(ciphertext=b"c" * 20, nonce=b"n" * 12)
        packed = result.to_bytes()
        assert packed[:12] == b"n" * 12
        assert AesGcmResult.from_bytes(packed) == result

    def test_from_bytes_too_short(self):
        with pytest.raises(ValueError):
            AesGcmResult.from_bytes(b"tiny")

    def test_repr_hides_bytes(self):
        result = AesGcmResult(ciphertext=b"topsecret" * 3, nonce=b"n" * 12)
        assert "topsecret" not in repr(result)


# ── FieldCodec ───────────────────────────────────────────────────────

class TestFieldCodec:
    def test_roundtrip(self, codec):
        token = codec.encrypt("hunter2", "credentials.password")
        assert is_token(token)
        assert token.startswith(TOKEN_PREFIX)
        assert codec.decrypt(token, "credentials.password") == "hunter2"

    def test_unicode_roundtrip(self, codec):
        value = "pässwörd ✓ 密码"
        assert codec.decrypt(codec.encrypt(value)) == value

    def test_ciphertext_does_not_contain_plaintext(self, codec):
        token = codec.encrypt("4111111111111111", "cards.card_number")
        assert "4111111111111111" not in token
        assert "1111111111111111" not in token

    def test_fresh_nonce_each_call(self, codec):
        assert codec.encrypt("same") != codec.encrypt("same")

    @pytest.mark.parametrize("value", ["", None])
    def test_empty_values_pass_through(self, codec, value):
        assert codec.encrypt(value) == value
        assert codec.decrypt(value) == value

    def test_non_string_rejected(self, codec):
        with pytest.raises(TypeError):
            codec.encrypt(1234)

    def test_wrong_key_fails(self, codec):
        token = codec.encrypt("secret")
        other = FieldCodec(StaticKeyProvider(generate_key()))
        with pytest.raises(DecryptionError):
            other.decrypt(token)

    def test_wrong_context_fails(self, codec):
        token = codec.encrypt("1234", "bank_details.pin")
        with pytest.raises(DecryptionError):
            codec.decrypt(token, "cards.cvv")

    def test_plain_string_is_not_a_token(self, codec):
        with pytest.raises(DecryptionError):
            codec.decrypt("plaintext value")

    def test_malformed_base64(self, codec):
        with pytest.raises(DecryptionError):
            codec.decrypt(TOKEN_PREFIX + "!!not-base64!!")

    def test_truncated_token(self, codec):
        with pytest.raises(DecryptionError):
            codec.decrypt(TOKEN_PREFIX + base64.b64encode(b"short").decode())

    def test_tampered_token(self, codec):
        token = codec.encrypt("secret")
        raw = bytearray(base64.b64decode(token[len(TOKEN_PREFIX):]))
        raw[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            codec.decrypt(TOKEN_PREFIX + base64.b64encode(bytes(raw)).decode())

    def test_error_message_has_no_secret(self, codec):
        token = codec.encrypt("very-secret-value", "a.b")
        with pytest.raises(DecryptionError) as exc_info:
            codec.decrypt(token, "c.d")
        assert "very-secret-value" not in str(exc_info.value)
        assert token not in str(exc_info.value)


# ── Key providers ────────────────────────────────────────────────────

class TestKeyProviders:
    def test_static_requires_32_bytes(self):
        with pytest.raises(ValueError):
            StaticKeyProvider(b"0" * 16)

    def test_key_id_is_stable_fingerprint(self, key):
        a = StaticKeyProvider(key)
        b = StaticKeyProvider(key)
        assert a.key_id == b.key_id
        assert key.hex() not in a.key_id
        assert a.key_id != StaticKeyProvider(generate_key()).key_id

    def test_repr_shows_only_key_id(self, key):
        provider = StaticKeyProvider(key)
        assert key.hex() not in repr(provider)
        assert provider.key_id in repr(provider)

    def test_environment_hex(self, monkeypatch, key):
        monkeypatch.setenv("TEST_FIELD_KEY", key.hex())
        assert EnvironmentKeyProvider("TEST_FIELD_KEY").get_key() == key

    def test_environment_base64(self, monkeypatch, key):
        monkeypatch.setenv("TEST_FIELD_KEY", base64.b64encode(key).decode())
        assert EnvironmentKeyProvider("TEST_FIELD_KEY").get_key() == key

    def test_environment_missing(self, monkeypatch):
        monkeypatch.delenv("TEST_FIELD_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            EnvironmentKeyProvider("TEST_FIELD_KEY").get_key()

    def test_environment_wrong_length(self, monkeypatch):
        monkeypatch.setenv("TEST_FIELD_KEY", base64.b64encode(b"x" * 10).decode())
        with pytest.raises(ConfigurationError):
            EnvironmentKeyProvider("TEST_FIELD_KEY").get_key()

    def test_environment_is_lazy(self, monkeypatch):
        monkeypatch.delenv("TEST_FIELD_KEY", raising=False)
        provider = EnvironmentKeyProvider("TEST_FIELD_KEY")
        monkeypatch.setenv("TEST_FIELD_KEY", "ab" * 32)
        assert provider.get_key() == bytes.fromhex("ab" * 32)

    def test_passphrase_is_deterministic(self):
        salt = generate_salt()
        a = PassphraseKeyProvider("correct horse", salt, iterations=1000)
        b = PassphraseKeyProvider("correct horse", salt, iterations=1000)
        assert a.get_key() == b.get_key()
        assert len(a.get_key()) == 32

    def test_passphrase_codec_interop(self):
        salt = generate_salt()
        writer = FieldCodec(PassphraseKeyProvider("pw", salt, iterations=1000))
        reader = FieldCodec(PassphraseKeyProvider("pw", salt, iterations=1000))
        assert reader.decrypt(writer.encrypt("data")) == "data"


class TestPbkdf2:
    def test_empty_password_rejected(self):
        with pytest.raises(ValueError):
            derive_key_pbkdf2("", generate_salt())

    def test_short_salt_rejected(self):
        with pytest.raises(ValueError):
            derive_key_pbkdf2("pw", b"short")

    def test_different_salts_differ(self):
        a = derive_key_pbkdf2("pw", generate_salt(), iterations=1000)
        b = derive_key_pbkdf2("pw", generate_salt(), iterations=1000)
        assert a != b
