"""Tests for keyvault.py: AES-256-GCM encryption and token helpers.

Every test runs with the known ENCRYPTION_MASTER_KEY set in conftest.
"""

import base64
from dataclasses import replace

import pytest

from errors import ConfigurationError, DecryptionError, InvalidInputError
from keyvault import (
    EncryptedSecret,
    KeyVault,
    generate_master_key,
    generate_secure_token,
    hash_token,
    parse_master_key,
    secure_compare,
)

TEST_MASTER_KEY = "0123456789abcdef" * 4
OTHER_MASTER_KEY = "fedcba9876543210" * 4


@pytest.fixture
def vault():
    return KeyVault()


def _flip_first_byte(b64: str) -> str:
    raw = bytearray(base64.b64decode(b64))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode()


# ── Encrypt / Decrypt ───────────────────────────────────────────────

class TestEncryptDecrypt:
    def test_round_trip(self, vault):
        secret = vault.encrypt("sk-test-1234")
        assert vault.decrypt(secret) == "sk-test-1234"

    def test_fields_are_base64_and_sized(self, vault):
        secret = vault.encrypt("hello")
        assert len(base64.b64decode(secret.iv)) == 16
        assert len(base64.b64decode(secret.auth_tag)) == 16
        assert base64.b64decode(secret.ciphertext) != b"hello"

    def test_same_plaintext_fresh_iv(self, vault):
        a = vault.encrypt("same")
        b = vault.encrypt("same")
        assert a.iv != b.iv
        assert a.ciphertext != b.ciphertext
        assert vault.decrypt(a) == vault.decrypt(b) == "same"

    def test_unicode_round_trip(self, vault):
        assert vault.decrypt(vault.encrypt("clé-🔑-ключ")) == "clé-🔑-ключ"

    def test_long_string(self, vault):
        long_key = "sk-" + "a" * 500
        assert vault.decrypt(vault.encrypt(long_key)) == long_key

    def test_empty_string_rejected(self, vault):
        with pytest.raises(InvalidInputError):
            vault.encrypt("")


class TestTamperDetection:
    def test_tampered_ciphertext(self, vault):
        secret = vault.encrypt("sk-test-1234")
        with pytest.raises(DecryptionError):
            vault.decrypt(replace(secret, ciphertext=_flip_first_byte(secret.ciphertext)))

    def test_tampered_tag(self, vault):
        secret = vault.encrypt("sk-test-1234")
        with pytest.raises(DecryptionError):
            vault.decrypt(replace(secret, auth_tag=_flip_first_byte(secret.auth_tag)))

    def test_tampered_iv(self, vault):
        secret = vault.encrypt("sk-test-1234")
        with pytest.raises(DecryptionError):
            vault.decrypt(replace(secret, iv=_flip_first_byte(secret.iv)))

    def test_missing_field(self, vault):
        secret = vault.encrypt("sk-test-1234")
        with pytest.raises(DecryptionError, match="missing"):
            vault.decrypt(replace(secret, auth_tag=""))

    def test_bad_base64(self, vault):
        secret = vault.encrypt("sk-test-1234")
        with pytest.raises(DecryptionError):
            vault.decrypt(replace(secret, ciphertext="not base64!!"))

    def test_wrong_iv_length(self, vault):
        secret = vault.encrypt("sk-test-1234")
        with pytest.raises(DecryptionError, match="IV"):
            vault.decrypt(replace(secret, iv=base64.b64encode(b"short").decode()))

    def test_wrong_key(self, vault):
        secret = vault.encrypt("sk-test-1234")
        with pytest.raises(DecryptionError):
            KeyVault(OTHER_MASTER_KEY).decrypt(secret)


# ── Master key handling ─────────────────────────────────────────────

class TestMasterKey:
    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_MASTER_KEY")
        with pytest.raises(ConfigurationError, match="not set"):
            KeyVault().encrypt("x")

    @pytest.mark.parametrize("bad", ["abc", "z" * 64, TEST_MASTER_KEY + "00"])
    def test_malformed_key(self, bad):
        with pytest.raises(ConfigurationError):
            parse_master_key(bad)

    def test_key_read_per_operation(self, monkeypatch, vault):
        secret = vault.encrypt("sk-test-1234")
        monkeypatch.setenv("ENCRYPTION_MASTER_KEY", OTHER_MASTER_KEY)
        with pytest.raises(DecryptionError):
            vault.decrypt(secret)

    def test_generate_master_key_is_valid(self):
        key = generate_master_key()
        assert len(parse_master_key(key)) == 32

    def test_validate_config(self, vault):
        vault.validate_config()

    def test_validate_config_without_key(self, monkeypatch, vault):
        monkeypatch.delenv("ENCRYPTION_MASTER_KEY")
        with pytest.raises(ConfigurationError):
            vault.validate_config()


class TestReEncrypt:
    def test_rotation_round_trip(self):
        old = KeyVault(OTHER_MASTER_KEY).encrypt("sk-rotate-me")
        new_vault = KeyVault()
        rotated = new_vault.re_encrypt(old, OTHER_MASTER_KEY)
        assert new_vault.decrypt(rotated) == "sk-rotate-me"
        assert rotated.ciphertext != old.ciphertext

    def test_rotation_with_wrong_old_key(self):
        secret = KeyVault().encrypt("sk-rotate-me")
        with pytest.raises(DecryptionError):
            KeyVault().re_encrypt(secret, OTHER_MASTER_KEY)


# ── Token helpers ───────────────────────────────────────────────────

class TestTokenHelpers:
    def test_hash_token_is_sha256_hex(self):
        digest = hash_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_generate_secure_token(self):
        a, b = generate_secure_token(), generate_secure_token()
        assert len(a) == 64
        assert a != b
        assert len(generate_secure_token(8)) == 16

    def test_secure_compare(self):
        assert secure_compare("token", "token")
        assert not secure_compare("token", "tokem")
        assert not secure_compare("token", "token-longer")
        assert not secure_compare("", "x")
        assert secure_compare("", "")

    def test_encrypted_secret_is_frozen(self):
        secret = EncryptedSecret("a", "b", "c")
        with pytest.raises(AttributeError):
            secret.iv = "x"
