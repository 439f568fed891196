"""AES-256-GCM encryption for user API keys and endpoints.

Each secret is stored as three base64 fields (ciphertext, IV, auth tag). The
IV is random per call and the tag is verified on every decrypt, so a tampered
or truncated record fails loudly instead of yielding a wrong key.

Also hosts the small token helpers used by the session layer.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
import re
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from errors import ConfigurationError, DecryptionError, InvalidInputError

logger = logging.getLogger(__name__)

MASTER_KEY_ENV = "ENCRYPTION_MASTER_KEY"
IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_KEY_HINT = "Generate one with: python keyvault.py"


@dataclass(frozen=True)
class EncryptedSecret:
    """Base64-encoded ciphertext, IV and authentication tag."""
    ciphertext: str
    iv: str
    auth_tag: str


def parse_master_key(key_hex: Optional[str]) -> bytes:
    """Validate a 64-char hex master key and return its 32 raw bytes."""
    if not key_hex:
        raise ConfigurationError(f"{MASTER_KEY_ENV} is not set. {_KEY_HINT}")
    if not _HEX_KEY_RE.match(key_hex):
        raise ConfigurationError(
            f"{MASTER_KEY_ENV} must be a 64-character hexadecimal string (32 bytes). {_KEY_HINT}"
        )
    return bytes.fromhex(key_hex)


def generate_master_key() -> str:
    """Return a fresh random master key as 64 hex characters."""
    return secrets.token_hex(KEY_LENGTH)


class KeyVault:
    """Encrypt/decrypt provider secrets with AES-256-GCM.

    When no key is passed the vault reads ENCRYPTION_MASTER_KEY on every
    operation, so rotating the environment takes effect without a restart and
    the key never lives in module state.
    """

    def __init__(self, master_key: Optional[str] = None):
        self._explicit_key = master_key

    def _master_key(self) -> bytes:
        if self._explicit_key is not None:
            return parse_master_key(self._explicit_key)
        return parse_master_key(os.environ.get(MASTER_KEY_ENV))

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        """Encrypt a non-empty string with a fresh random IV."""
        if not plaintext:
            raise InvalidInputError("Cannot encrypt empty string")

        aesgcm = AESGCM(self._master_key())
        iv = os.urandom(IV_LENGTH)
        sealed = aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
        return EncryptedSecret(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            iv=base64.b64encode(iv).decode("ascii"),
            auth_tag=base64.b64encode(tag).decode("ascii"),
        )

    def decrypt(self, secret: EncryptedSecret) -> str:
        """Decrypt and authenticate a secret. Raises DecryptionError on any failure."""
        if not secret.ciphertext or not secret.iv or not secret.auth_tag:
            raise DecryptionError("Invalid encrypted data: missing required fields")

        try:
            ciphertext = base64.b64decode(secret.ciphertext, validate=True)
            iv = base64.b64decode(secret.iv, validate=True)
            tag = base64.b64decode(secret.auth_tag, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"Invalid encrypted data: {e}") from e

        if len(iv) != IV_LENGTH:
            raise DecryptionError("Invalid IV length")
        if len(tag) != AUTH_TAG_LENGTH:
            raise DecryptionError("Invalid authentication tag length")

        aesgcm = AESGCM(self._master_key())
        try:
            plaintext = aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError(
                "Decryption failed: data may have been tampered with or the master key has changed"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted data is not valid UTF-8") from e

    def re_encrypt(self, secret: EncryptedSecret, old_key: str) -> EncryptedSecret:
        """Decrypt with ``old_key`` and encrypt again with this vault's key."""
        plaintext = KeyVault(old_key).decrypt(secret)
        return self.encrypt(plaintext)

    def validate_config(self) -> None:
        """Startup self-test: the key loads and a probe value round-trips."""
        probe = f"encryption-test-{time.time_ns()}"
        if self.decrypt(self.encrypt(probe)) != probe:
            raise ConfigurationError("Encryption self-test failed: round trip mismatch")
        logger.info("Encryption system validated")


# --- Token helpers ---

def hash_token(token: str) -> str:
    """SHA-256 hash a token for safe DB storage."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_secure_token(n_bytes: int = 32) -> str:
    """Cryptographically secure random token, hex-encoded."""
    return secrets.token_hex(n_bytes)


def secure_compare(a: str, b: str) -> bool:
    """Constant-time string equality. False on any length mismatch."""
    a_bytes = a.encode("utf-8")
    b_bytes = b.encode("utf-8")
    if len(a_bytes) != len(b_bytes):
        return False
    return hmac.compare_digest(a_bytes, b_bytes)


# Module-level vault bound to the environment key (no key is cached)
vault = KeyVault()


if __name__ == "__main__":
    print(generate_master_key())
