"""AES-256-GCM cipher for integration secrets at rest.

Storage format (single column round-trip):
- encrypted_value: base64(ciphertext) + "." + base64(16-byte tag)
- iv:              base64(12-byte nonce), freshly generated per value

The master key comes from SECRETS_ENCRYPTION_KEY and is never stored in
the database. A missing or malformed key raises MasterKeyError, which is
the only vault error allowed to abort startup.
"""

import base64
import binascii
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from anivise.config.settings import Settings

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32

_MASK = "••••"
_LONG_MASK = "••••••••••••"


class MasterKeyError(RuntimeError):
    """SECRETS_ENCRYPTION_KEY is missing or not a base64 32-byte key."""


class SecretDecryptionError(ValueError):
    """Stored value is malformed or failed authentication."""


@dataclass(frozen=True)
class EncryptedSecret:
    """Ciphertext and nonce as stored in integration_secrets."""

    encrypted_value: str
    iv: str


def load_master_key(settings: Settings) -> bytes:
    """Decode and validate the process-wide master key."""
    raw = settings.SECRETS_ENCRYPTION_KEY.strip()
    if not raw:
        raise MasterKeyError("SECRETS_ENCRYPTION_KEY environment variable is not set")
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MasterKeyError("SECRETS_ENCRYPTION_KEY is not valid base64") from exc
    if len(key) != KEY_LENGTH:
        raise MasterKeyError(
            f"SECRETS_ENCRYPTION_KEY must decode to {KEY_LENGTH} bytes, got {len(key)}"
        )
    return key


class SecretCipher:
    """Authenticated encryption of secret values with a fixed master key."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise MasterKeyError(f"Master key must be {KEY_LENGTH} bytes.")
        self._aead = AESGCM(key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SecretCipher":
        return cls(load_master_key(settings))

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return EncryptedSecret(
            encrypted_value=(
                base64.b64encode(ciphertext).decode("ascii")
                + "."
                + base64.b64encode(tag).decode("ascii")
            ),
            iv=base64.b64encode(nonce).decode("ascii"),
        )

    def decrypt(self, encrypted_value: str, iv: str) -> str:
        """Decrypt a stored value.

        Raises:
            SecretDecryptionError: On malformed input or tag mismatch.
                Never returns wrong plaintext.
        """
        cipher_b64, sep, tag_b64 = encrypted_value.partition(".")
        if not sep or not tag_b64:
            raise SecretDecryptionError("Invalid encrypted value format")
        try:
            ciphertext = base64.b64decode(cipher_b64, validate=True)
            tag = base64.b64decode(tag_b64, validate=True)
            nonce = base64.b64decode(iv, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SecretDecryptionError("Invalid base64 in stored secret") from exc
        if len(tag) != TAG_LENGTH or len(nonce) != NONCE_LENGTH:
            raise SecretDecryptionError("Invalid tag or nonce length")
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise SecretDecryptionError("Authentication tag mismatch") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SecretDecryptionError("Decrypted value is not UTF-8") from exc


def mask_secret(value: str) -> str:
    """Reveal only the trailing 4 characters of a secret."""
    if len(value) <= 4:
        return _MASK
    return _LONG_MASK + value[-4:]


def is_masked(value: str) -> bool:
    """True for placeholder values echoed back from a masked form field."""
    return value.startswith(_MASK)
