"""SecretBox — AES-256-GCM encryption for secrets kept in settings."""

from __future__ import annotations

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from relayctl.core.exceptions import ValidationError

ENCRYPTED_PREFIX = "enc:"

_SALT = b"relayctl-v1-salt"
_ITERATIONS = 100_000
_NONCE_SIZE = 12
MIN_PASSPHRASE_LEN = 16


class SecretBox:
    """Encrypts short secrets with a key derived from a passphrase.

    Ciphertexts are ``base64(nonce || ciphertext+tag)``. Key derivation uses a
    fixed salt so the same passphrase always opens values written earlier.

    Usage::

        box = SecretBox(settings.secrets.passphrase.get_secret_value())
        token = box.encrypt("hunter2")
        box.decrypt(token)  # "hunter2"
    """

    def __init__(self, passphrase: str) -> None:
        if len(passphrase) < MIN_PASSPHRASE_LEN:
            raise ValidationError(
                f"passphrase must be at least {MIN_PASSPHRASE_LEN} characters",
            )
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_SALT,
            iterations=_ITERATIONS,
        )
        self._aead = AESGCM(kdf.derive(passphrase.encode("utf-8")))

    def encrypt(self, plaintext: str) -> str:
        if plaintext == "":
            return ""
        nonce = os.urandom(_NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, token: str) -> str:
        if token == "":
            return ""
        try:
            raw = base64.b64decode(token, validate=True)
        except ValueError as exc:
            raise ValidationError("ciphertext is not valid base64") from exc
        if len(raw) <= _NONCE_SIZE:
            raise ValidationError("ciphertext too short")
        try:
            plain = self._aead.decrypt(raw[:_NONCE_SIZE], raw[_NONCE_SIZE:], None)
        except InvalidTag as exc:
            raise ValidationError("ciphertext could not be authenticated") from exc
        return plain.decode("utf-8")

    def reveal(self, value: str) -> str:
        """Decrypt *value* if it carries the ``enc:`` prefix, else return it."""
        if value.startswith(ENCRYPTED_PREFIX):
            return self.decrypt(value[len(ENCRYPTED_PREFIX):])
        return value

    def seal(self, value: str) -> str:
        """Encrypt *value* and add the ``enc:`` prefix."""
        return ENCRYPTED_PREFIX + self.encrypt(value)
