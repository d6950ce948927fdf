"""Symmetric encryption of short secrets at rest."""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from wiki_contrib.core.errors import ConfigurationError

KEY_LENGTH_BYTES = 32
NONCE_LENGTH_BYTES = 12
_KEY_PAD_BYTE = b"0"


class DecryptionError(ValueError):
    """Raised when a blob cannot be authenticated or decoded."""


def derive_key(secret: str) -> bytes:
    """Derive a 256-bit key from a configured secret.

    The secret is padded with ``"0"`` and truncated to the key length. Keep
    every caller on this function so the derivation can be swapped for a
    key management service without touching stored-data consumers.
    """
    if not secret:
        raise ConfigurationError("Encryption secret is not configured")
    raw = secret.encode("utf-8")
    return raw.ljust(KEY_LENGTH_BYTES, _KEY_PAD_BYTE)[:KEY_LENGTH_BYTES]


class SecretCipher:
    """AES-256-GCM cipher producing self-contained base64 blobs.

    Each blob is ``nonce || ciphertext || tag`` so decryption needs nothing
    but the key.
    """

    def __init__(self, secret: str | None) -> None:
        self._aead = AESGCM(derive_key(secret or ""))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string with a fresh random nonce."""
        nonce = os.urandom(NONCE_LENGTH_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """Decrypt a blob produced by :meth:`encrypt`.

        Raises:
            DecryptionError: If the blob is malformed, was tampered with, or
                was encrypted under a different key.
        """
        try:
            combined = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as err:
            raise DecryptionError("Invalid base64 encoding") from err

        if len(combined) <= NONCE_LENGTH_BYTES:
            raise DecryptionError("Encrypted payload is too short")

        nonce = combined[:NONCE_LENGTH_BYTES]
        ciphertext = combined[NONCE_LENGTH_BYTES:]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as err:
            raise DecryptionError("Ciphertext failed authentication") from err
        return plaintext.decode("utf-8")
