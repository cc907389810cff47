"""AES-GCM cipher for stored password values.

Ciphertexts are ``nonce || sealed``; a fresh random nonce is drawn for every
:meth:`AESCipher.encrypt`.  The serialized form of a cipher is the base64 of
the 32 byte key followed by a 12 byte nonce, the format stored in
``API_ENCRYPTION_KEY``.
"""

from __future__ import annotations

import base64
import binascii
import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32
NONCE_SIZE = 12
ENV_KEY = "API_ENCRYPTION_KEY"


class AESCipher:
    def __init__(self, key: bytes, nonce: Optional[bytes] = None) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"cipher key must be {KEY_SIZE} bytes, got {len(key)}")
        self.key = key
        self.nonce = nonce if nonce is not None else secrets.token_bytes(NONCE_SIZE)
        self._aead = AESGCM(key)

    @classmethod
    def generate(cls) -> "AESCipher":
        return cls(secrets.token_bytes(KEY_SIZE))

    @classmethod
    def from_string(cls, encoded: str) -> "AESCipher":
        """Rebuild a cipher from :meth:`to_string` output."""
        try:
            raw = base64.b64decode(encoded, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"failed to base64 decode cipher key: {exc}") from exc
        if len(raw) != KEY_SIZE + NONCE_SIZE:
            raise ValueError(f"cipher key must decode to {KEY_SIZE + NONCE_SIZE} bytes, got {len(raw)}")
        return cls(raw[:KEY_SIZE], raw[KEY_SIZE:])

    @classmethod
    def from_env(cls) -> Optional["AESCipher"]:
        """Cipher from ``API_ENCRYPTION_KEY``, or ``None`` when it is unset."""
        encoded = os.environ.get(ENV_KEY, "")
        if not encoded:
            return None
        return cls.from_string(encoded)

    def to_string(self) -> str:
        return base64.b64encode(self.key + self.nonce).decode("ascii")

    def encrypt(self, plaintext: bytes) -> bytes:
        nonce = secrets.token_bytes(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext, None)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Open *ciphertext*; raises :class:`ValueError` if it is short or tampered."""
        if len(ciphertext) < NONCE_SIZE:
            raise ValueError("cipher text too short")
        nonce, sealed = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise ValueError("failed to decrypt: authentication failed") from exc

    def encrypt_string(self, plaintext: str) -> str:
        """Encrypt and base64 encode, the form password values are stored in."""
        return base64.b64encode(self.encrypt(plaintext.encode("utf-8"))).decode("ascii")
