"""
AES-256 encryption for OAuth tokens at rest.

Stored values use the JSON envelopes the web application writes:

- GCM (current): ``{"iv": <hex>, "encryptedData": <hex>, "authTag": <hex>}``
- CBC (older rows): ``{"iv": <hex>, "encryptedData": <hex>}``, PKCS#7 padded

The key is the SHA-256 digest of the configured secret. New values are
always written as GCM.
"""

import hashlib
import json
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..domain.errors import TokenCipherError
from ..domain.ports import TokenCipher

IV_BYTES = 16
TAG_BYTES = 16


class AesGcmTokenCipher(TokenCipher):
    """TokenCipher backed by cryptography's AESGCM, reading CBC envelopes too."""

    def __init__(self, secret: str, aad: str) -> None:
        if not secret:
            raise TokenCipherError("Token encryption key is not configured")
        self._key = hashlib.sha256(secret.encode("utf-8")).digest()
        self._aead = AESGCM(self._key)
        self._aad = aad.encode("utf-8")

    def encrypt(self, token: str) -> str:
        iv = os.urandom(IV_BYTES)
        sealed = self._aead.encrypt(iv, token.encode("utf-8"), self._aad)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
        return json.dumps(
            {
                "iv": iv.hex(),
                "encryptedData": ciphertext.hex(),
                "authTag": tag.hex(),
            }
        )

    def decrypt(self, stored: str) -> str:
        # Rows written before encryption was introduced hold plaintext
        if not stored.startswith("{"):
            return stored

        try:
            envelope = json.loads(stored)
            iv = bytes.fromhex(envelope["iv"])
            ciphertext = bytes.fromhex(envelope["encryptedData"])
            tag = bytes.fromhex(envelope["authTag"]) if "authTag" in envelope else None
        except (ValueError, KeyError, TypeError) as e:
            raise TokenCipherError(f"Malformed token envelope: {type(e).__name__}") from e

        if tag is None:
            plaintext = self._decrypt_cbc(iv, ciphertext)
        else:
            try:
                plaintext = self._aead.decrypt(iv, ciphertext + tag, self._aad)
            except InvalidTag as e:
                raise TokenCipherError("Token authentication failed") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TokenCipherError("Decrypted token is not valid UTF-8") from e

    def _decrypt_cbc(self, iv: bytes, ciphertext: bytes) -> bytes:
        try:
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            # Wrong key or truncated data surfaces as a padding/length error
            raise TokenCipherError(f"CBC token decryption failed: {e}") from e
