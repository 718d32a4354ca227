"""
Encryption of OAuth credentials at rest.

Stored form is ``<hex-iv>:<hex-ciphertext>`` produced by AES-256-CBC with
PKCS7 padding, keyed by the SHA-256 digest of the server secret. Values
without a ``:`` are legacy plaintext rows and are returned unchanged.
"""

import hashlib
import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..exceptions import TokenDecryptionFailed

logger = logging.getLogger(__name__)

IV_SIZE = 16
SEPARATOR = ":"


class TokenCipher:
    """Symmetric cipher for stored access and refresh tokens."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Token encryption secret must not be empty")
        self._key = hashlib.sha256(secret.encode("utf-8")).digest()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token. The empty string stays empty."""
        if not plaintext:
            return ""

        iv = os.urandom(IV_SIZE)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        return f"{iv.hex()}{SEPARATOR}{ciphertext.hex()}"

    def decrypt(self, stored: str) -> str:
        """Decrypt a stored token.

        Args:
            stored: Value read from the database

        Returns:
            The plaintext token; legacy values without a separator unchanged

        Raises:
            TokenDecryptionFailed: If the value looks encrypted but cannot be
                decrypted with this key
        """
        if not stored:
            return ""
        if SEPARATOR not in stored:
            return stored

        iv_hex, _, ciphertext_hex = stored.partition(SEPARATOR)
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except ValueError as e:
            logger.error(f"Token decryption failed: {e}")
            raise TokenDecryptionFailed(f"Stored credential could not be decrypted: {e}") from e
