"""AES-256-GCM authenticated encryption."""

import os
from typing import Callable, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import AuthenticationError, ValidationError

KEY_SIZE = 32
NONCE_SIZE = 12


class AES256GCM:
    """
    AEAD cipher with a fresh random 96-bit nonce per encryption.

    The nonce is not secret and must travel with the ciphertext. A (key, nonce)
    pair must never repeat.
    """

    def __init__(self, random_bytes: Optional[Callable[[int], bytes]] = None):
        self._random_bytes = random_bytes or os.urandom

    @staticmethod
    def _cipher(key: bytes) -> AESGCM:
        if len(key) != KEY_SIZE:
            raise ValidationError(f"AES-256-GCM key must be {KEY_SIZE} bytes, got {len(key)}")
        return AESGCM(key)

    def encrypt(self, key: bytes, plaintext: bytes, associated_data: bytes) -> Tuple[bytes, bytes]:
        """
        Encrypt and authenticate.

        Args:
            key: 32-byte key
            plaintext: Data to encrypt
            associated_data: Data authenticated but not encrypted

        Returns:
            Tuple of (ciphertext with tag, nonce)
        """
        cipher = self._cipher(key)
        nonce = self._random_bytes(NONCE_SIZE)
        return cipher.encrypt(nonce, plaintext, associated_data), nonce

    def decrypt(self, key: bytes, ciphertext: bytes, associated_data: bytes, nonce: bytes) -> bytes:
        """
        Decrypt and verify.

        Raises:
            AuthenticationError: If tag, associated data or nonce do not match
        """
        cipher = self._cipher(key)
        if len(nonce) != NONCE_SIZE:
            raise AuthenticationError(f"Nonce must be {NONCE_SIZE} bytes")

        try:
            return cipher.decrypt(nonce, ciphertext, associated_data)
        except InvalidTag:
            raise AuthenticationError("Message authentication failed")

    def encrypt_message(self, key: bytes, plaintext: str, associated_data: bytes) -> Tuple[bytes, bytes]:
        """Encrypt a UTF-8 string."""
        return self.encrypt(key, plaintext.encode("utf-8"), associated_data)

    def decrypt_message(self, key: bytes, ciphertext: bytes, associated_data: bytes, nonce: bytes) -> str:
        """
        Decrypt to a UTF-8 string.

        Raises:
            AuthenticationError: If tag, associated data or nonce do not match
            ValidationError: If the authenticated plaintext is not valid UTF-8
        """
        plaintext = self.decrypt(key, ciphertext, associated_data, nonce)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("Decrypted message is not valid UTF-8")
