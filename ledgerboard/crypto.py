"""
Provider credential encryption at rest.

AES-256-CBC with a random IV per call; ciphertext is stored as
``ivHex:cipherHex`` so encrypting the same access key twice never yields the
same string. Neither ``encrypt`` nor ``decrypt`` raises: callers must not use
them to validate ciphertext.
"""
import base64
import binascii
import logging
import os
from functools import lru_cache
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ledgerboard.config import settings
from ledgerboard.exceptions import EncryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
# Used when ENCRYPTION_KEY is unset. Known to anyone with the source; production refuses to start without a key.
DEVELOPMENT_KEY = "development-key-32-characters!!"


def normalize_key(secret: str) -> bytes:
    """Pad with "0" / truncate the secret to exactly 32 bytes."""
    raw = secret.encode("utf-8")
    return (raw + b"0" * KEY_LENGTH)[:KEY_LENGTH]


class CredentialCipher:
    """Symmetric cipher for provider secrets."""

    def __init__(self, secret: str) -> None:
        self._key = normalize_key(secret)

    def _encrypt_strict(self, plaintext: str) -> str:
        try:
            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            encrypted = encryptor.update(data) + encryptor.finalize()
        except (ValueError, TypeError, UnicodeError) as e:
            raise EncryptionError(f"Encryption failed: {e}") from e
        return f"{iv.hex()}:{encrypted.hex()}"

    def _decrypt_strict(self, iv_hex: str, cipher_hex: str) -> str:
        try:
            iv = bytes.fromhex(iv_hex)
            encrypted = bytes.fromhex(cipher_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            data = decryptor.update(encrypted) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(data) + unpadder.finalize()
            return plain.decode("utf-8")
        except (ValueError, TypeError, UnicodeError) as e:
            raise EncryptionError(f"Decryption failed: {e}") from e

    def encrypt(self, plaintext: str) -> str:
        """Encrypt to ``ivHex:cipherHex``; degrades to base64 on failure."""
        try:
            return self._encrypt_strict(plaintext)
        except EncryptionError as e:
            logger.error("%s; storing base64 encoding instead", e.message)
            return base64.b64encode(plaintext.encode("utf-8", errors="replace")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt ``ivHex:cipherHex``.

        Values without exactly one ``:`` are legacy base64 records. Anything
        that cannot be decoded is returned unchanged.
        """
        parts = ciphertext.split(":")
        try:
            if len(parts) != 2:
                return _decode_legacy(ciphertext)
            return self._decrypt_strict(parts[0], parts[1])
        except EncryptionError as e:
            logger.warning("%s; returning stored value as-is", e.message)
            return ciphertext


def _decode_legacy(value: str) -> str:
    try:
        return base64.b64decode(value).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise EncryptionError(f"Legacy credential is not base64: {e}") from e


@lru_cache
def get_cipher(secret: Optional[str] = None) -> CredentialCipher:
    """Cipher for the configured key (cached per secret)."""
    secret = secret if secret is not None else settings.encryption_key
    if not secret:
        logger.warning("ENCRYPTION_KEY not set, using the development key for provider credentials")
        secret = DEVELOPMENT_KEY
    return CredentialCipher(secret)


def encrypt(plaintext: str) -> str:
    return get_cipher().encrypt(plaintext)


def decrypt(ciphertext: str) -> str:
    return get_cipher().decrypt(ciphertext)
