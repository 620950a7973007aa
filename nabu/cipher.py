"""AES-256-GCM sealing of tunnel payloads with random nonces."""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

AES256_KEY_SIZE = 32
GCM_NONCE_SIZE = 12


class CryptoError(Exception):
    """Base class for cryptographic failures."""


class EmptyPlaintextError(CryptoError, ValueError):
    """Raised when asked to encrypt an empty plaintext."""

    def __init__(self) -> None:
        super().__init__("plaintext cannot be empty")


class InvalidKeyLengthError(CryptoError, ValueError):
    """Raised when the key is not 32 bytes long."""

    def __init__(self) -> None:
        super().__init__("key length must be 32 bytes for AES-256")


class CiphertextTooShortError(CryptoError, ValueError):
    """Raised when a ciphertext cannot hold a nonce and any payload."""

    def __init__(self) -> None:
        super().__init__("ciphertext too short")


class DecryptionError(CryptoError):
    """Raised when authentication of a ciphertext fails."""


class NonceGenerator:
    """Produces random GCM nonces; safe to share between threads."""

    def generate(self) -> bytes:
        """Return a fresh random nonce of GCM_NONCE_SIZE bytes."""
        return os.urandom(GCM_NONCE_SIZE)


_default_nonce_generator = NonceGenerator()


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt plaintext and return nonce || ciphertext || tag."""
    if not plaintext:
        raise EmptyPlaintextError()
    if len(key) != AES256_KEY_SIZE:
        raise InvalidKeyLengthError()
    nonce = _default_nonce_generator.generate()
    sealed = AESGCM(bytes(key)).encrypt(nonce, bytes(plaintext), None)
    return nonce + sealed


def decrypt(ciphertext: bytes, key: bytes) -> bytes:
    """Reverse encrypt(); raise DecryptionError if the data was tampered with."""
    if len(key) != AES256_KEY_SIZE:
        raise InvalidKeyLengthError()
    if len(ciphertext) <= GCM_NONCE_SIZE:
        raise CiphertextTooShortError()
    nonce = bytes(ciphertext[:GCM_NONCE_SIZE])
    payload = bytes(ciphertext[GCM_NONCE_SIZE:])
    try:
        return AESGCM(bytes(key)).decrypt(nonce, payload, None)
    except InvalidTag as exc:
        raise DecryptionError("decryption failed: message authentication failed") from exc