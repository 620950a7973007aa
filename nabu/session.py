"""HKDF-SHA256 session key derivation."""

from __future__ import annotations

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from nabu.cipher import CryptoError

SESSION_KEY_INFO = b"nabu-session-key"
MAX_SESSION_KEY_LENGTH = 64


class EmptyMasterKeyError(CryptoError, ValueError):
    """Raised when the master key is empty."""

    def __init__(self) -> None:
        super().__init__("master key cannot be empty")


class EmptySaltError(CryptoError, ValueError):
    """Raised when the salt is empty."""

    def __init__(self) -> None:
        super().__init__("salt cannot be empty")


class InvalidKeyOutSizeError(CryptoError, ValueError):
    """Raised when the requested key length is outside 1..64."""

    def __init__(self) -> None:
        super().__init__("key length must be between 1 and 64")


def derive_session_key(master_key: bytes, salt: bytes, key_length: int) -> bytes:
    """Derive key_length bytes via HKDF-SHA256(master_key, salt, "nabu-session-key")."""
    if not master_key:
        raise EmptyMasterKeyError()
    if not salt:
        raise EmptySaltError()
    if key_length <= 0 or key_length > MAX_SESSION_KEY_LENGTH:
        raise InvalidKeyOutSizeError()
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=key_length,
        salt=bytes(salt),
        info=SESSION_KEY_INFO,
    )
    return hkdf.derive(bytes(master_key))