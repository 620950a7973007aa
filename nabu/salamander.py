"""Salamander UDP obfuscation: per-datagram AES-256-GCM with a fresh salt.

Wire format: salt (8) | GCM nonce (12) | ciphertext + tag (N + 16).
The frame key is HKDF-SHA256(psk, salt, "nabu-salamander-v1").
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from nabu.cipher import AES256_KEY_SIZE, CryptoError

SALAMANDER_SALT_LEN = 8
SALAMANDER_KEY_LEN = AES256_KEY_SIZE
_NONCE_LEN = 12
_TAG_LEN = 16
SALAMANDER_OVERHEAD = SALAMANDER_SALT_LEN + _NONCE_LEN + _TAG_LEN
_INFO = b"nabu-salamander-v1"


class SalamanderError(CryptoError):
    """Raised when a Salamander frame cannot be encoded or decoded."""


class SalamanderShortPacketError(SalamanderError):
    """Raised when a packet is too short to hold salt, nonce and tag."""

    def __init__(self) -> None:
        super().__init__("salamander: packet too short")


def _derive_key(psk: bytes, salt: bytes) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=SALAMANDER_KEY_LEN, salt=salt, info=_INFO)
    return hkdf.derive(bytes(psk))


def salamander_encode(psk: bytes, payload: bytes) -> bytes:
    """Wrap payload in a Salamander envelope keyed by psk."""
    if not psk:
        raise SalamanderError("salamander: psk must not be empty")
    if not payload:
        raise SalamanderError("salamander: payload must not be empty")
    salt = os.urandom(SALAMANDER_SALT_LEN)
    nonce = os.urandom(_NONCE_LEN)
    ciphertext = AESGCM(_derive_key(psk, salt)).encrypt(nonce, bytes(payload), None)
    return salt + nonce + ciphertext


def salamander_decode(psk: bytes, packet: bytes) -> bytes:
    """Reverse salamander_encode(); raise SalamanderError on tampering or a wrong psk."""
    if not psk:
        raise SalamanderError("salamander: psk must not be empty")
    if len(packet) < SALAMANDER_OVERHEAD:
        raise SalamanderShortPacketError()
    packet = bytes(packet)
    salt = packet[:SALAMANDER_SALT_LEN]
    nonce = packet[SALAMANDER_SALT_LEN : SALAMANDER_SALT_LEN + _NONCE_LEN]
    ciphertext = packet[SALAMANDER_SALT_LEN + _NONCE_LEN :]
    try:
        return AESGCM(_derive_key(psk, salt)).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise SalamanderError("salamander: decrypt: message authentication failed") from exc