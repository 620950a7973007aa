"""Ephemeral X25519 key exchange and session key derivation."""

from __future__ import annotations

import os
from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from nabu.cipher import AES256_KEY_SIZE, CryptoError
from nabu.session import derive_session_key

X25519_PUBLIC_KEY_SIZE = 32
X25519_PRIVATE_KEY_SIZE = 32


class InvalidX25519KeyError(CryptoError, ValueError):
    """Raised when an X25519 key has the wrong size."""


@dataclass(frozen=True)
class X25519KeyPair:
    """An ephemeral X25519 key pair as raw 32-byte strings."""

    private: bytes
    public: bytes


def _clamp(scalar: bytes) -> bytes:
    clamped = bytearray(scalar)
    clamped[0] &= 248
    clamped[31] &= 127
    clamped[31] |= 64
    return bytes(clamped)


def generate_x25519_keypair() -> X25519KeyPair:
    """Generate a fresh clamped X25519 key pair."""
    private = _clamp(os.urandom(X25519_PRIVATE_KEY_SIZE))
    public = (
        X25519PrivateKey.from_private_bytes(private)
        .public_key()
        .public_bytes(Encoding.Raw, PublicFormat.Raw)
    )
    return X25519KeyPair(private=private, public=public)


def x25519_shared_secret(private_key: bytes, peer_public_key: bytes) -> bytes:
    """Compute the Diffie-Hellman shared secret of a private and a peer public key."""
    if len(private_key) != X25519_PRIVATE_KEY_SIZE:
        raise InvalidX25519KeyError("invalid X25519 key size: private key")
    if len(peer_public_key) != X25519_PUBLIC_KEY_SIZE:
        raise InvalidX25519KeyError("invalid X25519 key size: peer public key")
    try:
        priv = X25519PrivateKey.from_private_bytes(bytes(private_key))
        peer = X25519PublicKey.from_public_bytes(bytes(peer_public_key))
        return priv.exchange(peer)
    except ValueError as exc:
        raise CryptoError(f"X25519 DH failed: {exc}") from exc


def derive_session_key_x25519(
    psk: bytes, shared_secret: bytes, client_pub: bytes, relay_pub: bytes
) -> bytes:
    """Derive a 32-byte key: HKDF-SHA256(psk || shared, client_pub || relay_pub)."""
    ikm = bytes(psk) + bytes(shared_secret)
    salt = bytes(client_pub) + bytes(relay_pub)
    return derive_session_key(ikm, salt, AES256_KEY_SIZE)