import pytest

from nabu.cipher import AES256_KEY_SIZE, CryptoError
from nabu.x25519 import (
    InvalidX25519KeyError,
    derive_session_key_x25519,
    generate_x25519_keypair,
    x25519_shared_secret,
)

PSK = b"secret"
BASEPOINT = bytes([9]) + bytes(31)

ALICE_PRIV = bytes.fromhex("77076d0a7318a57d3c16c17251b26645df4c2f87ebc0992ab177fba51db92c2a")
BOB_PRIV = bytes.fromhex("5dab087e624a8a4b79e17f8b83800ee66f3bb1292618b6fd1c2f8b27ff88e0eb")


def test_two_keypairs_differ():
    kp1 = generate_x25519_keypair()
    kp2 = generate_x25519_keypair()
    assert kp1.public != kp2.public
    assert len(kp1.public) == 32 and len(kp1.private) == 32


def test_private_key_is_clamped():
    kp = generate_x25519_keypair()
    assert kp.private[0] & 7 == 0
    assert kp.private[31] & 128 == 0
    assert kp.private[31] & 64 == 64


def test_public_key_matches_basepoint_multiplication():
    kp = generate_x25519_keypair()
    assert x25519_shared_secret(kp.private, BASEPOINT) == kp.public


def test_rfc7748_vectors():
    alice_pub = x25519_shared_secret(ALICE_PRIV, BASEPOINT)
    bob_pub = x25519_shared_secret(BOB_PRIV, BASEPOINT)
    assert alice_pub.hex() == "8520f0098930a754748b7ddcb43ef75a0dbf3a0d26381af4eba4a98eaa9b4e6a"
    shared = x25519_shared_secret(ALICE_PRIV, bob_pub)
    assert shared == x25519_shared_secret(BOB_PRIV, alice_pub)
    assert shared.hex() == "4a5d9d5ba4ce2de1728e3bf480350f25e07e21c947d19e3376f09b3c1e161742"


def test_shared_secret_symmetry():
    client = generate_x25519_keypair()
    relay = generate_x25519_keypair()
    assert x25519_shared_secret(client.private, relay.public) == x25519_shared_secret(
        relay.private, client.public
    )


def test_invalid_private_key_size():
    kp = generate_x25519_keypair()
    with pytest.raises(InvalidX25519KeyError):
        x25519_shared_secret(b"\x01" * 31, kp.public)


def test_invalid_public_key_size():
    kp = generate_x25519_keypair()
    with pytest.raises(InvalidX25519KeyError):
        x25519_shared_secret(kp.private, b"\x01" * 33)


def test_low_order_point_rejected():
    kp = generate_x25519_keypair()
    with pytest.raises(CryptoError):
        x25519_shared_secret(kp.private, bytes(32))


def test_derive_session_key_deterministic():
    client = generate_x25519_keypair()
    relay = generate_x25519_keypair()
    shared = x25519_shared_secret(client.private, relay.public)
    key1 = derive_session_key_x25519(PSK, shared, client.public, relay.public)
    key2 = derive_session_key_x25519(PSK, shared, client.public, relay.public)
    assert key1 == key2
    assert len(key1) == AES256_KEY_SIZE


def test_both_sides_agree():
    client = generate_x25519_keypair()
    relay = generate_x25519_keypair()
    by_client = x25519_shared_secret(client.private, relay.public)
    by_relay = x25519_shared_secret(relay.private, client.public)
    assert derive_session_key_x25519(
        PSK, by_client, client.public, relay.public
    ) == derive_session_key_x25519(PSK, by_relay, client.public, relay.public)


def test_forward_secrecy():
    def make_session():
        c = generate_x25519_keypair()
        r = generate_x25519_keypair()
        shared = x25519_shared_secret(c.private, r.public)
        key = derive_session_key_x25519(PSK, shared, c.public, r.public)
        return key, (shared, c.public, r.public)

    key1, inputs1 = make_session()
    key2, inputs2 = make_session()
    assert len(key1) == AES256_KEY_SIZE
    assert len(key2) == AES256_KEY_SIZE
    assert derive_session_key_x25519(PSK, *inputs1) == key1
    assert derive_session_key_x25519(PSK, *inputs2) == key2
    assert key1 != key2