from concurrent.futures import ThreadPoolExecutor

import pytest

from nabu.cipher import (
    GCM_NONCE_SIZE,
    CiphertextTooShortError,
    CryptoError,
    DecryptionError,
    EmptyPlaintextError,
    InvalidKeyLengthError,
    NonceGenerator,
    decrypt,
    encrypt,
)

AES_KEY = bytes(range(32))


def test_encrypt_decrypt_round_trip():
    plain = b"nabu test payload"
    ciphertext = encrypt(plain, AES_KEY)
    assert decrypt(ciphertext, AES_KEY) == plain


def test_ciphertext_layout_length():
    plain = b"nabu test payload"
    ciphertext = encrypt(plain, AES_KEY)
    assert len(ciphertext) == GCM_NONCE_SIZE + len(plain) + 16


def test_encrypt_rejects_empty_plaintext():
    with pytest.raises(EmptyPlaintextError):
        encrypt(b"", AES_KEY)


def test_encrypt_rejects_short_key():
    with pytest.raises(InvalidKeyLengthError):
        encrypt(b"ok", b"short")


def test_decrypt_rejects_short_key():
    with pytest.raises(InvalidKeyLengthError):
        decrypt(b"x" * 40, b"short")


def test_decrypt_rejects_short_ciphertext():
    with pytest.raises(CiphertextTooShortError):
        decrypt(b"\x00" * GCM_NONCE_SIZE, AES_KEY)


def test_decrypt_tampering_fails():
    ciphertext = bytearray(encrypt(b"tamper me", AES_KEY))
    ciphertext[-1] ^= 0x01
    with pytest.raises(DecryptionError):
        decrypt(bytes(ciphertext), AES_KEY)


def test_decrypt_with_other_key_fails():
    ciphertext = encrypt(b"payload", AES_KEY)
    with pytest.raises(CryptoError):
        decrypt(ciphertext, bytes(range(1, 33)))


def test_encrypt_same_input_different_ciphertext():
    plain = b"same payload"
    c1 = encrypt(plain, AES_KEY)
    c2 = encrypt(plain, AES_KEY)
    assert c1 != c2
    assert c1[:GCM_NONCE_SIZE] != c2[:GCM_NONCE_SIZE]
    assert decrypt(c1, AES_KEY) == plain
    assert decrypt(c2, AES_KEY) == plain


def test_nonce_generator_uniqueness():
    gen = NonceGenerator()
    nonces = [gen.generate() for _ in range(500)]
    assert all(len(n) == GCM_NONCE_SIZE for n in nonces)
    assert len(set(nonces)) == 500


def test_nonce_generator_concurrent():
    gen = NonceGenerator()
    with ThreadPoolExecutor(max_workers=32) as pool:
        nonces = list(pool.map(lambda _: gen.generate(), range(256)))
    assert len(nonces) == 256
    assert {len(n) for n in nonces} == {GCM_NONCE_SIZE}
    assert len(set(nonces)) == 256