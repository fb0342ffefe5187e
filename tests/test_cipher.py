"""
Tests for SecretCipher.

Covers:
- Round-trip for empty, ASCII and non-ASCII text
- Fresh iv on every call
- Wrong salt / wrong iv / tampered body raise CipherError
- Malformed base64 and bad lengths raise CipherError
"""

import base64

import pytest

from passkeeper.core.cipher import IV_LENGTH, SecretCipher
from passkeeper.core.errors import CipherError

SALT_A = base64.b64encode(b"A" * 16).decode()
SALT_B = base64.b64encode(b"B" * 16).decode()


@pytest.fixture
def cipher():
    return SecretCipher()


class TestRoundTrip:
    @pytest.mark.parametrize("plaintext", ["", "hunter2", "contraseña ñandú", "密码🔑", "x" * 1000])
    def test_decrypt_returns_plaintext(self, cipher, plaintext):
        ciphertext, iv = cipher.encrypt(plaintext, SALT_A)
        assert cipher.decrypt(ciphertext, SALT_A, iv) == plaintext

    def test_iv_is_fresh_per_call(self, cipher):
        c1, iv1 = cipher.encrypt("same", SALT_A)
        c2, iv2 = cipher.encrypt("same", SALT_A)
        assert iv1 != iv2
        assert c1 != c2
        assert len(base64.b64decode(iv1)) == IV_LENGTH

    def test_derive_key_is_deterministic_and_256_bits(self, cipher):
        assert cipher.derive_key(SALT_A) == cipher.derive_key(SALT_A)
        assert cipher.derive_key(SALT_A) != cipher.derive_key(SALT_B)
        assert len(cipher.derive_key(SALT_A)) == 32


class TestFailsLoudly:
    def test_wrong_salt(self, cipher):
        ciphertext, iv = cipher.encrypt("hunter2", SALT_A)
        with pytest.raises(CipherError):
            cipher.decrypt(ciphertext, SALT_B, iv)

    def test_wrong_iv(self, cipher):
        ciphertext, _ = cipher.encrypt("hunter2", SALT_A)
        _, other_iv = cipher.encrypt("other", SALT_A)
        with pytest.raises(CipherError):
            cipher.decrypt(ciphertext, SALT_A, other_iv)

    def test_tampered_body(self, cipher):
        ciphertext, iv = cipher.encrypt("hunter2", SALT_A)
        raw = bytearray(base64.b64decode(ciphertext))
        raw[0] ^= 0x01
        with pytest.raises(CipherError):
            cipher.decrypt(base64.b64encode(bytes(raw)).decode(), SALT_A, iv)

    def test_empty_plaintext_with_wrong_salt_is_not_empty_string(self, cipher):
        ciphertext, iv = cipher.encrypt("", SALT_A)
        with pytest.raises(CipherError):
            cipher.decrypt(ciphertext, SALT_B, iv)

    @pytest.mark.parametrize(
        "ciphertext, iv",
        [
            ("not base64!!", base64.b64encode(b"\0" * 16).decode()),
            (base64.b64encode(b"\0" * 64).decode(), "%%%"),
            (base64.b64encode(b"\0" * 64).decode(), base64.b64encode(b"\0" * 8).decode()),
            (base64.b64encode(b"\0" * 20).decode(), base64.b64encode(b"\0" * 16).decode()),
            (base64.b64encode(b"\0" * 50).decode(), base64.b64encode(b"\0" * 16).decode()),
        ],
    )
    def test_malformed_input(self, cipher, ciphertext, iv):
        with pytest.raises(CipherError):
            cipher.decrypt(ciphertext, SALT_A, iv)

    def test_empty_salt_rejected(self, cipher):
        with pytest.raises(CipherError):
            cipher.encrypt("x", "")

    def test_non_positive_iterations_rejected(self):
        with pytest.raises(ValueError):
            SecretCipher(iterations=0)
