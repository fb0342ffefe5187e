# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Per-record symmetric encryption.  No other module touches raw crypto.

Scheme
------
key      = PBKDF2-HMAC-SHA256(password=salt, salt=salt, 5000 rounds, 32 bytes)
mac_key  = HKDF-Expand(key, info="passkeeper/record-mac")
iv       = 16 fresh random bytes per encrypt() call
body     = AES-256-CBC(key, iv, PKCS7(plaintext))
tag      = HMAC-SHA256(mac_key, iv || body)

ciphertext_b64 = base64( body || tag )      iv_b64 = base64( iv )

The tag is checked before any padding is looked at, so a wrong salt, a wrong
iv or a tampered body always raises CipherError instead of yielding
garbage plaintext.
"""

import base64
import binascii
import secrets

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from passkeeper.core.errors import CipherError

PBKDF2_ITERATIONS = 5000
KEY_LENGTH = 32   # AES-256
IV_LENGTH = 16    # one AES block
TAG_LENGTH = 32   # HMAC-SHA256
_MAC_INFO = b"passkeeper/record-mac"


class SecretCipher:
    """
    Encrypt / decrypt text payloads under a key derived from a user salt.

    Stateless apart from the iteration count; safe to share.
    """

    def __init__(self, iterations: int = PBKDF2_ITERATIONS):
        if iterations <= 0:
            raise ValueError("iterations must be positive")
        self.iterations = iterations

    # ------------------------------------------------------------------
    # Key derivation
    # ------------------------------------------------------------------

    def derive_key(self, salt: str) -> bytes:
        """
        Derive the 256-bit record key from *salt*.  Recomputed on every call,
        never cached or persisted.
        """
        if not salt:
            raise CipherError("Salt must not be empty")
        raw = salt.encode("utf-8")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=raw,
            iterations=self.iterations,
        )
        return kdf.derive(raw)

    @staticmethod
    def _mac_key(key: bytes) -> bytes:
        return HKDFExpand(algorithm=hashes.SHA256(), length=KEY_LENGTH, info=_MAC_INFO).derive(key)

    @staticmethod
    def _tag(mac_key: bytes, iv: bytes, body: bytes) -> hmac.HMAC:
        h = hmac.HMAC(mac_key, hashes.SHA256())
        h.update(iv)
        h.update(body)
        return h

    # ------------------------------------------------------------------
    # Encrypt / decrypt
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str, salt: str) -> tuple[str, str]:
        """
        Encrypt *plaintext* under the key derived from *salt*.

        Returns
        -------
        ciphertext_b64 : str   base64( AES-CBC body || 32-byte HMAC tag )
        iv_b64         : str   base64( 16-byte iv ), fresh for every call
        """
        key = self.derive_key(salt)
        iv = secrets.token_bytes(IV_LENGTH)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        body = encryptor.update(padded) + encryptor.finalize()
        tag = self._tag(self._mac_key(key), iv, body).finalize()

        return (
            base64.b64encode(body + tag).decode("ascii"),
            base64.b64encode(iv).decode("ascii"),
        )

    def decrypt(self, ciphertext: str, salt: str, iv: str) -> str:
        """
        Decrypt a value produced by :meth:`encrypt`.

        Raises ``CipherError`` for malformed input, a wrong salt or iv, or
        tampered data.  Never returns partial or empty output on failure.
        """
        try:
            raw = base64.b64decode(ciphertext, validate=True)
            iv_bytes = base64.b64decode(iv, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise CipherError("Ciphertext or iv is not valid base64") from exc

        if len(iv_bytes) != IV_LENGTH:
            raise CipherError("iv must decode to 16 bytes")
        body, tag = raw[:-TAG_LENGTH], raw[-TAG_LENGTH:]
        if len(raw) < TAG_LENGTH + IV_LENGTH or len(body) % IV_LENGTH:
            raise CipherError("Ciphertext has an invalid length")

        key = self.derive_key(salt)
        try:
            self._tag(self._mac_key(key), iv_bytes, body).verify(tag)
        except InvalidSignature as exc:
            raise CipherError("Authentication failed – wrong key, wrong iv or tampered data") from exc

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv_bytes)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise CipherError("Decrypted payload is corrupt") from exc
