# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Key material: salts and login hashes.

Responsibilities
----------------
1. Salt generation                    (16 CSPRNG bytes, base64)
2. Salt storage / retrieval           (SecureStore, key "user_salt_<id>")
3. Login hash creation / comparison   (SHA-256 legacy, passlib pbkdf2_sha256)

Known weakness
--------------
The default login hash is a single SHA-256 pass over ``password + salt``
while record keys go through 5000 PBKDF2 rounds.  The asymmetry is kept for
compatibility with existing user rows.  Setting ``AUTH_HASH_SCHEME`` to
``pbkdf2_sha256`` makes *new* hashes use passlib's PBKDF2; both formats stay
verifiable so accounts can be migrated on their next password change.
"""

import base64
import hashlib
import hmac
import secrets

from passlib.hash import pbkdf2_sha256 as _pbkdf2

from passkeeper.core.config import settings
from passkeeper.core.errors import KeyNotFoundError
from passkeeper.core.secure_store import SecureStore

SALT_LENGTH = 16
USER_SALT_KEY_PREFIX = "user_salt_"
_PBKDF2_PREFIX = "$pbkdf2-sha256$"
_PBKDF2_ROUNDS = 600_000


def salt_key(user_id: int) -> str:
    """Secure-store key under which *user_id*'s salt lives."""
    return f"{USER_SALT_KEY_PREFIX}{user_id}"


def staged_salt_key(user_id: int) -> str:
    """Key holding a replacement salt while a password change is in flight."""
    return f"{salt_key(user_id)}.pending"


class KeyMaterialService:
    def __init__(self, secure_store: SecureStore, hash_scheme: str | None = None):
        self.secure_store = secure_store
        self.hash_scheme = hash_scheme or settings.auth_hash_scheme

    # -- Salts ---------------------------------------------------------------

    @staticmethod
    def generate_salt() -> str:
        """16 bytes from the OS CSPRNG, base64-encoded."""
        return base64.b64encode(secrets.token_bytes(SALT_LENGTH)).decode("ascii")

    async def store_salt(self, user_id: int, salt: str) -> None:
        await self.secure_store.set(salt_key(user_id), salt)

    async def get_salt(self, user_id: int) -> str:
        """Return the stored salt or raise ``KeyNotFoundError``."""
        salt = await self.secure_store.get(salt_key(user_id))
        if not salt:
            raise KeyNotFoundError(user_id)
        return salt

    async def delete_salt(self, user_id: int) -> None:
        await self.secure_store.delete(salt_key(user_id))

    async def stage_salt(self, user_id: int, salt: str) -> None:
        """
        Park *salt* next to the current one.  If the process dies between the
        database commit and :meth:`promote_staged_salt` the new salt is still
        recoverable from the secure store.
        """
        await self.secure_store.set(staged_salt_key(user_id), salt)

    async def promote_staged_salt(self, user_id: int) -> None:
        salt = await self.secure_store.get(staged_salt_key(user_id))
        if not salt:
            raise KeyNotFoundError(user_id)
        await self.secure_store.set(salt_key(user_id), salt)
        await self.secure_store.delete(staged_salt_key(user_id))

    async def discard_staged_salt(self, user_id: int) -> None:
        await self.secure_store.delete(staged_salt_key(user_id))

    # -- Login hashes --------------------------------------------------------

    @staticmethod
    def _sha256_hex(password: str, salt: str) -> str:
        return hashlib.sha256((password + salt).encode("utf-8")).hexdigest()

    def hash_password(self, password: str, salt: str) -> str:
        """
        Hash *password* for storage in ``users.password``.

        With the default scheme this is deterministic: hex SHA-256 of
        ``password + salt``.
        """
        if self.hash_scheme == "pbkdf2_sha256":
            return _pbkdf2.using(rounds=_PBKDF2_ROUNDS).hash(password + salt)
        return self._sha256_hex(password, salt)

    def check_password(self, password: str, stored_hash: str, salt: str) -> bool:
        """Constant-time comparison against either hash format."""
        if stored_hash.startswith(_PBKDF2_PREFIX):
            return _pbkdf2.verify(password + salt, stored_hash)
        candidate = self._sha256_hex(password, salt)
        return hmac.compare_digest(candidate.encode("ascii"), stored_hash.encode("utf-8"))
