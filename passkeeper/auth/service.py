# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Account lifecycle: registration, login checks, password change, deletion.

Security notes
--------------
* ``authenticate`` returns None both for an unknown username and for a
  wrong password so callers cannot tell the two apart.
* A user without a stored salt can never log in; the row is unusable
  without it.
* A password change rotates the salt.  The new salt is staged in the
  secure store before the database transaction and promoted after commit,
  so a crash in between never loses the key the rows are encrypted under.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from passkeeper.core.cipher import SecretCipher
from passkeeper.core.errors import AuthenticationError, KeyNotFoundError, ValidationError
from passkeeper.core.keys import KeyMaterialService
from passkeeper.core.logger import logger
from passkeeper.core.transactions import TransactionalStore
from passkeeper.models.user import User
from passkeeper.repositories import categories as category_repo
from passkeeper.repositories import passwords as password_repo
from passkeeper.repositories import users as user_repo


class UserService:
    def __init__(
        self,
        store: TransactionalStore,
        keys: KeyMaterialService,
        cipher: Optional[SecretCipher] = None,
    ):
        self.store = store
        self.keys = keys
        self.cipher = cipher or SecretCipher()

    async def register(self, username: str, password: str) -> User:
        """
        Create a user with a fresh salt.  The salt goes to the secure store
        inside the same transaction, so a failed write leaves no row behind.
        """
        username = username.strip()
        if not username or not password:
            raise ValidationError("Username and password are required")

        salt = self.keys.generate_salt()
        password_hash = self.keys.hash_password(password, salt)

        async def ops(db: AsyncSession) -> User:
            if await user_repo.find_by_username(db, username) is not None:
                raise ValidationError("Username is already taken")
            user = await user_repo.create(db, username=username, password_hash=password_hash)
            await self.keys.store_salt(user.id, salt)
            return user

        user = await self.store.execute_in_transaction(ops)
        logger.info("Registered user %d", user.id)
        return user

    async def _check(self, user: Optional[User], password: str) -> bool:
        if user is None:
            return False
        try:
            salt = await self.keys.get_salt(user.id)
        except KeyNotFoundError:
            logger.warning("User %d has no stored salt", user.id)
            return False
        return self.keys.check_password(password, user.password_hash, salt)

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        async def _read():
            async with self.store.session_factory() as db:
                return await user_repo.find_by_username(db, username)

        user = await self.store.execute_with_retry(_read)
        return user if await self._check(user, password) else None

    async def verify_password_by_id(self, user_id: int, password: str) -> bool:
        async def _read():
            async with self.store.session_factory() as db:
                return await user_repo.find_by_id(db, user_id)

        return await self._check(await self.store.execute_with_retry(_read), password)

    async def change_password(self, user_id: int, old_password: str, new_password: str) -> int:
        """
        Replace the login password and rotate the salt.

        Every credential is decrypted under the old salt and re-encrypted
        under the new one, with a fresh iv, in the same transaction that
        stores the new login hash.  Returns the number of re-encrypted rows.
        """
        if not new_password:
            raise ValidationError("The new password must not be empty")
        if not await self.verify_password_by_id(user_id, old_password):
            raise AuthenticationError("Current password is incorrect")

        old_salt = await self.keys.get_salt(user_id)
        new_salt = self.keys.generate_salt()
        password_hash = self.keys.hash_password(new_password, new_salt)

        async def ops(db: AsyncSession) -> int:
            user = await user_repo.find_by_id(db, user_id)
            if user is None:
                raise AuthenticationError(f"User {user_id} no longer exists")
            rows = await password_repo.find_by_user(db, user_id)
            for row in rows:
                secret = self.cipher.decrypt(row.encrypted_password, old_salt, row.iv)
                encrypted, iv = self.cipher.encrypt(secret, new_salt)
                await password_repo.update(db, row.id, {"encrypted_password": encrypted, "iv": iv})
            await user_repo.update_password_hash(db, user, password_hash)
            return len(rows)

        await self.keys.stage_salt(user_id, new_salt)
        try:
            count = await self.store.execute_in_transaction(ops)
        except Exception:
            await self.keys.discard_staged_salt(user_id)
            raise
        await self.keys.promote_staged_salt(user_id)
        logger.info("Password of user %d changed, %d credential(s) re-encrypted", user_id, count)
        return count

    async def delete_user(self, user_id: int) -> bool:
        """Remove the user, their vault rows and their salt."""

        async def ops(db: AsyncSession) -> bool:
            user = await user_repo.find_by_id(db, user_id)
            if user is None:
                return False
            await category_repo.delete_by_user(db, user_id)
            await user_repo.delete(db, user)
            return True

        deleted = await self.store.execute_in_transaction(ops)
        if deleted:
            await self.keys.delete_salt(user_id)
            logger.info("Deleted user %d", user_id)
        return deleted
