# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Day-to-day credential operations: create, reveal, edit, search, delete.

Security notes
--------------
* Plaintext only exists in memory for the duration of a call.  It is
  encrypted under the owner's salt with a fresh iv before it reaches the
  repository and is never logged.
* Every lookup is scoped to the calling user; someone else's credential id
  behaves exactly like a missing one.
* Callers cannot write ``encrypted_password`` / ``iv`` directly; a new
  secret goes through ``new_plaintext`` and is re-encrypted here.
"""

from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from passkeeper.core.cipher import SecretCipher
from passkeeper.core.errors import CredentialNotFoundError, ValidationError
from passkeeper.core.keys import KeyMaterialService
from passkeeper.core.logger import logger
from passkeeper.core.transactions import TransactionalStore
from passkeeper.database import SYSTEM_USER_ID
from passkeeper.models.password import Credential
from passkeeper.repositories import categories as category_repo
from passkeeper.repositories import passwords as password_repo

# Fields a caller may set on create / update
EDITABLE_FIELDS = frozenset({"title", "username", "website", "notes", "category_id", "favorite"})


async def _own_credential(db: AsyncSession, credential_id: int, user_id: int) -> Credential:
    credential = await password_repo.find_by_id(db, credential_id)
    if credential is None or credential.user_id != user_id:
        raise CredentialNotFoundError(credential_id)
    return credential


async def _check_category(db: AsyncSession, user_id: int, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    if not isinstance(category_id, int) or isinstance(category_id, bool):
        raise ValidationError("Invalid value type for column 'category_id'")
    category = await category_repo.find_by_id(db, category_id)
    if category is None or category.user_id not in (user_id, SYSTEM_USER_ID):
        raise ValidationError(f"Unknown category {category_id}")


def _check_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be set: {', '.join(sorted(unknown))}")


class CredentialService:
    def __init__(
        self,
        store: TransactionalStore,
        keys: KeyMaterialService,
        cipher: Optional[SecretCipher] = None,
    ):
        self.store = store
        self.keys = keys
        self.cipher = cipher or SecretCipher()

    async def create(self, user_id: int, fields: Mapping[str, Any], plaintext: str) -> Credential:
        """Encrypt *plaintext* under the user's salt and store a new row."""
        _check_fields(fields)
        if not fields.get("title"):
            raise ValidationError("A title is required")
        salt = await self.keys.get_salt(user_id)

        async def ops(db: AsyncSession) -> Credential:
            await _check_category(db, user_id, fields.get("category_id"))
            encrypted, iv = self.cipher.encrypt(plaintext, salt)
            return await password_repo.create(
                db, user_id=user_id, encrypted_password=encrypted, iv=iv, **fields
            )

        credential = await self.store.execute_in_transaction(ops)
        logger.info("Credential %d created for user %d", credential.id, user_id)
        return credential

    async def get(self, credential_id: int, user_id: int) -> Credential:
        async def _read():
            async with self.store.session_factory() as db:
                return await _own_credential(db, credential_id, user_id)

        return await self.store.execute_with_retry(_read)

    async def get_decrypted(self, credential_id: int, user_id: int) -> str:
        """Reveal the secret of one of *user_id*'s credentials."""
        credential = await self.get(credential_id, user_id)
        salt = await self.keys.get_salt(user_id)
        return self.cipher.decrypt(credential.encrypted_password, salt, credential.iv)

    async def search(self, user_id: int, query: Optional[str] = None) -> list[Credential]:
        """All of the user's credentials, or those matching *query*."""

        async def _read():
            async with self.store.session_factory() as db:
                if query:
                    return await password_repo.search(db, user_id, query)
                return await password_repo.find_by_user(db, user_id)

        return await self.store.execute_with_retry(_read)

    async def update(
        self,
        credential_id: int,
        user_id: int,
        changes: Mapping[str, Any],
        new_plaintext: Optional[str] = None,
    ) -> Credential:
        """
        Apply a partial update.  With *new_plaintext* the secret is
        re-encrypted under a fresh iv in the same transaction.
        """
        _check_fields(changes)
        if "title" in changes and not changes["title"]:
            raise ValidationError("A title is required")
        salt = await self.keys.get_salt(user_id) if new_plaintext is not None else None

        async def ops(db: AsyncSession) -> Credential:
            credential = await _own_credential(db, credential_id, user_id)
            if "category_id" in changes:
                await _check_category(db, user_id, changes["category_id"])

            values = dict(changes)
            if new_plaintext is not None:
                values["encrypted_password"], values["iv"] = self.cipher.encrypt(new_plaintext, salt)
            try:
                await password_repo.update(db, credential_id, values)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            await db.refresh(credential)
            return credential

        credential = await self.store.execute_in_transaction(ops)
        logger.info("Credential %d of user %d updated", credential_id, user_id)
        return credential

    async def delete(self, credential_id: int, user_id: int) -> None:
        async def ops(db: AsyncSession) -> None:
            await password_repo.delete(db, await _own_credential(db, credential_id, user_id))

        await self.store.execute_in_transaction(ops)
        logger.info("Credential %d of user %d deleted", credential_id, user_id)
