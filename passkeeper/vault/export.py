# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Serialise a user's vault into a portable encrypted envelope.

Two layers of encryption
------------------------
* Each secret keeps its original per-record ciphertext and iv.
* The whole payload (titles, usernames, notes, category names …) is
  encrypted once more under the supplied salt with a fresh iv.

Ids, owner ids and timestamps are stripped: they are not portable between
databases.  Credentials point at their category by name/key instead.
System categories (owner 0) are not exported, but credentials filed under
them still carry the reference so import can re-match the built-in.
"""

import json
from datetime import datetime, timezone

from passkeeper.core.cipher import SecretCipher
from passkeeper.core.logger import logger
from passkeeper.core.transactions import TransactionalStore
from passkeeper.models.password import Credential
from passkeeper.repositories import categories as category_repo
from passkeeper.repositories import passwords as password_repo
from passkeeper.vault.schemas import (
    FORMAT_VERSION,
    CategoryRef,
    ExportedCategory,
    ExportedPassword,
    ExportEnvelope,
    ExportPayload,
)


def canonical_json(data: dict) -> str:
    """Stable encoding: sorted keys, no insignificant whitespace, raw UTF-8."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _exported_password(row: Credential) -> ExportedPassword:
    ref = None
    if row.category is not None:
        ref = CategoryRef(name=row.category.name, key=row.category.key)
    return ExportedPassword(
        title=row.title,
        username=row.username,
        password=row.encrypted_password,  # original ciphertext, untouched
        iv=row.iv,
        website=row.website,
        notes=row.notes,
        favorite=bool(row.favorite),
        category=ref,
    )


class VaultExportCodec:
    def __init__(self, store: TransactionalStore, cipher: SecretCipher):
        self.store = store
        self.cipher = cipher

    async def build_payload(self, user_id: int) -> ExportPayload:
        """Read the user's rows (retrying on lock contention) and strip them."""

        async def _read():
            async with self.store.session_factory() as db:
                categories = await category_repo.find_by_user(db, user_id, include_system=False)
                credentials = await password_repo.find_by_user(db, user_id)
                return categories, credentials

        categories, credentials = await self.store.execute_with_retry(_read)
        return ExportPayload(
            categories=[
                ExportedCategory(name=c.name, icon=c.icon, color=c.color, key=c.key)
                for c in categories
            ],
            passwords=[_exported_password(p) for p in credentials],
        )

    async def export_user_data(self, user_id: int, salt: str) -> str:
        """
        Return the envelope for *user_id* as a JSON string, the outer layer
        encrypted under *salt* (normally the user's own).
        """
        payload = await self.build_payload(user_id)
        serialized = canonical_json(payload.model_dump(mode="json"))
        encrypted, iv = self.cipher.encrypt(serialized, salt)

        envelope = ExportEnvelope(
            encrypted_payload=encrypted,
            iv=iv,
            format_version=FORMAT_VERSION,
            timestamp=datetime.now(timezone.utc),
        )
        logger.info(
            "Exported vault of user %d: %d categories, %d passwords",
            user_id, len(payload.categories), len(payload.passwords),
        )
        return json.dumps(envelope.model_dump(mode="json", by_alias=True))
