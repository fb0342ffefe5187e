# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Import an export envelope into a (possibly different) user's vault.

    Idle → EnvelopeParsed → CategoriesImported → CredentialsImported → Completed
      └──────────┴─────────────────┴──────────────────┴──→ Failed

1. Parse      – decode the envelope, decrypt it with the *import key*, check
                that both arrays exist.  Any problem here is fatal and
                happens before a transaction is opened.
2. Categories – one transaction.  Each exported category is matched against
                the destination user's categories and the system defaults,
                or created.  Failures are recorded per item.
3. Passwords  – one transaction, after (2) commits.  Each secret is
                decrypted with the import key and its own iv, re-encrypted
                under the destination salt with a fresh iv, and inserted.
                Failures are recorded per item.

Each item is written inside its own SAVEPOINT, so a record the database
rejects does not poison the rest of its phase.  Lock contention is never
recorded as an item failure: it aborts the phase transaction, which the
TransactionalStore retries as a whole.
"""

import enum
import json
from typing import Any, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from passkeeper.core.cipher import SecretCipher
from passkeeper.core.errors import (
    CipherError,
    NestedTransactionError,
    TransactionAbortError,
    ValidationError,
)
from passkeeper.core.logger import logger
from passkeeper.core.transactions import TransactionalStore, is_lock_error
from passkeeper.database import SYSTEM_USER_ID
from passkeeper.models.category import Category
from passkeeper.repositories import categories as category_repo
from passkeeper.repositories import passwords as password_repo
from passkeeper.vault.schemas import (
    FORMAT_VERSION,
    ExportedCategory,
    ExportedPassword,
    ExportEnvelope,
    ImportReport,
    RawExportPayload,
)


class ImportState(str, enum.Enum):
    IDLE = "idle"
    ENVELOPE_PARSED = "envelope_parsed"
    CATEGORIES_IMPORTED = "categories_imported"
    CREDENTIALS_IMPORTED = "credentials_imported"
    COMPLETED = "completed"
    FAILED = "failed"


def match_category(
    candidates: Sequence[Category],
    user_id: int,
    name: Optional[str],
    key: Optional[str] = None,
) -> Optional[Category]:
    """
    Find the category an imported reference points at.

    Order: user's own by key, system by key, user's own by name, system by
    name.  Keys are compared only when both sides have one.
    """
    owned = [c for c in candidates if c.user_id == user_id]
    system = [c for c in candidates if c.user_id == SYSTEM_USER_ID]
    if key:
        for pool in (owned, system):
            for c in pool:
                if c.key == key:
                    return c
    if name:
        for pool in (owned, system):
            for c in pool:
                if c.name == name:
                    return c
    return None


def _label(raw: Any, field: str, index: int) -> str:
    if isinstance(raw, dict) and isinstance(raw.get(field), str) and raw[field]:
        return repr(raw[field])
    return f"#{index + 1}"


def _reason(exc: Exception) -> str:
    # Messages must not echo record content (pydantic and SQL errors do)
    if isinstance(exc, CipherError):
        return str(exc)
    if isinstance(exc, PydanticValidationError):
        return "invalid record structure"
    return f"storage error ({type(exc).__name__})"


class VaultImportPipeline:
    """
    Single-use: one instance per import attempt.  ``state`` and ``report``
    stay readable after :meth:`run` returns or raises.
    """

    def __init__(self, store: TransactionalStore, cipher: SecretCipher):
        self.store = store
        self.cipher = cipher
        self.state = ImportState.IDLE
        self.report = ImportReport()

    # ------------------------------------------------------------------
    # Phase 1 – parse
    # ------------------------------------------------------------------

    def parse(self, envelope: str, import_salt: str) -> RawExportPayload:
        try:
            parsed = ExportEnvelope.model_validate(json.loads(envelope))
        except (json.JSONDecodeError, TypeError, PydanticValidationError) as exc:
            raise ValidationError("File is not a valid export envelope") from exc

        if parsed.format_version != FORMAT_VERSION:
            raise ValidationError(f"Unsupported export format version {parsed.format_version!r}")

        # CipherError propagates: a wrong import key is fatal, not per-item
        plaintext = self.cipher.decrypt(parsed.encrypted_payload, import_salt, parsed.iv)

        try:
            return RawExportPayload.model_validate(json.loads(plaintext))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            raise ValidationError("Decrypted payload does not contain categories and passwords") from exc

    # ------------------------------------------------------------------
    # Phase 2 – categories
    # ------------------------------------------------------------------

    async def _import_categories(self, user_id: int, items: list) -> tuple[int, list[str]]:
        async def ops(db: AsyncSession) -> tuple[int, list[str]]:
            # Fresh per attempt: a retried transaction starts from scratch
            imported, errors = 0, []
            candidates = await category_repo.find_by_user(db, user_id)
            for index, raw in enumerate(items):
                try:
                    item = ExportedCategory.model_validate(raw)
                    if match_category(candidates, user_id, item.name, item.key) is None:
                        async with db.begin_nested():
                            created = await category_repo.create(
                                db,
                                user_id=user_id,
                                name=item.name,
                                icon=item.icon,
                                color=item.color,
                                key=item.key,
                            )
                        candidates.append(created)
                    imported += 1
                except Exception as exc:
                    if is_lock_error(exc):
                        raise
                    label = _label(raw, "name", index)
                    logger.warning("Category %s not imported: %s", label, type(exc).__name__)
                    errors.append(f"Category {label}: {_reason(exc)}")
            return imported, errors

        return await self.store.execute_in_transaction(ops)

    # ------------------------------------------------------------------
    # Phase 3 – passwords
    # ------------------------------------------------------------------

    async def _import_passwords(
        self, user_id: int, items: list, import_salt: str, destination_salt: str
    ) -> tuple[int, list[str]]:
        async def ops(db: AsyncSession) -> tuple[int, list[str]]:
            imported, errors = 0, []
            candidates = await category_repo.find_by_user(db, user_id)
            for index, raw in enumerate(items):
                label = _label(raw, "title", index)
                try:
                    item = ExportedPassword.model_validate(raw)
                    secret = self.cipher.decrypt(item.password, import_salt, item.iv)
                    encrypted, iv = self.cipher.encrypt(secret, destination_salt)

                    category = None
                    if item.category is not None:
                        category = match_category(
                            candidates, user_id, item.category.name, item.category.key
                        )

                    async with db.begin_nested():
                        await password_repo.create(
                            db,
                            user_id=user_id,
                            title=item.title,
                            username=item.username,
                            encrypted_password=encrypted,
                            iv=iv,
                            website=item.website,
                            notes=item.notes,
                            category_id=category.id if category is not None else None,
                            favorite=item.favorite,
                        )
                    imported += 1
                except Exception as exc:
                    if is_lock_error(exc):
                        raise
                    logger.warning("Password %s not imported: %s", label, type(exc).__name__)
                    errors.append(f"Password {label}: {_reason(exc)}")
            return imported, errors

        return await self.store.execute_in_transaction(ops)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def _run_phase(self, phase: str, coro) -> tuple[int, list[str]]:
        try:
            return await coro
        except NestedTransactionError:
            self.state = ImportState.FAILED
            raise
        except Exception as exc:
            self.state = ImportState.FAILED
            logger.error("Import %s phase rolled back (%s)", phase, type(exc).__name__)
            raise TransactionAbortError(f"Import {phase} phase was rolled back", phase=phase) from exc

    async def run(
        self,
        user_id: int,
        envelope: str,
        import_salt: str,
        destination_salt: str,
    ) -> ImportReport:
        """
        Import *envelope* for *user_id*.

        Raises ``ValidationError`` / ``CipherError`` when the envelope cannot
        be opened (nothing written), ``TransactionAbortError`` when a phase
        transaction rolls back.  Per-record problems end up in the returned
        report instead.
        """
        if self.state is not ImportState.IDLE:
            raise RuntimeError("VaultImportPipeline instances are single-use")

        try:
            payload = self.parse(envelope, import_salt)
        except Exception:
            self.state = ImportState.FAILED
            raise
        self.state = ImportState.ENVELOPE_PARSED

        count, errors = await self._run_phase(
            "categories", self._import_categories(user_id, payload.categories)
        )
        self.report.imported_categories = count
        self.report.errors.extend(errors)
        self.state = ImportState.CATEGORIES_IMPORTED

        count, errors = await self._run_phase(
            "passwords",
            self._import_passwords(user_id, payload.passwords, import_salt, destination_salt),
        )
        self.report.imported_passwords = count
        self.report.errors.extend(errors)
        self.state = ImportState.CREDENTIALS_IMPORTED

        self.report.success = not self.report.errors
        self.state = ImportState.COMPLETED
        logger.info(
            "Import for user %d finished: %d categories, %d passwords, %d error(s)",
            user_id,
            self.report.imported_categories,
            self.report.imported_passwords,
            len(self.report.errors),
        )
        return self.report
