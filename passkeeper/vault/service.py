# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Entry point used by the UI collaborator for backups.

* ``export_salt``       – reveal the user's salt, to be handed over separately
* ``export_user_data``  – envelope as a JSON string
* ``export_to_file``    – same, written to ``passkeeper_export_<ts>.pkex``
* ``import_user_data``  – run the import pipeline with the own or a foreign salt
* ``import_from_file``  – same, reading an envelope file

When an ``AuthPromptBroker`` is attached every operation first waits for the
user to confirm with their password.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from passkeeper.auth.prompt import AuthPromptBroker
from passkeeper.core.cipher import SecretCipher
from passkeeper.core.config import settings
from passkeeper.core.errors import AuthenticationError, ImportInProgressError, ValidationError
from passkeeper.core.keys import KeyMaterialService
from passkeeper.core.logger import logger
from passkeeper.core.transactions import TransactionalStore
from passkeeper.vault.export import VaultExportCodec
from passkeeper.vault.importer import VaultImportPipeline
from passkeeper.vault.schemas import EXPORT_EXTENSION, ImportReport

EXPORT_FILE_PREFIX = "passkeeper_export_"


class ExportImportService:
    def __init__(
        self,
        store: TransactionalStore,
        keys: KeyMaterialService,
        cipher: Optional[SecretCipher] = None,
        prompt: Optional[AuthPromptBroker] = None,
        export_dir: Union[str, Path, None] = None,
    ):
        self.store = store
        self.keys = keys
        self.cipher = cipher or SecretCipher()
        self.codec = VaultExportCodec(store, self.cipher)
        self.prompt = prompt
        self.export_dir = Path(export_dir or settings.export_dir)
        self._import_locks: dict[int, asyncio.Lock] = {}

    async def _confirm(self, user_id: int, reason: str) -> None:
        if self.prompt is None:
            return
        if not await self.prompt.request(user_id, reason):
            raise AuthenticationError(f"{reason.capitalize()} was not confirmed")

    # -- Export --------------------------------------------------------------

    async def export_salt(self, user_id: int) -> str:
        await self._confirm(user_id, "salt export")
        salt = await self.keys.get_salt(user_id)
        logger.info("Salt of user %d revealed for export", user_id)
        return salt

    async def export_user_data(self, user_id: int) -> str:
        await self._confirm(user_id, "export")
        salt = await self.keys.get_salt(user_id)
        return await self.codec.export_user_data(user_id, salt)

    async def export_to_file(self, user_id: int, directory: Union[str, Path, None] = None) -> Path:
        """Write the envelope to a new ``.pkex`` file and return its path."""
        envelope = await self.export_user_data(user_id)

        target_dir = Path(directory) if directory is not None else self.export_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = target_dir / f"{EXPORT_FILE_PREFIX}{stamp}{EXPORT_EXTENSION}"

        await asyncio.to_thread(path.write_text, envelope, encoding="utf-8")
        logger.info("Export of user %d written to %s", user_id, path)
        return path

    # -- Import --------------------------------------------------------------

    async def import_user_data(
        self,
        user_id: int,
        envelope: str,
        import_salt: Optional[str] = None,
    ) -> ImportReport:
        """
        Import *envelope* into *user_id*'s vault.  *import_salt* is the salt
        of the exporting account; omit it (None) to use the user's own.  An
        empty key is not a default and fails to decrypt with ``CipherError``.

        Only one import per user may run at a time; a concurrent call raises
        ``ImportInProgressError`` immediately.
        """
        lock = self._import_locks.setdefault(user_id, asyncio.Lock())
        if lock.locked():
            raise ImportInProgressError(f"An import for user {user_id} is already running")

        try:
            async with lock:
                await self._confirm(user_id, "import")
                destination_salt = await self.keys.get_salt(user_id)
                pipeline = VaultImportPipeline(self.store, self.cipher)
                return await pipeline.run(
                    user_id,
                    envelope,
                    import_salt if import_salt is not None else destination_salt,
                    destination_salt,
                )
        finally:
            # Nobody waits on these locks, so an idle one is never needed again
            if not lock.locked() and self._import_locks.get(user_id) is lock:
                del self._import_locks[user_id]

    async def import_from_file(
        self,
        user_id: int,
        path: Union[str, Path],
        import_salt: Optional[str] = None,
    ) -> ImportReport:
        path = Path(path)
        try:
            envelope = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError(f"{path.name} is not a text export file") from exc
        return await self.import_user_data(user_id, envelope, import_salt)
