# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Vault endpoints – credential items, export envelope, salt reveal, import.

Security invariants enforced by every handler
---------------------------------------------
* JWT is required on every endpoint (via ``get_current_user``).
* Items are scoped to the caller; another user's item id answers 404.
* The backup endpoints re-confirm the account password from the request
  body before any key material is touched.
* Backup failures, including storage lock contention during the password
  check, surface as a generic "Export failed" / "Import failed"; the
  detailed reason only goes to the log.  Per-record import problems are
  returned in the report.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.exc import OperationalError

from passkeeper.auth.router import get_user_service
from passkeeper.auth.service import UserService
from passkeeper.core.errors import (
    CredentialNotFoundError,
    ImportInProgressError,
    ValidationError,
    VaultError,
)
from passkeeper.core.logger import logger
from passkeeper.core.security import get_current_user
from passkeeper.models.user import User
from passkeeper.vault.credentials import CredentialService
from passkeeper.vault.schemas import (
    EXPORT_EXTENSION,
    ConfirmRequest,
    CredentialCreate,
    CredentialListResponse,
    CredentialResponse,
    CredentialUpdate,
    ImportReport,
    ImportRequest,
    SaltResponse,
    SecretResponse,
)
from passkeeper.vault.service import EXPORT_FILE_PREFIX, ExportImportService

router = APIRouter(prefix="/vault", tags=["vault"])


def get_vault_service(request: Request) -> ExportImportService:
    return request.app.state.vault_service


def get_credential_service(request: Request) -> CredentialService:
    return request.app.state.credential_service


async def _confirm_password(users: UserService, user: User, password: str) -> None:
    if not await users.verify_password_by_id(user.id, password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Password confirmation failed",
        )


# ---------------------------------------------------------------------------
# /vault/items  – credential CRUD
# ---------------------------------------------------------------------------


def _item_error(exc: VaultError) -> HTTPException:
    if isinstance(exc, CredentialNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Vault operation failed")


@router.get("/items", response_model=CredentialListResponse)
async def list_items(
    q: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    """The caller's items, optionally filtered by a search string."""
    rows = await credentials.search(current_user.id, q)
    return CredentialListResponse(items=[CredentialResponse.model_validate(r) for r in rows])


@router.post("/items", response_model=CredentialResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    body: CredentialCreate,
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    """Encrypt the supplied plaintext and store the item."""
    fields = body.model_dump(exclude={"plaintext_password"})
    try:
        return await credentials.create(current_user.id, fields, body.plaintext_password)
    except VaultError as exc:
        logger.error("Create item for user %d failed: %s", current_user.id, type(exc).__name__)
        raise _item_error(exc)


@router.get("/items/{item_id}", response_model=CredentialResponse)
async def get_item(
    item_id: int,
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    try:
        return await credentials.get(item_id, current_user.id)
    except VaultError as exc:
        raise _item_error(exc)


@router.get("/items/{item_id}/decrypt", response_model=SecretResponse)
async def decrypt_item(
    item_id: int,
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    """The only item endpoint that returns plaintext.  Never logged."""
    try:
        return SecretResponse(plaintext_password=await credentials.get_decrypted(item_id, current_user.id))
    except VaultError as exc:
        logger.error("Decrypt item %d for user %d failed: %s", item_id, current_user.id, type(exc).__name__)
        raise _item_error(exc)


@router.put("/items/{item_id}", response_model=CredentialResponse)
async def update_item(
    item_id: int,
    body: CredentialUpdate,
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    """
    Partial update.  Only fields present in the body change; a new
    ``plaintext_password`` is re-encrypted with a fresh iv.
    """
    changes = body.model_dump(exclude_unset=True)
    new_plaintext = changes.pop("plaintext_password", None)
    try:
        return await credentials.update(item_id, current_user.id, changes, new_plaintext)
    except VaultError as exc:
        logger.error("Update item %d for user %d failed: %s", item_id, current_user.id, type(exc).__name__)
        raise _item_error(exc)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: int,
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    try:
        await credentials.delete(item_id, current_user.id)
    except VaultError as exc:
        raise _item_error(exc)


# ---------------------------------------------------------------------------
# POST /vault/export
# ---------------------------------------------------------------------------


@router.post("/export")
async def export_vault(
    body: ConfirmRequest,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    vault: ExportImportService = Depends(get_vault_service),
):
    """Return the encrypted envelope as a downloadable ``.pkex`` file."""
    try:
        await _confirm_password(users, current_user, body.password)
        envelope = await vault.export_user_data(current_user.id)
    except (VaultError, OperationalError) as exc:
        logger.error("Export for user %d failed: %s", current_user.id, type(exc).__name__)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Export failed")

    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    filename = f"{EXPORT_FILE_PREFIX}{stamp}{EXPORT_EXTENSION}"
    return Response(
        content=envelope,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# POST /vault/salt
# ---------------------------------------------------------------------------


@router.post("/salt", response_model=SaltResponse)
async def export_salt(
    body: ConfirmRequest,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    vault: ExportImportService = Depends(get_vault_service),
):
    """
    Reveal the salt needed to open this user's exports.  It is never part
    of the envelope and should travel over a separate channel.
    """
    try:
        await _confirm_password(users, current_user, body.password)
        return SaltResponse(salt=await vault.export_salt(current_user.id))
    except (VaultError, OperationalError) as exc:
        logger.error("Salt export for user %d failed: %s", current_user.id, type(exc).__name__)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Export failed")


# ---------------------------------------------------------------------------
# POST /vault/import
# ---------------------------------------------------------------------------


@router.post("/import", response_model=ImportReport)
async def import_vault(
    body: ImportRequest,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    vault: ExportImportService = Depends(get_vault_service),
):
    """
    Import an envelope.  ``import_key`` is the exporting account's salt and
    may be omitted for one's own backups.  A partially successful import is
    still a 200; inspect ``success`` and ``errors``.
    """
    try:
        await _confirm_password(users, current_user, body.password)
        return await vault.import_user_data(current_user.id, body.envelope, body.import_key)
    except ImportInProgressError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Import already running")
    except (VaultError, OperationalError) as exc:
        logger.error("Import for user %d failed: %s", current_user.id, type(exc).__name__)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Import failed")
