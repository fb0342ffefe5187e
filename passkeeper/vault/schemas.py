# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Pydantic models for the backup envelope, the payload inside it, the import
report, and the vault HTTP endpoints.

Wire format (file content of a .pkex export):

    {"encrypted": "<b64>", "iv": "<b64>", "version": "1.0", "timestamp": "<ISO-8601>"}

Payload (plaintext of "encrypted"):

    {"categories": [{name, icon?, color?, key?}, ...],
     "passwords":  [{title, username?, password, iv, website?, notes?,
                     favorite, category: {name?, key?} | null}, ...]}

Database ids, owner ids and timestamps never appear in either.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from passkeeper.core.errors import PartialImportError

FORMAT_VERSION = "1.0"
EXPORT_EXTENSION = ".pkex"


# -- Envelope --------------------------------------------------------------


class ExportEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    encrypted_payload: str = Field(alias="encrypted", min_length=1)
    iv: str = Field(min_length=1)
    format_version: str = Field(alias="version")
    timestamp: datetime


# -- Payload ---------------------------------------------------------------


class CategoryRef(BaseModel):
    """Portable pointer to a category: by name and, when known, by key."""

    name: Optional[str] = None
    key: Optional[str] = None


class ExportedCategory(BaseModel):
    name: str = Field(min_length=1)
    icon: Optional[str] = None
    color: Optional[str] = None
    key: Optional[str] = None


class ExportedPassword(BaseModel):
    title: str = Field(min_length=1)
    username: Optional[str] = None
    # Secret still encrypted under the exporting user's salt and this iv
    password: str = Field(min_length=1)
    iv: str = Field(min_length=1)
    website: Optional[str] = None
    notes: Optional[str] = None
    favorite: bool = False
    category: Optional[CategoryRef] = None


class ExportPayload(BaseModel):
    categories: List[ExportedCategory]
    passwords: List[ExportedPassword]


class RawExportPayload(BaseModel):
    """
    Structural check used on import: both arrays must exist, their items are
    validated one by one so a bad record only fails itself.
    """

    categories: List[Any]
    passwords: List[Any]


# -- Import report ---------------------------------------------------------


class ImportReport(BaseModel):
    success: bool = False
    imported_categories: int = 0
    imported_passwords: int = 0
    errors: List[str] = Field(default_factory=list)

    def raise_for_errors(self) -> "ImportReport":
        """Raise ``PartialImportError`` if any record failed, else return self."""
        if self.errors:
            raise PartialImportError(self)
        return self


# -- HTTP requests ---------------------------------------------------------
# Every backup endpoint re-confirms the account password, mirroring the
# confirmation step the UI shows before export/import.


class ConfirmRequest(BaseModel):
    password: str


class ImportRequest(BaseModel):
    password: str
    envelope: str
    # Salt of the exporting account; omitted when importing one's own backup
    import_key: Optional[str] = None


class SaltResponse(BaseModel):
    salt: str


# -- Credential items --------------------------------------------------------


class CredentialCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    plaintext_password: str
    username: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    category_id: Optional[int] = None
    favorite: bool = False


class CredentialUpdate(BaseModel):
    """Partial update; only fields present in the request body change."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    plaintext_password: Optional[str] = None
    username: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None
    category_id: Optional[int] = None
    favorite: Optional[bool] = None


class CredentialResponse(BaseModel):
    """Metadata only.  The secret is revealed through /decrypt."""

    id: int
    title: str
    username: Optional[str]
    website: Optional[str]
    notes: Optional[str]
    category_id: Optional[int]
    favorite: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CredentialListResponse(BaseModel):
    items: List[CredentialResponse]


class SecretResponse(BaseModel):
    plaintext_password: str
