# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Vault error taxonomy.

Retry policy only ever absorbs lock contention; everything else reaches the
caller.  Messages must not contain salts, keys or plaintext.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from passkeeper.vault.schemas import ImportReport


class VaultError(Exception):
    """Base class for every error raised by the vault core."""


class CipherError(VaultError):
    """Malformed or unauthentic ciphertext / iv / salt combination."""


class KeyNotFoundError(VaultError):
    """No salt stored for the requested user."""

    def __init__(self, user_id: int):
        super().__init__(f"No key material stored for user {user_id}")
        self.user_id = user_id


class LockContentionError(VaultError):
    """Storage is held by another writer.  Transient, safe to retry."""


class ValidationError(VaultError):
    """Envelope or payload does not have the expected structure.  Fatal."""


class PartialImportError(VaultError):
    """Some records of an import failed.  Carries the full report."""

    def __init__(self, report: "ImportReport"):
        super().__init__(
            f"{len(report.errors)} record(s) failed to import "
            f"({report.imported_passwords} password(s) imported)"
        )
        self.report = report


class TransactionAbortError(VaultError):
    """A transaction was rolled back; the triggering error is __cause__."""

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message)
        self.phase = phase


class NestedTransactionError(VaultError):
    """execute_in_transaction() was re-entered from inside a transaction."""


class ImportInProgressError(VaultError):
    """Another import for the same user is still running."""


class AuthenticationError(VaultError):
    """Credentials were wrong or the confirmation was refused."""


class AuthRequestPendingError(AuthenticationError):
    """A confirmation request is already waiting for this user."""


class CredentialNotFoundError(VaultError):
    """No credential with this id belongs to the user."""

    def __init__(self, credential_id: int):
        super().__init__(f"Credential {credential_id} not found")
        self.credential_id = credential_id
