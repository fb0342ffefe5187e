# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Credential row primitives.  Payloads arrive already encrypted; nothing here
sees plaintext.  Functions work on the given session and never commit.
"""

from typing import Any, Mapping, Optional

from sqlalchemy import or_, select, update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession

from passkeeper.models import utcnow
from passkeeper.models.category import Category
from passkeeper.models.password import Credential

# column -> accepted Python type(s) for partial updates.  updated_at is not
# listed: it is refreshed on every update and cannot be set by callers.
UPDATABLE_COLUMNS: dict[str, tuple[type, ...]] = {
    "title": (str,),
    "username": (str, type(None)),
    "encrypted_password": (str,),
    "iv": (str,),
    "website": (str, type(None)),
    "notes": (str, type(None)),
    "category_id": (int, type(None)),
    "favorite": (bool,),
}


async def create(
    db: AsyncSession,
    *,
    user_id: int,
    title: str,
    encrypted_password: str,
    iv: str,
    username: Optional[str] = None,
    website: Optional[str] = None,
    notes: Optional[str] = None,
    category_id: Optional[int] = None,
    favorite: bool = False,
) -> Credential:
    credential = Credential(
        user_id=user_id,
        title=title,
        username=username,
        encrypted_password=encrypted_password,
        iv=iv,
        website=website,
        notes=notes,
        category_id=category_id,
        favorite=favorite,
    )
    db.add(credential)
    await db.flush()  # assigns credential.id
    return credential


async def find_by_user(db: AsyncSession, user_id: int) -> list[Credential]:
    """All credentials owned by *user_id*, most recently changed first."""
    result = await db.execute(
        select(Credential)
        .where(Credential.user_id == user_id)
        .order_by(Credential.updated_at.desc(), Credential.title)
    )
    return list(result.scalars().unique().all())


async def find_by_id(db: AsyncSession, credential_id: int) -> Optional[Credential]:
    return await db.get(Credential, credential_id)


async def search(db: AsyncSession, user_id: int, query: str) -> list[Credential]:
    """Case-insensitive substring match on title, username, website, notes, category name."""
    pattern = f"%{query}%"
    result = await db.execute(
        select(Credential)
        .outerjoin(Category, Credential.category_id == Category.id)
        .where(
            Credential.user_id == user_id,
            or_(
                Credential.title.ilike(pattern),
                Credential.username.ilike(pattern),
                Credential.website.ilike(pattern),
                Credential.notes.ilike(pattern),
                Category.name.ilike(pattern),
            ),
        )
        .order_by(Credential.updated_at.desc(), Credential.title)
    )
    return list(result.scalars().unique().all())


async def update(db: AsyncSession, credential_id: int, changes: Mapping[str, Any]) -> bool:
    """
    Partial update from a ``column -> value`` map.

    Unknown columns and wrongly typed values raise ``ValueError`` before any
    SQL is emitted.  ``updated_at`` is always refreshed.  Returns False when
    *changes* is empty or no row matched.
    """
    for column, value in changes.items():
        accepted = UPDATABLE_COLUMNS.get(column)
        if accepted is None:
            raise ValueError(f"Column {column!r} cannot be updated")
        # bool is an int subclass; keep category_id from accepting True/False
        if not isinstance(value, accepted) or (column == "category_id" and isinstance(value, bool)):
            raise ValueError(f"Invalid value type for column {column!r}")

    if not changes:
        return False

    result = await db.execute(
        sa_update(Credential)
        .where(Credential.id == credential_id)
        .values(**changes, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount > 0


async def delete(db: AsyncSession, credential: Credential) -> None:
    await db.delete(credential)
    await db.flush()
