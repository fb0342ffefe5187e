# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Category row primitives.  Every function works on the session it is given
and never opens or commits a transaction itself.
"""

from typing import Optional

from sqlalchemy import delete as sa_delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from passkeeper.database import SYSTEM_USER_ID
from passkeeper.models.category import Category


async def find_by_user(db: AsyncSession, user_id: int, include_system: bool = True) -> list[Category]:
    """The user's own categories, plus the system defaults unless excluded."""
    if include_system:
        clause = or_(Category.user_id == user_id, Category.user_id == SYSTEM_USER_ID)
    else:
        clause = Category.user_id == user_id
    result = await db.execute(select(Category).where(clause).order_by(Category.id))
    return list(result.scalars().all())


async def find_by_id(db: AsyncSession, category_id: int) -> Optional[Category]:
    return await db.get(Category, category_id)


async def create(
    db: AsyncSession,
    *,
    user_id: int,
    name: str,
    icon: Optional[str] = None,
    color: Optional[str] = None,
    key: Optional[str] = None,
) -> Category:
    if user_id == SYSTEM_USER_ID:
        raise ValueError("System categories are immutable")
    category = Category(user_id=user_id, name=name, icon=icon, color=color, key=key)
    db.add(category)
    await db.flush()  # assigns category.id
    return category


async def delete(db: AsyncSession, category: Category) -> None:
    if category.user_id == SYSTEM_USER_ID:
        raise ValueError("System categories are immutable")
    await db.delete(category)
    await db.flush()


async def delete_by_user(db: AsyncSession, user_id: int) -> int:
    """Remove every private category of *user_id*; returns the row count."""
    if user_id == SYSTEM_USER_ID:
        raise ValueError("System categories are immutable")
    result = await db.execute(sa_delete(Category).where(Category.user_id == user_id))
    return result.rowcount
