# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""User row primitives.  Work on the given session; never commit."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from passkeeper.models.user import User


async def create(db: AsyncSession, *, username: str, password_hash: str) -> User:
    user = User(username=username, password_hash=password_hash, biometric=False)
    db.add(user)
    await db.flush()  # assigns user.id
    return user


async def find_by_username(db: AsyncSession, username: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalars().first()


async def find_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    return await db.get(User, user_id)


async def update_password_hash(db: AsyncSession, user: User, password_hash: str) -> None:
    user.password_hash = password_hash
    await db.flush()


async def delete(db: AsyncSession, user: User) -> None:
    # passwords rows go with it (ON DELETE CASCADE); private categories are
    # keyed by user_id without a foreign key and are removed explicitly
    await db.delete(user)
    await db.flush()
