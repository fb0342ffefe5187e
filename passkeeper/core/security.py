# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Access tokens and auth guards for the local HTTP API.

Vault cryptography is not here: record encryption lives in
``passkeeper.core.cipher`` and key material in ``passkeeper.core.keys``.

Responsibilities
----------------
1. JWT creation / decoding                  (PyJWT / HS256)
2. FastAPI dependency guard                 (get_current_user)
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as _jwt        # PyJWT
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from passkeeper.core.config import settings
from passkeeper.database import get_db

# ---------------------------------------------------------------------------
# 1.  JWT – access tokens
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a JWT with HS256.

    *data* should contain at minimum: sub (username) and user_id.
    An ``exp`` claim is added automatically.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode["exp"] = expire
    return _jwt.encode(to_encode, settings.secret_key, algorithm="HS256")


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT.  Raises HTTP 401 on any failure."""
    try:
        return _jwt.decode(token, settings.secret_key, algorithms=["HS256"])
    except _jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


# ---------------------------------------------------------------------------
# 2.  FastAPI dependency guard
# ---------------------------------------------------------------------------

# tokenUrl only feeds the generated OpenAPI docs; login is POST /auth/login
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
):
    """
    Dependency: decode the JWT and load the User row.
    Raises 401 if the token is invalid or the user is gone.
    """
    payload = decode_access_token(token)

    # Lazy import to avoid circular dependency at module load time
    from passkeeper.repositories import users as user_repo

    user_id = payload.get("user_id")
    user = await user_repo.find_by_id(db, user_id) if isinstance(user_id, int) else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user
