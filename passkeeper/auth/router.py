# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Auth endpoints – registration, login, password change, current-user info.

Security notes
--------------
* Login returns the *same* error message whether the username doesn't exist
  or the password is wrong.  This prevents user-enumeration attacks.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from passkeeper.auth.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserInfoResponse,
)
from passkeeper.auth.service import UserService
from passkeeper.core.errors import AuthenticationError, ValidationError, VaultError
from passkeeper.core.logger import logger
from passkeeper.core.security import create_access_token, get_current_user
from passkeeper.models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])

# Generic message used for both "no such user" and "wrong password"
_LOGIN_FAIL = "Invalid username or password"


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------


@router.post("/register", response_model=UserInfoResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, users: UserService = Depends(get_user_service)):
    """Create an account; its salt is generated and kept in the secure store."""
    try:
        return await users.register(body.username, body.password)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, users: UserService = Depends(get_user_service)):
    """Authenticate and return a signed JWT."""
    user = await users.authenticate(body.username, body.password)

    # Unified failure path – no information leaks about whether the user exists
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_LOGIN_FAIL)

    token = create_access_token({"sub": user.username, "user_id": user.id})
    return LoginResponse(access_token=token, token_type="bearer")


# ---------------------------------------------------------------------------
# PUT /auth/change-password
# ---------------------------------------------------------------------------


@router.put("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    """
    Change the login password.  The salt is rotated and every stored
    credential is re-encrypted; existing exports keep opening with the
    salt that was revealed for them.
    """
    try:
        count = await users.change_password(current_user.id, body.old_password, body.new_password)
    except AuthenticationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Old password is incorrect")
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except VaultError as exc:
        logger.error("Password change for user %d failed: %s", current_user.id, type(exc).__name__)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password change failed")
    return {"detail": "Password changed successfully", "reencrypted": count}


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserInfoResponse)
async def me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's public profile (no secrets)."""
    return current_user
