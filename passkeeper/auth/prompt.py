# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Password confirmation channel between a waiting vault operation and the UI.

An operation calls ``await broker.request(user_id, reason)`` and suspends.
The UI lists ``broker.pending()``, asks the user for their password and
answers with ``submit_password(request_id, password)`` or ``cancel``.

At most one request per user can be pending; a second one is rejected with
``AuthRequestPendingError`` instead of replacing the first.  After
``max_attempts`` wrong passwords the request is refused as if cancelled.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from passkeeper.core.errors import AuthenticationError, AuthRequestPendingError
from passkeeper.core.logger import logger

PasswordVerifier = Callable[[int, str], Awaitable[bool]]


@dataclass
class AuthRequest:
    request_id: str
    user_id: int
    reason: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    future: asyncio.Future = field(default=None, repr=False)
    attempts: int = 0


class AuthPromptBroker:
    def __init__(
        self,
        verifier: PasswordVerifier,
        timeout: Optional[float] = None,
        max_attempts: int = 3,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._verifier = verifier
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._pending: dict[str, AuthRequest] = {}
        self._by_user: dict[int, str] = {}

    def pending(self, user_id: Optional[int] = None) -> list[AuthRequest]:
        return [r for r in self._pending.values() if user_id is None or r.user_id == user_id]

    async def request(self, user_id: int, reason: str = "") -> bool:
        """
        Wait until the user confirms (True) or the request is cancelled
        (False).  With a timeout configured, expiry counts as cancelled.
        """
        if user_id in self._by_user:
            raise AuthRequestPendingError(f"A confirmation is already pending for user {user_id}")

        entry = AuthRequest(
            request_id=uuid.uuid4().hex,
            user_id=user_id,
            reason=reason,
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[entry.request_id] = entry
        self._by_user[user_id] = entry.request_id
        logger.info("Confirmation %s requested for user %d (%s)", entry.request_id, user_id, reason)

        try:
            return await asyncio.wait_for(entry.future, self._timeout)
        except asyncio.TimeoutError:
            logger.info("Confirmation %s expired", entry.request_id)
            return False
        finally:
            self._pending.pop(entry.request_id, None)
            self._by_user.pop(user_id, None)

    def _get(self, request_id: str) -> AuthRequest:
        entry = self._pending.get(request_id)
        if entry is None or entry.future.done():
            raise AuthenticationError("Unknown or already answered confirmation request")
        return entry

    async def submit_password(self, request_id: str, password: str) -> bool:
        """
        Check *password* for the request's user.  A correct password
        resolves the request; a wrong one leaves it pending so the user can
        try again, until ``max_attempts`` wrong answers refuse it.  Returns
        whether the password was accepted.
        """
        entry = self._get(request_id)
        if not await self._verifier(entry.user_id, password):
            entry.attempts += 1
            logger.warning(
                "Wrong password for confirmation %s (%d/%d)",
                request_id,
                entry.attempts,
                self._max_attempts,
            )
            if entry.attempts >= self._max_attempts and not entry.future.done():
                entry.future.set_result(False)
                logger.warning("Confirmation %s refused after too many wrong passwords", request_id)
            return False
        # The verifier may have suspended; the request could be gone by now
        if not entry.future.done():
            entry.future.set_result(True)
        return True

    def cancel(self, request_id: str) -> None:
        entry = self._get(request_id)
        entry.future.set_result(False)
        logger.info("Confirmation %s cancelled", request_id)
