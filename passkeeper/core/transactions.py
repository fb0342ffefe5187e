# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Retry-with-backoff executor and atomic transaction wrapper around the
relational store.

Policy
------
* Only lock contention ("database is locked" / ``LockContentionError``) is
  retried, with exponential backoff ``base_delay * 2 ** (attempt - 1)``.
  ``max_retries`` counts retries after the first attempt.
* Everything else propagates on the first occurrence, untouched.
* A transaction is retried as a whole, never statement by statement.
* Transactions do not nest.  Code that already runs inside
  ``execute_in_transaction`` receives the session and calls the repository
  write primitives on it directly.
"""

import asyncio
import sqlite3
from contextvars import ContextVar
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from passkeeper.core.config import settings
from passkeeper.core.errors import LockContentionError, NestedTransactionError
from passkeeper.core.logger import logger

T = TypeVar("T")

_LOCK_MARKERS = ("database is locked", "database table is locked", "database is busy")

# Set while a coroutine chain is inside execute_in_transaction()
_in_transaction: ContextVar[bool] = ContextVar("passkeeper_in_transaction", default=False)


def is_lock_error(exc: BaseException) -> bool:
    """True when *exc* signals transient write-lock contention."""
    if isinstance(exc, LockContentionError):
        return True
    if isinstance(exc, (OperationalError, sqlite3.OperationalError)):
        message = str(exc).lower()
        return any(marker in message for marker in _LOCK_MARKERS)
    return False


class TransactionalStore:
    """
    Parameters
    ----------
    session_factory : async_sessionmaker
        Source of sessions for :meth:`execute_in_transaction`.
    max_retries, base_delay
        Defaults for both executors; ``base_delay`` is in seconds.
    sleep
        Awaitable used between attempts (tests pass a recorder).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.max_retries = settings.db_max_retries if max_retries is None else max_retries
        self.base_delay = settings.db_retry_base_delay_ms / 1000 if base_delay is None else base_delay
        self._sleep = sleep

    async def execute_with_retry(
        self,
        op: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> T:
        """Run *op*; retry it on lock contention, re-raise anything else."""
        max_retries = self.max_retries if max_retries is None else max_retries
        base_delay = self.base_delay if base_delay is None else base_delay

        attempt = 0
        while True:
            try:
                return await op()
            except Exception as exc:
                attempt += 1
                if not is_lock_error(exc) or attempt > max_retries:
                    raise
                delay = base_delay * 2 ** (attempt - 1)
                logger.warning(
                    "Storage locked, retrying in %.0f ms (attempt %d of %d)",
                    delay * 1000, attempt, max_retries,
                )
                await self._sleep(delay)

    async def execute_in_transaction(
        self,
        ops: Callable[[AsyncSession], Awaitable[T]],
        max_retries: Optional[int] = None,
    ) -> T:
        """
        Run ``ops(session)`` between BEGIN and COMMIT on a fresh session.

        Any exception rolls the transaction back and propagates unchanged; a
        failing rollback is logged and never replaces the original error.
        Lock contention re-runs the whole transaction, so *ops* must not keep
        state across attempts outside of what it returns.
        """
        if _in_transaction.get():
            raise NestedTransactionError(
                "execute_in_transaction() called inside an open transaction; "
                "use the session you were given instead"
            )

        async def _attempt() -> T:
            token = _in_transaction.set(True)
            try:
                async with self.session_factory() as db:
                    try:
                        await db.begin()
                        result = await ops(db)
                        await db.commit()
                        return result
                    except Exception as exc:
                        try:
                            await db.rollback()
                            logger.info("Transaction rolled back (%s)", type(exc).__name__)
                        except Exception:
                            logger.exception("Rollback failed; propagating the original error")
                        raise
            finally:
                _in_transaction.reset(token)

        return await self.execute_with_retry(_attempt, max_retries=max_retries)
