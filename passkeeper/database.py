# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Async SQLAlchemy engine, session factory, declarative base, schema bootstrap,
and the FastAPI dependency that provides a DB session per request.
"""

from pathlib import Path
from typing import Optional

from fastapi import Request
from sqlalchemy import event, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from passkeeper.core.config import settings
from passkeeper.core.logger import logger

Base = declarative_base()

# Owner id of the built-in categories visible to every user
SYSTEM_USER_ID = 0

DEFAULT_CATEGORIES = [
    {"key": "social_media",  "name": "Social Media",  "icon": "social-media",  "color": "#3b5998"},
    {"key": "email",         "name": "Email",         "icon": "email",         "color": "#d44638"},
    {"key": "banking",       "name": "Banking",       "icon": "bank",          "color": "#006400"},
    {"key": "shopping",      "name": "Shopping",      "icon": "shopping",      "color": "#ff9900"},
    {"key": "entertainment", "name": "Entertainment", "icon": "entertainment", "color": "#e50914"},
    {"key": "work",          "name": "Work",          "icon": "work",          "color": "#0077b5"},
]


def make_engine(database_url: str, busy_timeout_ms: Optional[int] = None) -> AsyncEngine:
    """
    Create the async engine for *database_url*.

    For SQLite the driver's implicit BEGIN is switched off and SQLAlchemy
    emits BEGIN itself, so transactions start exactly where the session
    begins and SAVEPOINTs behave.  The driver's own busy wait (5 s by
    default) is cut down to *busy_timeout_ms* so that lock contention
    reaches the TransactionalStore retry policy quickly.
    """
    url = make_url(database_url)
    is_sqlite = url.get_backend_name() == "sqlite"
    if busy_timeout_ms is None:
        busy_timeout_ms = settings.db_busy_timeout_ms

    connect_args = {"timeout": busy_timeout_ms / 1000} if is_sqlite else {}
    engine = create_async_engine(url, connect_args=connect_args)

    if is_sqlite:
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            # Readers never block the single writer's COMMIT
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # expire_on_commit=False: rows stay readable after commit without an
    # implicit (and, under asyncio, illegal) lazy refresh
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


engine = make_engine(settings.database_url)

SessionLocal = make_session_factory(engine)


async def init_db(target: AsyncEngine = engine) -> None:
    """
    Create missing tables and seed the system categories (owner 0).
    Idempotent: categories are only seeded when none exist yet.
    """
    # Import every ORM model so that Base.metadata knows about all tables.
    from passkeeper.models.category import Category
    import passkeeper.models.password  # noqa: F401
    import passkeeper.models.user      # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = make_session_factory(target)
    async with factory() as db:
        existing = (await db.execute(select(Category.id).limit(1))).first()
        if existing is not None:
            logger.info("Categories already present, skipping defaults")
            return
        db.add_all(Category(user_id=SYSTEM_USER_ID, **c) for c in DEFAULT_CATEGORIES)
        await db.commit()
        logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))


async def get_db(request: Request):
    """
    FastAPI dependency.  Yields a session from the app's session factory for
    the duration of the request, then closes it.  Use with Depends(get_db).
    """
    async with request.app.state.session_factory() as db:
        yield db
