"""Shared fixtures: a throw-away SQLite vault, in-memory secure store, services."""

import pytest

from passkeeper.auth.service import UserService
from passkeeper.core.cipher import SecretCipher
from passkeeper.core.keys import KeyMaterialService
from passkeeper.core.secure_store import InMemorySecureStore
from passkeeper.core.transactions import TransactionalStore
from passkeeper.database import init_db, make_engine, make_session_factory
from passkeeper.repositories import categories as category_repo
from passkeeper.repositories import passwords as password_repo
from passkeeper.vault.credentials import CredentialService
from passkeeper.vault.service import ExportImportService


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}"


@pytest.fixture
async def engine(database_url):
    engine = make_engine(database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def sleeps():
    """Delays requested by the TransactionalStore, in seconds."""
    return []


@pytest.fixture
def store(session_factory, sleeps):
    async def _record(delay):
        sleeps.append(delay)

    return TransactionalStore(session_factory, max_retries=3, base_delay=0.3, sleep=_record)


@pytest.fixture
def secure_store():
    return InMemorySecureStore()


@pytest.fixture
def keys(secure_store):
    return KeyMaterialService(secure_store, hash_scheme="sha256")


@pytest.fixture
def cipher():
    return SecretCipher()


@pytest.fixture
def users(store, keys, cipher):
    return UserService(store, keys, cipher)


@pytest.fixture
def credentials(store, keys, cipher):
    return CredentialService(store, keys, cipher)


@pytest.fixture
def vault(store, keys, cipher, tmp_path):
    return ExportImportService(store, keys, cipher, export_dir=tmp_path / "exports")


@pytest.fixture
def make_user(users, keys):
    """Register a user and return ``(user, salt)``."""

    async def _make(username, password="correct horse"):
        user = await users.register(username, password)
        return user, await keys.get_salt(user.id)

    return _make


@pytest.fixture
def seed_vault(store, cipher):
    """
    Write categories and credentials for a user directly through the
    repositories.  Credentials are dicts with title/secret and optional
    username/category (name of a category from *categories* or a system one).
    """
    async def _seed(user_id, salt, categories=(), credentials=()):
        async def ops(db):
            by_name = {c.name: c.id for c in await category_repo.find_by_user(db, user_id)}
            for name in categories:
                by_name[name] = (await category_repo.create(db, user_id=user_id, name=name)).id
            for cred in credentials:
                encrypted, iv = cipher.encrypt(cred["secret"], salt)
                await password_repo.create(
                    db,
                    user_id=user_id,
                    title=cred["title"],
                    username=cred.get("username"),
                    encrypted_password=encrypted,
                    iv=iv,
                    category_id=by_name.get(cred.get("category")),
                    favorite=cred.get("favorite", False),
                )

        await store.execute_in_transaction(ops)

    return _seed


@pytest.fixture
def read_vault(session_factory, cipher):
    """Return a user's credentials as dicts with the secret decrypted under *salt*."""

    async def _read(user_id, salt):
        async with session_factory() as db:
            rows = await password_repo.find_by_user(db, user_id)
        return sorted(
            (
                {
                    "title": r.title,
                    "username": r.username,
                    "secret": cipher.decrypt(r.encrypted_password, salt, r.iv),
                    "category": r.category.name if r.category is not None else None,
                    "favorite": r.favorite,
                }
                for r in rows
            ),
            key=lambda d: d["title"],
        )

    return _read
