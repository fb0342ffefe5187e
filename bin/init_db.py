# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates the schema and seeds the system categories.

Run once before the first start (the API also does this on startup):
    python bin/init_db.py

Optionally registers a first account:
    python bin/init_db.py <username>

The password is read interactively and never echoed or logged.
"""

import asyncio
import getpass
import sys

from passkeeper.auth.service import UserService
from passkeeper.core.config import settings
from passkeeper.core.errors import ValidationError
from passkeeper.core.keys import KeyMaterialService
from passkeeper.core.secure_store import FileSecureStore
from passkeeper.core.transactions import TransactionalStore
from passkeeper.database import SessionLocal, engine, init_db


async def bootstrap(username: str | None) -> int:
    try:
        await init_db(engine)
        print(f"[init_db] Schema ready at {settings.database_url}")
        if not username:
            return 0

        users = UserService(
            TransactionalStore(SessionLocal),
            KeyMaterialService(FileSecureStore(settings.secure_store_dir)),
        )
        password = getpass.getpass(f"Password for '{username}': ")
        try:
            user = await users.register(username, password)
        except ValidationError as exc:
            print(f"[init_db] {exc} – nothing created.")
            return 1
        print(f"[init_db] User '{user.username}' created with id {user.id}.")
        return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(bootstrap(sys.argv[1] if len(sys.argv) > 1 else None)))
