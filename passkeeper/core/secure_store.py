# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261018v1
# ---------------------------------------------------------------------------
"""
Secure key-value capability.

The vault never reaches for a global device store; it is handed an object
implementing :class:`SecureStore`.  Keys are short ASCII strings such as
``user_salt_42``.  Two implementations ship here:

* :class:`InMemorySecureStore` – tests and throw-away sessions.
* :class:`FileSecureStore`     – one file per key inside a private directory
  (mode 0700 / files 0600), written atomically.
"""

import os
import re
from pathlib import Path
from typing import Optional, Protocol

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise ValueError("Secure-store keys must be 1-128 ASCII letters, digits, '_', '.', '-'")
    return key


class SecureStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemorySecureStore:
    """Dictionary-backed store.  Contents vanish with the process."""

    def __init__(self, initial: Optional[dict] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(_check_key(key))

    async def set(self, key: str, value: str) -> None:
        self._data[_check_key(key)] = value

    async def delete(self, key: str) -> None:
        self._data.pop(_check_key(key), None)


class FileSecureStore:
    """
    Directory-backed store.

    Every value is written to ``<key>.tmp`` and then moved over ``<key>``
    with ``os.replace`` so a crash never leaves a half-written salt behind.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / _check_key(key)

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(value)
        os.replace(tmp, path)

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
