"""
Tests for the secure key-value implementations.

Covers:
- get/set/delete on both stores
- Missing keys read as None, deleting them is a no-op
- Key validation (no path separators)
- FileSecureStore file permissions and persistence across instances
"""

import os
import stat

import pytest

from passkeeper.core.secure_store import FileSecureStore, InMemorySecureStore


@pytest.fixture(params=["memory", "file"])
def kv(request, tmp_path):
    if request.param == "memory":
        return InMemorySecureStore()
    return FileSecureStore(tmp_path / "secure")


class TestSecureStore:
    async def test_set_get_delete(self, kv):
        assert await kv.get("user_salt_1") is None
        await kv.set("user_salt_1", "abc")
        assert await kv.get("user_salt_1") == "abc"
        await kv.set("user_salt_1", "def")
        assert await kv.get("user_salt_1") == "def"
        await kv.delete("user_salt_1")
        assert await kv.get("user_salt_1") is None

    async def test_delete_missing_is_noop(self, kv):
        await kv.delete("never_set")

    @pytest.mark.parametrize("key", ["", "../escape", "a/b", "spaces here", "x" * 129])
    async def test_invalid_keys_rejected(self, kv, key):
        with pytest.raises(ValueError):
            await kv.set(key, "v")


class TestFileSecureStore:
    async def test_values_survive_new_instance(self, tmp_path):
        await FileSecureStore(tmp_path / "s").set("user_salt_5", "salt")
        assert await FileSecureStore(tmp_path / "s").get("user_salt_5") == "salt"

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    async def test_private_permissions(self, tmp_path):
        kv = FileSecureStore(tmp_path / "s")
        await kv.set("user_salt_5", "salt")
        mode = stat.S_IMODE(os.stat(tmp_path / "s" / "user_salt_5").st_mode)
        assert mode == 0o600
        assert not (tmp_path / "s" / "user_salt_5.tmp").exists()
