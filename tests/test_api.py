"""
Tests for the local HTTP API.

Covers:
- /health
- register / login / me, including wrong password and bad token
- Vault endpoints require a bearer token and the account password
- Export → salt → import into another account
- Generic error message for an undecryptable envelope, an empty import key
  and storage lock contention while the password is re-confirmed
- Credential items: create, list/search, reveal, update, delete, ownership
- Password change keeps every item readable
"""

import sqlite3

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from passkeeper.core.errors import LockContentionError
from passkeeper.core.secure_store import InMemorySecureStore
from passkeeper.main import create_app


@pytest.fixture
def client(database_url, tmp_path):
    app = create_app(
        database_url=database_url,
        secure_store=InMemorySecureStore(),
        export_dir=str(tmp_path / "exports"),
    )
    with TestClient(app) as c:
        yield c


def _register_and_login(client, username, password="pw-" + "x" * 8):
    resp = client.post("/auth/register", json={"username": username, "password": password})
    assert resp.status_code == 201
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}, password


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestAuth:
    def test_register_login_me(self, client):
        headers, _ = _register_and_login(client, "alice")
        resp = client.get("/auth/me", headers=headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["username"] == "alice"
        assert "password" not in body and "password_hash" not in body

    def test_duplicate_register(self, client):
        _register_and_login(client, "alice")
        resp = client.post("/auth/register", json={"username": "alice", "password": "other"})
        assert resp.status_code == 400

    def test_login_failures_are_indistinguishable(self, client):
        _register_and_login(client, "alice")
        wrong_pw = client.post("/auth/login", json={"username": "alice", "password": "nope"})
        no_user = client.post("/auth/login", json={"username": "ghost", "password": "nope"})
        assert wrong_pw.status_code == no_user.status_code == 401
        assert wrong_pw.json() == no_user.json()

    def test_bad_token(self, client):
        resp = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401


class TestVault:
    def test_requires_token(self, client):
        assert client.post("/vault/export", json={"password": "x"}).status_code == 401

    def test_requires_account_password(self, client):
        headers, _ = _register_and_login(client, "alice")
        resp = client.post("/vault/salt", json={"password": "wrong"}, headers=headers)
        assert resp.status_code == 401

    def test_export_then_import_into_other_account(self, client):
        alice, alice_pw = _register_and_login(client, "alice")
        bob, bob_pw = _register_and_login(client, "bob")

        resp = client.post("/vault/export", json={"password": alice_pw}, headers=alice)
        assert resp.status_code == 200
        assert ".pkex" in resp.headers["content-disposition"]
        envelope = resp.text
        assert set(resp.json()) == {"encrypted", "iv", "version", "timestamp"}

        salt = client.post("/vault/salt", json={"password": alice_pw}, headers=alice).json()["salt"]

        resp = client.post(
            "/vault/import",
            json={"password": bob_pw, "envelope": envelope, "import_key": salt},
            headers=bob,
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "imported_categories": 0,
            "imported_passwords": 0,
            "errors": [],
        }

    def test_import_with_wrong_key_is_generic_failure(self, client):
        alice, alice_pw = _register_and_login(client, "alice")
        bob, bob_pw = _register_and_login(client, "bob")
        envelope = client.post("/vault/export", json={"password": alice_pw}, headers=alice).text

        # without import_key bob's own salt is used, which cannot open it
        resp = client.post("/vault/import", json={"password": bob_pw, "envelope": envelope}, headers=bob)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Import failed"}

    def test_empty_import_key_is_generic_failure(self, client):
        alice, alice_pw = _register_and_login(client, "alice")
        envelope = client.post("/vault/export", json={"password": alice_pw}, headers=alice).text

        resp = client.post(
            "/vault/import",
            json={"password": alice_pw, "envelope": envelope, "import_key": ""},
            headers=alice,
        )
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Import failed"}

    @pytest.mark.parametrize(
        "error",
        [
            LockContentionError("busy"),
            OperationalError("SELECT ...", {}, sqlite3.OperationalError("database is locked")),
        ],
    )
    def test_lock_contention_while_confirming_is_generic_failure(self, client, monkeypatch, error):
        alice, alice_pw = _register_and_login(client, "alice")

        async def _busy(user_id, password):
            raise error

        monkeypatch.setattr(client.app.state.user_service, "verify_password_by_id", _busy)

        for path, detail in (("/vault/export", "Export failed"), ("/vault/salt", "Export failed")):
            resp = client.post(path, json={"password": alice_pw}, headers=alice)
            assert resp.status_code == 400
            assert resp.json() == {"detail": detail}
        resp = client.post("/vault/import", json={"password": alice_pw, "envelope": "{}"}, headers=alice)
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Import failed"}


class TestItems:
    def test_requires_token(self, client):
        assert client.get("/vault/items").status_code == 401

    def test_lifecycle(self, client):
        alice, _ = _register_and_login(client, "alice")

        resp = client.post(
            "/vault/items",
            json={"title": "GitHub", "plaintext_password": "hunter2", "website": "https://github.com"},
            headers=alice,
        )
        assert resp.status_code == 201
        item = resp.json()
        assert "plaintext_password" not in item and "encrypted_password" not in item
        item_id = item["id"]

        assert [i["title"] for i in client.get("/vault/items", headers=alice).json()["items"]] == ["GitHub"]
        assert client.get("/vault/items", params={"q": "nothing"}, headers=alice).json() == {"items": []}
        assert client.get(f"/vault/items/{item_id}", headers=alice).json()["website"] == "https://github.com"
        resp = client.get(f"/vault/items/{item_id}/decrypt", headers=alice)
        assert resp.json() == {"plaintext_password": "hunter2"}

        resp = client.put(
            f"/vault/items/{item_id}",
            json={"favorite": True, "plaintext_password": "correct-horse"},
            headers=alice,
        )
        assert resp.status_code == 200
        assert resp.json()["favorite"] is True
        assert resp.json()["title"] == "GitHub"
        resp = client.get(f"/vault/items/{item_id}/decrypt", headers=alice)
        assert resp.json() == {"plaintext_password": "correct-horse"}

        assert client.delete(f"/vault/items/{item_id}", headers=alice).status_code == 204
        assert client.get(f"/vault/items/{item_id}", headers=alice).status_code == 404

    def test_other_users_item_is_not_found(self, client):
        alice, _ = _register_and_login(client, "alice")
        bob, _ = _register_and_login(client, "bob")
        item_id = client.post(
            "/vault/items", json={"title": "Mine", "plaintext_password": "pw"}, headers=alice
        ).json()["id"]

        assert client.get(f"/vault/items/{item_id}/decrypt", headers=bob).status_code == 404
        assert client.put(f"/vault/items/{item_id}", json={"title": "x"}, headers=bob).status_code == 404
        assert client.delete(f"/vault/items/{item_id}", headers=bob).status_code == 404
        assert client.get("/vault/items", headers=bob).json() == {"items": []}

    def test_unknown_category_rejected(self, client):
        alice, _ = _register_and_login(client, "alice")
        resp = client.post(
            "/vault/items",
            json={"title": "X", "plaintext_password": "pw", "category_id": 9999},
            headers=alice,
        )
        assert resp.status_code == 400


class TestChangePassword:
    def test_items_survive_password_change(self, client):
        alice, old_pw = _register_and_login(client, "alice")
        item_id = client.post(
            "/vault/items", json={"title": "Bank", "plaintext_password": "s3cr3t"}, headers=alice
        ).json()["id"]
        old_salt = client.post("/vault/salt", json={"password": old_pw}, headers=alice).json()["salt"]

        resp = client.put(
            "/auth/change-password",
            json={"old_password": old_pw, "new_password": "brand-new-pw"},
            headers=alice,
        )
        assert resp.status_code == 200
        assert resp.json()["reencrypted"] == 1

        assert client.get(f"/vault/items/{item_id}/decrypt", headers=alice).json() == {
            "plaintext_password": "s3cr3t"
        }
        new_salt = client.post("/vault/salt", json={"password": "brand-new-pw"}, headers=alice).json()["salt"]
        assert new_salt != old_salt
        login = client.post("/auth/login", json={"username": "alice", "password": old_pw})
        assert login.status_code == 401
        login = client.post("/auth/login", json={"username": "alice", "password": "brand-new-pw"})
        assert login.status_code == 200

    def test_wrong_old_password(self, client):
        alice, _ = _register_and_login(client, "alice")
        resp = client.put(
            "/auth/change-password",
            json={"old_password": "nope", "new_password": "brand-new-pw"},
            headers=alice,
        )
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Old password is incorrect"}
