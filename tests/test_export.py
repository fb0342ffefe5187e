"""
Tests for VaultExportCodec.

Covers:
- Envelope shape: encrypted / iv / version "1.0" / ISO timestamp
- Nothing readable (titles, secrets, salt) in the envelope text
- Payload: no ids, owners or timestamps; system categories excluded but
  still referenced; secrets keep their original ciphertext and iv
"""

import json
from datetime import datetime

import pytest

from passkeeper.core.errors import CipherError
from passkeeper.repositories import passwords as password_repo
from passkeeper.vault.export import VaultExportCodec, canonical_json


async def _export(store, cipher, user_id, salt):
    return await VaultExportCodec(store, cipher).export_user_data(user_id, salt)


def _open(cipher, envelope, salt):
    data = json.loads(envelope)
    return json.loads(cipher.decrypt(data["encrypted"], salt, data["iv"]))


class TestEnvelope:
    async def test_shape(self, store, cipher, make_user, seed_vault):
        alice, salt = await make_user("alice")
        await seed_vault(alice.id, salt, ["Travel"], [{"title": "GitHub", "secret": "hunter2"}])

        data = json.loads(await _export(store, cipher, alice.id, salt))
        assert set(data) == {"encrypted", "iv", "version", "timestamp"}
        assert data["version"] == "1.0"
        assert datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00")).tzinfo is not None

    async def test_nothing_readable_in_envelope(self, store, cipher, make_user, seed_vault):
        alice, salt = await make_user("alice")
        await seed_vault(
            alice.id, salt, ["Travel"],
            [{"title": "GitHub", "username": "octocat", "secret": "hunter2"}],
        )

        text = await _export(store, cipher, alice.id, salt)
        for needle in ("GitHub", "octocat", "hunter2", "Travel", salt):
            assert needle not in text

    async def test_outer_layer_bound_to_salt(self, store, cipher, make_user):
        alice, salt = await make_user("alice")
        _, other_salt = await make_user("bob")
        envelope = await _export(store, cipher, alice.id, salt)
        assert _open(cipher, envelope, salt) == {"categories": [], "passwords": []}

        with pytest.raises(CipherError):
            _open(cipher, envelope, other_salt)


class TestPayload:
    async def test_portable_records(self, store, cipher, session_factory, make_user, seed_vault):
        alice, salt = await make_user("alice")
        await seed_vault(
            alice.id,
            salt,
            ["Travel"],
            [
                {"title": "Airline", "secret": "fly", "category": "Travel", "favorite": True},
                {"title": "Slack", "secret": "s3cr3t", "category": "Work"},
                {"title": "Loose", "secret": "x"},
            ],
        )

        payload = _open(cipher, await _export(store, cipher, alice.id, salt), salt)

        # only the user's own categories
        assert payload["categories"] == [{"name": "Travel", "icon": None, "color": None, "key": None}]

        by_title = {p["title"]: p for p in payload["passwords"]}
        assert set(by_title) == {"Airline", "Slack", "Loose"}
        assert by_title["Airline"]["category"] == {"name": "Travel", "key": None}
        assert by_title["Airline"]["favorite"] is True
        # system category still referenced, with its stable key
        assert by_title["Slack"]["category"] == {"name": "Work", "key": "work"}
        assert by_title["Loose"]["category"] is None

        for record in payload["passwords"]:
            assert not {"id", "user_id", "category_id", "created_at", "updated_at"} & set(record)

        async with session_factory() as db:
            stored = {r.title: r for r in await password_repo.find_by_user(db, alice.id)}
        assert by_title["Slack"]["password"] == stored["Slack"].encrypted_password
        assert by_title["Slack"]["iv"] == stored["Slack"].iv
        assert cipher.decrypt(by_title["Slack"]["password"], salt, by_title["Slack"]["iv"]) == "s3cr3t"

    async def test_other_users_rows_excluded(self, store, cipher, make_user, seed_vault):
        alice, salt_a = await make_user("alice")
        bob, salt_b = await make_user("bob")
        await seed_vault(bob.id, salt_b, ["Bob's"], [{"title": "Bob secret", "secret": "b"}])

        payload = _open(cipher, await _export(store, cipher, alice.id, salt_a), salt_a)
        assert payload == {"categories": [], "passwords": []}


class TestCanonicalJson:
    def test_sorted_compact_utf8(self):
        assert canonical_json({"b": 1, "a": "ñ"}) == '{"a":"ñ","b":1}'
