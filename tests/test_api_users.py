"""
tests/test_api_users.py -- Integration tests for /api/v1/users.

Covers:
  - List is Administrator-only (401 anonymous, 403 other roles)
  - Get / update / delete for authenticated callers
  - Role change requires Administrator
  - Email conflicts on update -> 409, unknown id -> 404
  - Delete is idempotent (204 either way)
"""

from __future__ import annotations

import pytest


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _new_user(client, email: str) -> dict:
    resp = client.post("/api/v1/auth/register", json={"email": email, "password": "pw-123456"})
    assert resp.status_code == 201
    return resp.json()


def test_list_users_requires_admin(api):
    client, _, tokens = api
    assert client.get("/api/v1/users").status_code == 401
    assert client.get("/api/v1/users", headers=_auth(tokens["student"])).status_code == 403
    assert client.get("/api/v1/users", headers=_auth(tokens["analyst"])).status_code == 403

    resp = client.get("/api/v1/users", headers=_auth(tokens["admin"]))
    assert resp.status_code == 200
    emails = [u["email"] for u in resp.json()]
    assert "admin@ksms.test" in emails
    assert emails == sorted(emails)
    assert all("password" not in u for u in resp.json())


def test_get_user(api):
    client, _, tokens = api
    user = _new_user(client, "get-me@example.com")
    resp = client.get(f"/api/v1/users/{user['id']}", headers=_auth(tokens["student"]))
    assert resp.status_code == 200
    assert resp.json()["email"] == "get-me@example.com"


def test_get_unknown_user_is_404(api):
    client, _, tokens = api
    resp = client.get("/api/v1/users/does-not-exist", headers=_auth(tokens["admin"]))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_get_user_requires_auth(api):
    client, _, _ = api
    user = _new_user(client, "private@example.com")
    assert client.get(f"/api/v1/users/{user['id']}").status_code == 401


def test_update_profile_fields(api):
    client, storage, tokens = api
    user = _new_user(client, "profile@example.com")
    resp = client.put(
        f"/api/v1/users/{user['id']}",
        json={"first_name": "Ada", "last_name": "Lovelace"},
        headers=_auth(tokens["student"]),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["first_name"] == "Ada"
    assert body["last_name"] == "Lovelace"
    assert body["email"] == "profile@example.com"
    assert body["created_at"] == user["created_at"]
    assert storage.get_user(user["id"]).first_name == "Ada"


def test_update_password_rehashes(api):
    client, storage, tokens = api
    user = _new_user(client, "repass@example.com")
    before = storage.get_user(user["id"]).hashed_password
    resp = client.put(f"/api/v1/users/{user['id']}", json={"password": "new-pass-1"}, headers=_auth(tokens["admin"]))
    assert resp.status_code == 200
    after = storage.get_user(user["id"]).hashed_password
    assert after != before
    assert after != "new-pass-1"
    login = client.post("/api/v1/auth/login", json={"email": "repass@example.com", "password": "new-pass-1"})
    assert login.status_code == 200


@pytest.mark.parametrize("actor", ["student", "analyst"])
def test_role_change_requires_admin(api, actor):
    client, storage, tokens = api
    user = _new_user(client, f"climber-{actor}@example.com")
    resp = client.put(f"/api/v1/users/{user['id']}", json={"role": "Administrator"}, headers=_auth(tokens[actor]))
    assert resp.status_code == 403
    assert storage.get_user(user["id"]).role.value == "Student"


def test_admin_can_change_role(api):
    client, _, tokens = api
    user = _new_user(client, "promote@example.com")
    resp = client.put(f"/api/v1/users/{user['id']}", json={"role": "Security Analyst"}, headers=_auth(tokens["admin"]))
    assert resp.status_code == 200
    assert resp.json()["role"] == "Security Analyst"


def test_resubmitting_same_role_is_not_a_role_change(api):
    client, _, tokens = api
    user = _new_user(client, "same-role@example.com")
    resp = client.put(f"/api/v1/users/{user['id']}", json={"role": "Student"}, headers=_auth(tokens["student"]))
    assert resp.status_code == 200


def test_update_to_taken_email_conflicts(api):
    client, storage, tokens = api
    user = _new_user(client, "mover@example.com")
    resp = client.put(f"/api/v1/users/{user['id']}", json={"email": "admin@ksms.test"}, headers=_auth(tokens["admin"]))
    assert resp.status_code == 409
    assert storage.get_user(user["id"]).email == "mover@example.com"


def test_update_unknown_user_is_404(api):
    client, _, tokens = api
    resp = client.put("/api/v1/users/missing", json={"first_name": "x"}, headers=_auth(tokens["admin"]))
    assert resp.status_code == 404


def test_delete_user_is_idempotent(api):
    client, storage, tokens = api
    user = _new_user(client, "leaving@example.com")
    assert client.delete(f"/api/v1/users/{user['id']}", headers=_auth(tokens["admin"])).status_code == 204
    assert client.delete(f"/api/v1/users/{user['id']}", headers=_auth(tokens["admin"])).status_code == 204
    assert client.get(f"/api/v1/users/{user['id']}", headers=_auth(tokens["admin"])).status_code == 404


def test_delete_requires_auth(api):
    client, _, _ = api
    user = _new_user(client, "stays@example.com")
    assert client.delete(f"/api/v1/users/{user['id']}").status_code == 401


def test_updated_password_keeps_surrounding_spaces(api):
    client, _, tokens = api
    user = _new_user(client, "spaces@example.com")
    resp = client.put(f"/api/v1/users/{user['id']}", json={"password": " padded pw "}, headers=_auth(tokens["admin"]))
    assert resp.status_code == 200
    login = client.post("/api/v1/auth/login", json={"email": "spaces@example.com", "password": " padded pw "})
    assert login.status_code == 200
