from datetime import timedelta

import pytest
from bson import ObjectId

from config import get_settings
from security import create_access_token, hash_password
from services.portfolio import migrate_user_profiles
from tests.conftest import auth


def test_register_stores_hash_and_login_succeeds(client, mongo, register):
    alice = register()

    stored = mongo["user"].find_one({"username": "alice"})
    assert stored["password"] != "secret123"
    assert stored["password"].startswith("$2")
    assert stored["role"] == "admin"
    assert stored["portfolioData"]["fullName"] == "Alice A"
    assert stored["portfolioData"]["isPublic"] is True
    assert "password" not in alice["body"]["user"]
    assert alice["body"]["portfolioUrl"].endswith("/alice")

    resp = client.post("/api/auth/login", json={"username": "alice", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == alice["id"]


def test_login_accepts_email_in_either_field(client, register):
    register()
    by_email = client.post("/api/auth/login", json={"email": "alice@x.com", "password": "secret123"})
    email_as_username = client.post("/api/auth/login", json={"username": "alice@x.com", "password": "secret123"})
    assert by_email.status_code == 200
    assert email_as_username.status_code == 200


@pytest.mark.parametrize("payload", [
    {"username": "alice", "email": "other@x.com"},
    {"username": "other", "email": "alice@x.com"},
])
def test_duplicate_registration_conflicts(client, mongo, register, payload):
    register()
    resp = client.post("/api/auth/admin/register", json={
        **payload, "password": "secret123", "portfolioData": {"fullName": "Someone"},
    })
    assert resp.status_code == 409
    assert "already exists" in resp.json()["message"]
    assert mongo["user"].count_documents({}) == 1


def test_admin_register_requires_full_name(client, mongo):
    resp = client.post("/api/auth/admin/register", json={
        "username": "alice", "email": "alice@x.com", "password": "secret123", "portfolioData": {"bio": "hi"},
    })
    assert resp.status_code == 400
    assert resp.json()["message"] == "Full name is required for portfolio setup"
    assert mongo["user"].count_documents({}) == 0


def test_plain_register_defaults_profile(client, mongo):
    resp = client.post("/api/auth/register", json={"username": "bob", "email": "bob@x.com", "password": "secret123"})
    assert resp.status_code == 201
    data = mongo["user"].find_one({"username": "bob"})["portfolioData"]
    assert data["fullName"] == "bob"
    assert data["contactEmail"] == "bob@x.com"


def test_login_failures(client, register):
    register()
    assert client.post("/api/auth/login", json={"username": "alice", "password": "nope-nope"}).status_code == 401
    assert client.post("/api/auth/login", json={"username": "ghost", "password": "secret123"}).status_code == 401
    assert client.post("/api/auth/login", json={"password": "secret123"}).status_code == 400
    assert client.post("/api/auth/login", json={"username": "alice"}).status_code == 400


def test_me_verify_logout(client, register):
    alice = register()
    me = client.get("/api/auth/me", headers=alice["headers"])
    assert me.status_code == 200
    assert me.json()["username"] == "alice"
    assert "password" not in me.json()

    verify = client.get("/api/auth/verify", headers=alice["headers"]).json()
    assert verify == {"valid": True, "user": {"id": alice["id"], "username": "alice", "role": "admin"}}

    assert client.post("/api/auth/logout", headers=alice["headers"]).status_code == 200


def test_authenticated_gate_rejects_bad_tokens(client, register):
    alice = register()
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Token abc"}).status_code == 401
    assert client.get("/api/auth/me", headers=auth("not.a.jwt")).status_code == 401

    expired = create_access_token(
        {"sub": alice["id"], "username": "alice", "role": "admin"}, expires_delta=timedelta(seconds=-30)
    )
    resp = client.get("/api/auth/me", headers=auth(expired))
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid token."}


def test_missing_secret_fails_loudly(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "JWT_SECRET", None)
    monkeypatch.setattr(settings, "ACCESS_TOKEN_SECRET", None)
    with pytest.raises(RuntimeError):
        create_access_token({"sub": "x"})


def test_admin_gate_rejects_stale_role(client, mongo, register):
    alice = register()
    assert client.get("/api/analytics/dashboard", headers=alice["headers"]).status_code == 200

    mongo["user"].update_one({"username": "alice"}, {"$set": {"role": "viewer"}})
    resp = client.get("/api/analytics/dashboard", headers=alice["headers"])
    assert resp.status_code == 401
    assert resp.json()["code"] == "ROLE_UPDATED"


def test_admin_gate_forbids_non_admin_role(client, mongo, register):
    alice = register()
    mongo["user"].update_one({"username": "alice"}, {"$set": {"role": "viewer"}})
    token = create_access_token({"sub": alice["id"], "username": "alice", "role": "viewer"})
    resp = client.get("/api/analytics/dashboard", headers=auth(token))
    assert resp.status_code == 403


def test_admin_gate_rejects_deleted_account(client, mongo, register):
    alice = register()
    mongo["user"].delete_one({"username": "alice"})
    assert client.get("/api/analytics/dashboard", headers=alice["headers"]).status_code == 401


def test_login_backfills_legacy_profile(client, mongo):
    mongo["user"].insert_one({
        "username": "legacy",
        "email": "legacy@x.com",
        "password": hash_password("secret123"),
        "role": "admin",
    })
    resp = client.post("/api/auth/login", json={"username": "legacy", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["user"]["portfolioData"]["fullName"] == "legacy"
    stored = mongo["user"].find_one({"username": "legacy"})["portfolioData"]
    assert stored["fullName"] == "legacy"
    assert stored["theme"]["primaryColor"] == "#3b82f6"


def test_batch_migration_keeps_existing_fields(mongo):
    mongo["user"].insert_one({
        "_id": ObjectId(),
        "username": "old",
        "email": "old@x.com",
        "portfolioData": {"bio": "kept", "socialLinks": {"github": "gh/old"}},
    })
    assert migrate_user_profiles() == 1
    data = mongo["user"].find_one({"username": "old"})["portfolioData"]
    assert data["fullName"] == "old"
    assert data["bio"] == "kept"
    assert data["socialLinks"]["github"] == "gh/old"
    assert data["socialLinks"]["twitter"] == ""
    assert migrate_user_profiles() == 0


def test_change_password(client, register):
    alice = register()
    wrong = client.put("/api/auth/change-password", headers=alice["headers"],
                       json={"currentPassword": "bad-guess", "newPassword": "newsecret"})
    assert wrong.status_code == 400
    ok = client.put("/api/auth/change-password", headers=alice["headers"],
                    json={"currentPassword": "secret123", "newPassword": "newsecret"})
    assert ok.status_code == 200
    assert client.post("/api/auth/login", json={"username": "alice", "password": "newsecret"}).status_code == 200


def test_admin_gate_rejects_malformed_subject(client, register):
    register()
    token = create_access_token({"sub": "not-an-object-id", "username": "alice", "role": "admin"})
    resp = client.get("/api/analytics/dashboard", headers=auth(token))
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid token."}
