import os

os.environ["JWT_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_USER"] = ""
os.environ["EMAIL_PASS"] = ""

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app
from services import storage


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def media(monkeypatch):
    """Stand-in for the media host; records uploads and deletes."""
    calls = {"upload": [], "destroy": []}

    def fake_upload(file, **options):
        data = file.read()
        calls["upload"].append(options)
        n = len(calls["upload"])
        return {
            "secure_url": f"https://media.test/{options['folder']}/{n}",
            "public_id": f"{options['folder']}/{n}",
            "bytes": len(data),
        }

    def fake_destroy(public_id, **options):
        calls["destroy"].append((public_id, options.get("resource_type")))
        return {"result": "ok"}

    monkeypatch.setattr(storage.cloudinary.uploader, "upload", fake_upload)
    monkeypatch.setattr(storage.cloudinary.uploader, "destroy", fake_destroy)
    return calls


@pytest.fixture
def client(mongo, media):
    with TestClient(app) as c:
        yield c


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client):
    def _register(username="alice", password="secret123", email=None, **profile):
        payload = {
            "username": username,
            "email": email or f"{username}@x.com",
            "password": password,
            "portfolioData": {"fullName": f"{username.title()} A", **profile},
        }
        resp = client.post("/api/auth/admin/register", json=payload)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {"token": body["token"], "id": body["user"]["id"], "headers": auth(body["token"]), "body": body}

    return _register
