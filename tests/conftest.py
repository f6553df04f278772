import pytest
from fastapi.testclient import TestClient

import config
import database
from main import app


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh database file and upload directory per test."""
    monkeypatch.setattr(config, "DATABASE_FILE", str(tmp_path / "test.db"))
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path / "uploads"))
    database.init_db()
    return tmp_path


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    """Register a user and return (id, access token)."""
    counter = {"n": 0}

    def _register(username=None, role="mentee", preferences=None, password="secret123"):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        r = client.post("/register", json={
            "username": username,
            "password": password,
            "email": f"{username}@example.com",
            "firstName": "Test",
            "lastName": username.capitalize(),
            "role": role,
            "preferences": preferences or [],
        })
        assert r.status_code == 201, r.text
        body = r.json()["response"]
        return body["id"], body["accessToken"]

    return _register
