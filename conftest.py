"""Shared fixtures for the DeepRemember test suite."""
import time

import pytest
from fastapi.testclient import TestClient

import auth
import backend
import cache
import db
import llm


async def _llm_offline():
    return False


@pytest.fixture()
def client(tmp_path, monkeypatch):
    """App client backed by a fresh SQLite file per test."""
    monkeypatch.setattr(db, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(db, "DB_PATH", tmp_path / "deepremember-test.db")
    monkeypatch.setattr(llm, "check_ollama_connectivity", _llm_offline)
    auth.rate_limit_reset()
    cache.cache_clear()
    with TestClient(backend.app) as test_client:
        yield test_client


@pytest.fixture()
def make_user(client):
    """Insert a user and open a session; returns (user_id, headers)."""
    def _make(email: str, role: str = "user"):
        now = db.now_iso()
        conn = db.get_db()
        try:
            user_id = db.insert_returning_id(
                conn,
                "INSERT INTO users (email, password_hash, role, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
                (email, "test-hash", role, now, now),
            )
            conn.commit()
        finally:
            conn.close()
        token = auth.create_session(user_id)["token"]
        return user_id, {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture()
def auth_headers(make_user):
    return make_user("alice@example.com")[1]


@pytest.fixture()
def other_headers(make_user):
    return make_user("bob@example.com")[1]


@pytest.fixture()
def admin_headers(make_user):
    return make_user("admin@example.com", role="admin")[1]


@pytest.fixture()
def expired_headers(make_user):
    user_id, headers = make_user("old@example.com")
    conn = db.get_db()
    try:
        conn.execute("UPDATE sessions SET expires_at = ? WHERE user_id = ?", (time.time() - 1, user_id))
        conn.commit()
    finally:
        conn.close()
    return headers
