"""Shared fixtures: every test gets its own SQLite file and media root."""

import sqlite3

import pytest
from fastapi.testclient import TestClient

from app.auth import create_session_token
from app.config import settings
from app.database import get_async_conn, init_db

STUDENT_ID = "student-1"
OTHER_STUDENT_ID = "student-2"
ADMIN_ID = "admin-1"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_path", str(tmp_path / "portal.db"))
    monkeypatch.setattr(settings, "media_root", str(tmp_path / "media"))
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    monkeypatch.setattr(settings, "groq_api_key", "gsk_test")
    monkeypatch.setattr(settings, "shortener_api_url", "")
    monkeypatch.setattr(settings, "public_base_url", "http://portal.test")
    monkeypatch.setattr(settings, "app_url", "http://app.test")


@pytest.fixture
async def conn():
    await init_db()
    conn = await get_async_conn()
    try:
        yield conn
    finally:
        await conn.close()


@pytest.fixture
def client():
    from app.main import app

    with TestClient(app) as c:
        yield c


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user_id)}"}


@pytest.fixture
def student_headers() -> dict:
    return bearer(STUDENT_ID)


@pytest.fixture
def admin_headers(client) -> dict:
    # ``client`` has run the lifespan, so the tables exist.
    with sqlite3.connect(settings.database_path) as db:
        db.execute(
            "INSERT INTO user_roles (user_id, role) VALUES (?, 'admin')", (ADMIN_ID,)
        )
    return bearer(ADMIN_ID)
