"""
Tests for media uploads.
"""

import os

from app.config import settings


def test_upload_image(client, student_headers):
    resp = client.post(
        "/api/media",
        files={"file": ("diagram.PNG", b"\x89PNG fake", "image/png")},
        headers=student_headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["name"].endswith(".png")
    assert body["url"] == f"http://portal.test/media/{body['name']}"
    with open(os.path.join(settings.media_root, body["name"]), "rb") as f:
        assert f.read() == b"\x89PNG fake"


def test_rejects_unsupported_type(client, student_headers):
    resp = client.post(
        "/api/media",
        files={"file": ("run.exe", b"MZ", "application/octet-stream")},
        headers=student_headers,
    )

    assert resp.status_code == 400


def test_requires_login(client):
    resp = client.post("/api/media", files={"file": ("a.png", b"x", "image/png")})

    assert resp.status_code == 401
