"""
Route tests for notifications, including the realtime WebSocket.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.auth import create_session_token
from tests.conftest import STUDENT_ID


def _post_notification(client, admin_headers, **body) -> dict:
    resp = client.post("/api/admin/notifications", json=body, headers=admin_headers)
    assert resp.status_code == 200
    return resp.json()


class TestNotificationRoutes:
    """Tests for /api/notifications."""

    def test_unread_count_and_mark_read(self, client, admin_headers, student_headers):
        broadcast = _post_notification(client, admin_headers, title="Hi", message="all")
        _post_notification(client, admin_headers, title="You", message="x", user_id=STUDENT_ID)
        _post_notification(client, admin_headers, title="Other", message="y", user_id="someone")

        count = client.get("/api/notifications/unread-count", headers=student_headers)
        assert count.json() == {"count": 2}

        listed = client.get("/api/notifications", headers=student_headers).json()
        assert {n["title"] for n in listed} == {"Hi", "You"}

        resp = client.post(
            f"/api/notifications/{broadcast['id']}/read", headers=student_headers
        )
        assert resp.json()["is_read"] is True
        count = client.get("/api/notifications/unread-count", headers=student_headers)
        assert count.json() == {"count": 1}

    def test_cannot_mark_someone_elses_notification(self, client, admin_headers, student_headers):
        other = _post_notification(client, admin_headers, title="Other", message="y", user_id="someone")

        resp = client.post(f"/api/notifications/{other['id']}/read", headers=student_headers)

        assert resp.status_code == 404


class TestNotificationSocket:
    """Tests for /ws/notifications."""

    def _connect(self, client: TestClient, user_id: str = STUDENT_ID):
        token = create_session_token(user_id)
        return client.websocket_connect(f"/ws/notifications?token={token}")

    def test_rejects_missing_token(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/notifications") as ws:
                ws.receive_json()

    def test_initial_count_then_increment_on_insert(self, client, admin_headers):
        _post_notification(client, admin_headers, title="Before", message="m")

        with self._connect(client) as ws:
            assert ws.receive_json() == {"type": "unread_count", "count": 1}

            _post_notification(client, admin_headers, title="Now", message="m")
            assert ws.receive_json() == {"type": "unread_count", "count": 2}

            _post_notification(client, admin_headers, title="Mine", message="m", user_id=STUDENT_ID)
            assert ws.receive_json() == {"type": "unread_count", "count": 3}

    def test_update_triggers_refetch(self, client, admin_headers, student_headers):
        first = _post_notification(client, admin_headers, title="A", message="m")

        with self._connect(client) as ws:
            assert ws.receive_json()["count"] == 1

            client.post(f"/api/notifications/{first['id']}/read", headers=student_headers)
            assert ws.receive_json() == {"type": "unread_count", "count": 0}

    def test_alert_only_when_granted_and_hidden(self, client, admin_headers):
        with self._connect(client) as ws:
            ws.receive_json()

            ws.send_json({"permission": "granted"})
            assert ws.receive_json() == {"type": "presence", "permission": "granted", "hidden": False}
            _post_notification(client, admin_headers, title="Visible", message="m")
            assert ws.receive_json() == {"type": "unread_count", "count": 1}

            ws.send_json({"hidden": True})
            assert ws.receive_json()["hidden"] is True
            _post_notification(client, admin_headers, title="Backgrounded", message="hello")
            assert ws.receive_json() == {"type": "unread_count", "count": 2}
            assert ws.receive_json() == {
                "type": "alert",
                "title": "Backgrounded",
                "message": "hello",
            }

    def test_other_users_inserts_are_ignored(self, client, admin_headers):
        with self._connect(client) as ws:
            ws.receive_json()

            _post_notification(client, admin_headers, title="Not you", message="m", user_id="someone")
            _post_notification(client, admin_headers, title="Everyone", message="m")

            # Only the broadcast moves the counter.
            assert ws.receive_json() == {"type": "unread_count", "count": 1}
