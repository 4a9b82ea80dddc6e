"""
Tests for personal messages between admins and students.
"""

import pytest

from app.services.messages import MessageService, NoAdminThreadError
from tests.conftest import ADMIN_ID, OTHER_STUDENT_ID, STUDENT_ID


class TestMessageService:
    async def test_reply_goes_to_latest_admin(self, conn):
        service = MessageService(conn)
        await service.send("admin-a", STUDENT_ID, "Welcome", is_admin_message=True)
        await service.send("admin-b", STUDENT_ID, "Fees due", is_admin_message=True)

        sent = await service.reply(STUDENT_ID, "  Paid today  ")

        assert sent.to_user_id == "admin-b"
        assert sent.message == "Paid today"
        assert sent.is_admin_message is False

    async def test_reply_without_admin_message(self, conn):
        with pytest.raises(NoAdminThreadError):
            await MessageService(conn).reply(STUDENT_ID, "hello?")

    async def test_unread_and_mark_read_are_per_recipient(self, conn):
        service = MessageService(conn)
        await service.send(ADMIN_ID, STUDENT_ID, "one", is_admin_message=True)
        await service.send(ADMIN_ID, OTHER_STUDENT_ID, "two", is_admin_message=True)

        assert await service.mark_all_read(STUDENT_ID) == 1
        assert await service.unread_count(STUDENT_ID) == 0
        assert await service.unread_count(OTHER_STUDENT_ID) == 1


class TestMessageRoutes:
    def test_admin_message_and_student_reply(self, client, admin_headers, student_headers):
        sent = client.post(
            "/api/admin/messages",
            json={"to_user_id": STUDENT_ID, "message": "Please update your profile"},
            headers=admin_headers,
        ).json()
        assert sent["from_user_id"] == ADMIN_ID
        assert sent["is_admin_message"] is True

        inbox = client.get("/api/messages", headers=student_headers).json()
        assert inbox["unread"] == 1
        assert [m["message"] for m in inbox["messages"]] == ["Please update your profile"]

        assert client.post("/api/messages/read", headers=student_headers).json() == {"updated": 1}

        reply = client.post(
            "/api/messages/reply", json={"message": "Done"}, headers=student_headers
        ).json()
        assert reply["to_user_id"] == ADMIN_ID

        thread = client.get("/api/messages", headers=student_headers).json()
        assert thread["unread"] == 0
        assert [m["message"] for m in thread["messages"]] == ["Please update your profile", "Done"]

        recent = client.get("/api/admin/messages", headers=admin_headers).json()
        assert [m["message"] for m in recent] == ["Done", "Please update your profile"]

    def test_reply_before_any_admin_message(self, client, student_headers):
        resp = client.post("/api/messages/reply", json={"message": "hi"}, headers=student_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"] == "No admin message to reply to"

    def test_empty_messages_rejected(self, client, admin_headers, student_headers):
        admin = client.post(
            "/api/admin/messages", json={"to_user_id": STUDENT_ID, "message": "   "}, headers=admin_headers
        )
        student = client.post("/api/messages/reply", json={"message": ""}, headers=student_headers)

        assert admin.status_code == 400
        assert student.status_code == 400

    def test_inbox_requires_login(self, client):
        assert client.get("/api/messages").status_code == 401
