import logging
from datetime import datetime
from typing import Callable

from app.models import PersonalMessage
from app.services.access import to_iso, utcnow

logger = logging.getLogger(__name__)


class NoAdminThreadError(Exception):
    """A student tried to reply before any admin wrote to them."""


class MessageService:
    """One-to-one messages between admins and individual students.

    Admins start a thread; a student can only reply to the admin who last
    wrote to them.
    """

    def __init__(self, conn, clock: Callable[[], datetime] = utcnow) -> None:
        self.conn = conn
        self.clock = clock

    async def _get(self, message_id: int) -> PersonalMessage:
        row = await self.conn.execute(
            "SELECT * FROM personal_messages WHERE id = ?", (message_id,)
        )
        return PersonalMessage.from_row(await row.fetchone())

    async def send(
        self, from_user_id: str, to_user_id: str, message: str, *, is_admin_message: bool
    ) -> PersonalMessage:
        cursor = await self.conn.execute(
            "INSERT INTO personal_messages "
            "(from_user_id, to_user_id, message, is_admin_message, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (from_user_id, to_user_id, message.strip(), int(is_admin_message), to_iso(self.clock())),
        )
        await self.conn.commit()
        logger.info("Message %s sent from %s to %s", cursor.lastrowid, from_user_id, to_user_id)
        return await self._get(cursor.lastrowid)

    async def thread(self, user_id: str) -> list[PersonalMessage]:
        """Everything sent to or by *user_id*, oldest first."""
        rows = await self.conn.execute(
            "SELECT * FROM personal_messages WHERE to_user_id = ? OR from_user_id = ? "
            "ORDER BY created_at, id",
            (user_id, user_id),
        )
        return [PersonalMessage.from_row(row) for row in await rows.fetchall()]

    async def unread_count(self, user_id: str) -> int:
        row = await self.conn.execute(
            "SELECT COUNT(*) AS n FROM personal_messages WHERE to_user_id = ? AND is_read = 0",
            (user_id,),
        )
        return (await row.fetchone())["n"]

    async def mark_all_read(self, user_id: str) -> int:
        cursor = await self.conn.execute(
            "UPDATE personal_messages SET is_read = 1 WHERE to_user_id = ? AND is_read = 0",
            (user_id,),
        )
        await self.conn.commit()
        return cursor.rowcount

    async def reply(self, user_id: str, message: str) -> PersonalMessage:
        row = await self.conn.execute(
            "SELECT from_user_id FROM personal_messages "
            "WHERE to_user_id = ? AND is_admin_message = 1 ORDER BY created_at DESC, id DESC",
            (user_id,),
        )
        latest = await row.fetchone()
        if latest is None:
            raise NoAdminThreadError("No admin message to reply to")
        return await self.send(user_id, latest["from_user_id"], message, is_admin_message=False)

    async def list_recent(self, limit: int = 100) -> list[PersonalMessage]:
        rows = await self.conn.execute(
            "SELECT * FROM personal_messages ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [PersonalMessage.from_row(row) for row in await rows.fetchall()]
