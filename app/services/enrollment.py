import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from app.models import Batch
from app.services.access import parse_iso, to_iso, utcnow

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PASSWORD_LENGTH = 8


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Random batch password without the easily confused 0/O/1/I."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


class EnrollmentError(Exception):
    """A batch password could not be redeemed. ``reason`` is user-facing."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class EnrollmentService:
    """Batch access passwords and the enrollments they create."""

    def __init__(self, conn, clock: Callable[[], datetime] = utcnow) -> None:
        self.conn = conn
        self.clock = clock

    async def create_password(
        self,
        batch_id: int,
        password: str | None = None,
        valid_hours: int = 24,
        max_uses: int = 100,
    ) -> dict:
        expires_at = self.clock() + timedelta(hours=valid_hours)
        password = (password or generate_password()).strip().upper()
        cursor = await self.conn.execute(
            "INSERT INTO batch_access_passwords "
            "(batch_id, password, valid_hours, max_uses, expires_at) VALUES (?, ?, ?, ?, ?)",
            (batch_id, password, valid_hours, max_uses, to_iso(expires_at)),
        )
        await self.conn.commit()
        row = await self.conn.execute(
            "SELECT * FROM batch_access_passwords WHERE id = ?", (cursor.lastrowid,)
        )
        return self._password_dict(await row.fetchone())

    async def list_passwords(self) -> list[dict]:
        rows = await self.conn.execute(
            "SELECT * FROM batch_access_passwords ORDER BY created_at DESC, id DESC"
        )
        return [self._password_dict(row) for row in await rows.fetchall()]

    async def delete_password(self, password_id: int) -> bool:
        cursor = await self.conn.execute(
            "DELETE FROM batch_access_passwords WHERE id = ?", (password_id,)
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    async def enroll(self, user_id: str, password: str) -> dict:
        """Redeem *password* and enroll *user_id* in its batch.

        Raises ``EnrollmentError`` when the password is unknown, inactive,
        expired or used up. Enrolling twice in the same batch is a no-op and
        does not consume a use.
        """
        row = await self.conn.execute(
            "SELECT * FROM batch_access_passwords WHERE password = ? AND is_active = 1 "
            "ORDER BY id DESC",
            (password.strip().upper(),),
        )
        pwd = await row.fetchone()
        if not pwd:
            raise EnrollmentError("Invalid password")
        if parse_iso(pwd["expires_at"]) <= self.clock():
            raise EnrollmentError("Password has expired")
        row = await self.conn.execute(
            "SELECT * FROM enrollments WHERE user_id = ? AND batch_id = ?",
            (user_id, pwd["batch_id"]),
        )
        existing = await row.fetchone()
        if existing:
            return dict(existing)
        if pwd["current_uses"] >= pwd["max_uses"]:
            raise EnrollmentError("Password has reached its usage limit")

        cursor = await self.conn.execute(
            "INSERT INTO enrollments (user_id, batch_id, enrolled_via_password_id, enrolled_at) "
            "VALUES (?, ?, ?, ?)",
            (user_id, pwd["batch_id"], pwd["id"], to_iso(self.clock())),
        )
        await self.conn.execute(
            "UPDATE batch_access_passwords SET current_uses = current_uses + 1 WHERE id = ?",
            (pwd["id"],),
        )
        await self.conn.commit()
        logger.info("User %s enrolled in batch %s", user_id, pwd["batch_id"])
        row = await self.conn.execute(
            "SELECT * FROM enrollments WHERE id = ?", (cursor.lastrowid,)
        )
        return dict(await row.fetchone())

    async def enrolled_batches(self, user_id: str) -> list[Batch]:
        rows = await self.conn.execute(
            "SELECT b.* FROM batches b JOIN enrollments e ON e.batch_id = b.id "
            "WHERE e.user_id = ? ORDER BY e.enrolled_at DESC",
            (user_id,),
        )
        return [Batch.from_row(row) for row in await rows.fetchall()]

    @staticmethod
    def _password_dict(row) -> dict:
        data = dict(row)
        data["is_active"] = bool(data["is_active"])
        data["is_exhausted"] = data["current_uses"] >= data["max_uses"]
        return data
