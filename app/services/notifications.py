import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import AsyncIterator

from app.models import ChangeEvent, ChangeType, Notification, NotificationPermission
from app.services.access import to_iso, utcnow

logger = logging.getLogger(__name__)

DEFAULT_ALERT_TITLE = "New Notification"
DEFAULT_ALERT_MESSAGE = "You have a new notification"


class NotificationFeed:
    """In-process realtime feed of row changes on the notifications table.

    Each subscriber gets its own bounded queue. ``subscribe()`` is an async
    context manager: the queue is detached on every exit path, including
    cancellation of the consuming task.
    """

    def __init__(self, max_queue: int = 100) -> None:
        self._max_queue = max_queue
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping %s event for a slow subscriber", event.type.value)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)


feed = NotificationFeed()


class NotificationService:
    def __init__(self, conn, feed: NotificationFeed = feed) -> None:
        self.conn = conn
        self.feed = feed

    async def unread_count(self, user_id: str) -> int:
        row = await self.conn.execute(
            "SELECT COUNT(*) AS n FROM notifications "
            "WHERE is_read = 0 AND (user_id IS NULL OR user_id = ?)",
            (user_id,),
        )
        return (await row.fetchone())["n"]

    async def unread_snapshot(self, user_id: str) -> tuple[int, int]:
        """Unread count for *user_id* and the newest notification id, read together."""
        row = await self.conn.execute(
            "SELECT COALESCE(SUM(is_read = 0 AND (user_id IS NULL OR user_id = ?)), 0) AS n, "
            "COALESCE(MAX(id), 0) AS last_id FROM notifications",
            (user_id,),
        )
        found = await row.fetchone()
        return found["n"], found["last_id"]

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Notification]:
        rows = await self.conn.execute(
            "SELECT * FROM notifications WHERE user_id IS NULL OR user_id = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (user_id, limit),
        )
        return [Notification.from_row(row) for row in await rows.fetchall()]

    async def list_all(self, limit: int = 100) -> list[Notification]:
        rows = await self.conn.execute(
            "SELECT * FROM notifications ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [Notification.from_row(row) for row in await rows.fetchall()]

    async def get(self, notification_id: int) -> Notification | None:
        row = await self.conn.execute(
            "SELECT * FROM notifications WHERE id = ?", (notification_id,)
        )
        found = await row.fetchone()
        return Notification.from_row(found) if found else None

    async def create(
        self,
        title: str,
        message: str,
        *,
        user_id: str | None = None,
        type: str = "general",
        batch_id: int | None = None,
        lecture_id: int | None = None,
    ) -> Notification:
        """Insert a notification; ``user_id=None`` broadcasts to everyone."""
        cursor = await self.conn.execute(
            "INSERT INTO notifications "
            "(user_id, type, title, message, batch_id, lecture_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (user_id, type, title, message, batch_id, lecture_id, to_iso(utcnow())),
        )
        await self.conn.commit()
        notification = await self.get(cursor.lastrowid)
        self.feed.publish(ChangeEvent(ChangeType.INSERT, new=asdict(notification)))
        return notification

    async def mark_read(self, notification_id: int) -> Notification | None:
        before = await self.get(notification_id)
        if before is None:
            return None
        await self.conn.execute(
            "UPDATE notifications SET is_read = 1 WHERE id = ?", (notification_id,)
        )
        await self.conn.commit()
        after = await self.get(notification_id)
        self.feed.publish(
            ChangeEvent(ChangeType.UPDATE, new=asdict(after), old=asdict(before))
        )
        return after

    async def delete(self, notification_id: int) -> bool:
        before = await self.get(notification_id)
        if before is None:
            return False
        await self.conn.execute(
            "DELETE FROM notifications WHERE id = ?", (notification_id,)
        )
        await self.conn.commit()
        self.feed.publish(ChangeEvent(ChangeType.DELETE, old=asdict(before)))
        return True


class UnreadCounter:
    """Cached unread count for one user, kept current from feed events.

    A matching INSERT bumps the count in memory. UPDATE and DELETE events
    cannot be applied locally, so ``apply`` reports that a re-fetch is due.

    ``last_seen_id`` is the newest row id covered by the last fetch. INSERT
    events at or below it are already counted and are skipped.
    """

    def __init__(self, user_id: str, count: int = 0, last_seen_id: int = 0) -> None:
        self.user_id = user_id
        self.count = count
        self.last_seen_id = last_seen_id

    def matches(self, event: ChangeEvent) -> bool:
        if event.type != ChangeType.INSERT:
            return False
        owner = event.new.get("user_id")
        return owner is None or owner == self.user_id

    def apply(self, event: ChangeEvent) -> bool:
        if event.type == ChangeType.INSERT:
            row_id = event.new.get("id") or 0
            if row_id and row_id <= self.last_seen_id:
                return False
            if self.matches(event) and not event.new.get("is_read"):
                self.count += 1
            self.last_seen_id = max(self.last_seen_id, row_id)
            return False
        return True

    async def refresh(self, service: NotificationService) -> int:
        self.count, last_id = await service.unread_snapshot(self.user_id)
        self.last_seen_id = max(self.last_seen_id, last_id)
        return self.count


@dataclass
class ClientPresence:
    """What a connected client has told us about itself."""

    permission: NotificationPermission = NotificationPermission.DEFAULT
    hidden: bool = False

    def update(self, message: dict) -> None:
        if "permission" in message:
            try:
                self.permission = NotificationPermission(message["permission"])
            except ValueError:
                logger.debug("Ignoring unknown permission %r", message["permission"])
        if "hidden" in message:
            self.hidden = bool(message["hidden"])

    def should_alert(self) -> bool:
        # Native alerts only while the page is backgrounded.
        return self.permission == NotificationPermission.GRANTED and self.hidden


def build_alert(event: ChangeEvent) -> dict:
    return {
        "type": "alert",
        "title": event.new.get("title") or DEFAULT_ALERT_TITLE,
        "message": event.new.get("message") or DEFAULT_ALERT_MESSAGE,
    }
