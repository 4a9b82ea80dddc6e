import enum
import json
from datetime import date

from app.models import Batch, BatchStatus, Lecture, Subject

BATCH_COLUMNS = (
    "name", "description", "target_exam", "status", "tags",
    "start_date", "thumbnail_url", "visibility",
)
LECTURE_COLUMNS = (
    "batch_id", "title", "subject", "teacher_name", "date_time",
    "duration_minutes", "video_type", "video_url", "notes_url", "dpp_url",
    "special_module_url", "thumbnail_url", "topic_tags", "is_locked",
)
SUBJECT_COLUMNS = ("name", "icon", "sort_order")
# List-valued fields are stored as JSON text in a *_json column.
_JSON_FIELDS = {"tags": "tags_json", "topic_tags": "topic_tags_json"}


def to_columns(data: dict, allowed: tuple[str, ...]) -> dict:
    cols: dict = {}
    for key, value in data.items():
        if key not in allowed:
            continue
        if key in _JSON_FIELDS:
            cols[_JSON_FIELDS[key]] = json.dumps(value or [])
        elif isinstance(value, enum.Enum):
            cols[key] = value.value
        elif isinstance(value, bool):
            cols[key] = int(value)
        else:
            cols[key] = value
    return cols


class CatalogService:
    """Batches, lectures and timetables."""

    def __init__(self, conn) -> None:
        self.conn = conn

    async def _insert(self, table: str, cols: dict) -> int:
        names = ", ".join(cols)
        marks = ", ".join("?" for _ in cols)
        cursor = await self.conn.execute(
            f"INSERT INTO {table} ({names}) VALUES ({marks})", tuple(cols.values())
        )
        await self.conn.commit()
        return cursor.lastrowid

    async def _update(self, table: str, row_id: int, cols: dict) -> bool:
        if not cols:
            return True
        assignments = ", ".join(f"{name} = ?" for name in cols)
        cursor = await self.conn.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?",
            (*cols.values(), row_id),
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def list_batches(self, status: BatchStatus | None = None) -> list[Batch]:
        if status is not None:
            rows = await self.conn.execute(
                "SELECT * FROM batches WHERE status = ? ORDER BY created_at DESC, id DESC",
                (status.value,),
            )
        else:
            rows = await self.conn.execute(
                "SELECT * FROM batches ORDER BY created_at DESC, id DESC"
            )
        return [Batch.from_row(row) for row in await rows.fetchall()]

    async def get_batch(self, batch_id: int) -> Batch | None:
        row = await self.conn.execute("SELECT * FROM batches WHERE id = ?", (batch_id,))
        found = await row.fetchone()
        return Batch.from_row(found) if found else None

    async def create_batch(self, data: dict) -> Batch:
        batch_id = await self._insert("batches", to_columns(data, BATCH_COLUMNS))
        return await self.get_batch(batch_id)

    async def update_batch(self, batch_id: int, data: dict) -> Batch | None:
        if not await self._update("batches", batch_id, to_columns(data, BATCH_COLUMNS)):
            return None
        return await self.get_batch(batch_id)

    async def delete_batch(self, batch_id: int) -> bool:
        row = await self.conn.execute(
            "SELECT id FROM timetables WHERE batch_id = ?", (batch_id,)
        )
        timetable = await row.fetchone()
        if timetable:
            await self.conn.execute(
                "DELETE FROM timetable_entries WHERE timetable_id = ?", (timetable["id"],)
            )
            await self.conn.execute("DELETE FROM timetables WHERE id = ?", (timetable["id"],))
        await self.conn.execute("DELETE FROM lectures WHERE batch_id = ?", (batch_id,))
        cursor = await self.conn.execute("DELETE FROM batches WHERE id = ?", (batch_id,))
        await self.conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Lectures
    # ------------------------------------------------------------------

    async def list_lectures(self, batch_id: int) -> list[Lecture]:
        rows = await self.conn.execute(
            "SELECT * FROM lectures WHERE batch_id = ? ORDER BY date_time, id",
            (batch_id,),
        )
        return [Lecture.from_row(row) for row in await rows.fetchall()]

    async def lectures_on(self, day: date) -> list[Lecture]:
        """Lectures scheduled on *day* (``date_time`` is ISO-8601)."""
        rows = await self.conn.execute(
            "SELECT * FROM lectures WHERE substr(date_time, 1, 10) = ? ORDER BY date_time",
            (day.isoformat(),),
        )
        return [Lecture.from_row(row) for row in await rows.fetchall()]

    async def get_lecture(self, lecture_id: int) -> Lecture | None:
        row = await self.conn.execute("SELECT * FROM lectures WHERE id = ?", (lecture_id,))
        found = await row.fetchone()
        return Lecture.from_row(found) if found else None

    async def create_lecture(self, data: dict) -> Lecture:
        lecture_id = await self._insert("lectures", to_columns(data, LECTURE_COLUMNS))
        return await self.get_lecture(lecture_id)

    async def update_lecture(self, lecture_id: int, data: dict) -> Lecture | None:
        if not await self._update("lectures", lecture_id, to_columns(data, LECTURE_COLUMNS)):
            return None
        return await self.get_lecture(lecture_id)

    async def delete_lecture(self, lecture_id: int) -> bool:
        cursor = await self.conn.execute("DELETE FROM lectures WHERE id = ?", (lecture_id,))
        await self.conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Timetables (one per batch)
    # ------------------------------------------------------------------

    async def get_timetable(self, batch_id: int) -> dict | None:
        row = await self.conn.execute(
            "SELECT * FROM timetables WHERE batch_id = ?", (batch_id,)
        )
        timetable = await row.fetchone()
        if not timetable:
            return None
        rows = await self.conn.execute(
            "SELECT day, time, subject, topic, teacher, lecture_id "
            "FROM timetable_entries WHERE timetable_id = ? ORDER BY id",
            (timetable["id"],),
        )
        return {
            "id": timetable["id"],
            "batch_id": batch_id,
            "week_range": timetable["week_range"],
            "entries": [dict(entry) for entry in await rows.fetchall()],
        }

    async def replace_timetable(
        self, batch_id: int, week_range: str | None, entries: list[dict]
    ) -> dict:
        await self.conn.execute(
            "INSERT INTO timetables (batch_id, week_range) VALUES (?, ?) "
            "ON CONFLICT(batch_id) DO UPDATE SET week_range = excluded.week_range",
            (batch_id, week_range),
        )
        row = await self.conn.execute(
            "SELECT id FROM timetables WHERE batch_id = ?", (batch_id,)
        )
        timetable_id = (await row.fetchone())["id"]
        await self.conn.execute(
            "DELETE FROM timetable_entries WHERE timetable_id = ?", (timetable_id,)
        )
        await self.conn.executemany(
            "INSERT INTO timetable_entries "
            "(timetable_id, day, time, subject, topic, teacher, lecture_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    timetable_id,
                    e["day"],
                    e["time"],
                    e["subject"],
                    e.get("topic"),
                    e.get("teacher"),
                    e.get("lecture_id"),
                )
                for e in entries
            ],
        )
        await self.conn.commit()
        return await self.get_timetable(batch_id)

    # ------------------------------------------------------------------
    # Subjects
    # ------------------------------------------------------------------

    async def list_subjects(self) -> list[Subject]:
        rows = await self.conn.execute("SELECT * FROM subjects ORDER BY sort_order, name")
        return [Subject.from_row(row) for row in await rows.fetchall()]

    async def get_subject(self, subject_id: int) -> Subject | None:
        row = await self.conn.execute("SELECT * FROM subjects WHERE id = ?", (subject_id,))
        found = await row.fetchone()
        return Subject.from_row(found) if found else None

    async def create_subject(self, data: dict) -> Subject:
        subject_id = await self._insert("subjects", to_columns(data, SUBJECT_COLUMNS))
        return await self.get_subject(subject_id)

    async def update_subject(self, subject_id: int, data: dict) -> Subject | None:
        if not await self._update("subjects", subject_id, to_columns(data, SUBJECT_COLUMNS)):
            return None
        return await self.get_subject(subject_id)

    async def delete_subject(self, subject_id: int) -> bool:
        cursor = await self.conn.execute("DELETE FROM subjects WHERE id = ?", (subject_id,))
        await self.conn.commit()
        return cursor.rowcount > 0
