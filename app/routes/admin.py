from dataclasses import asdict

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from app.auth import AuthSession, get_optional_session, require_admin, resolve_admin_gate
from app.database import get_async_conn
from app.models import AdminGate, AnswerOption, AppRole, BatchStatus, ExamType, VideoType
from app.services.access import AccessService
from app.services.catalog import CatalogService
from app.services.enrollment import EnrollmentService
from app.services.messages import MessageService
from app.services.notifications import NotificationService
from app.services.practice_tests import PracticeTestService
from app.services.roles import RoleService

SIDEBAR_LINKS = [
    {"href": "/admin", "label": "Dashboard"},
    {"href": "/admin/batches", "label": "Batches"},
    {"href": "/admin/lectures", "label": "Lectures"},
    {"href": "/admin/timetables", "label": "Timetables"},
    {"href": "/admin/notifications", "label": "Notifications"},
    {"href": "/admin/access", "label": "Access Grants"},
    {"href": "/admin/batch-passwords", "label": "Batch Passwords"},
    {"href": "/admin/subjects", "label": "Subjects"},
    {"href": "/admin/tests", "label": "Tests"},
    {"href": "/admin/verifications", "label": "Verifications"},
    {"href": "/admin/messages", "label": "Messages"},
    {"href": "/admin/users", "label": "Users"},
]

layout_router = APIRouter(tags=["admin"])
router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------


class BatchCreate(BaseModel):
    name: str
    description: str | None = None
    target_exam: ExamType = ExamType.JEE
    status: BatchStatus = BatchStatus.UPCOMING
    tags: list[str] = []
    start_date: str | None = None
    thumbnail_url: str | None = None
    visibility: str = "public"


BATCH_REQUIRED = ("name", "target_exam", "status", "tags", "visibility")
LECTURE_REQUIRED = (
    "title", "subject", "teacher_name", "duration_minutes", "video_type", "topic_tags", "is_locked",
)


class BatchUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    target_exam: ExamType | None = None
    status: BatchStatus | None = None
    tags: list[str] | None = None
    start_date: str | None = None
    thumbnail_url: str | None = None
    visibility: str | None = None


class LectureCreate(BaseModel):
    batch_id: int
    title: str
    subject: str
    teacher_name: str
    date_time: str | None = None
    duration_minutes: int = 60
    video_type: VideoType = VideoType.RECORDED
    video_url: str | None = None
    notes_url: str | None = None
    dpp_url: str | None = None
    special_module_url: str | None = None
    thumbnail_url: str | None = None
    topic_tags: list[str] = []
    is_locked: bool = False
    notify: bool = True


class LectureUpdate(BaseModel):
    title: str | None = None
    subject: str | None = None
    teacher_name: str | None = None
    date_time: str | None = None
    duration_minutes: int | None = None
    video_type: VideoType | None = None
    video_url: str | None = None
    notes_url: str | None = None
    dpp_url: str | None = None
    special_module_url: str | None = None
    thumbnail_url: str | None = None
    topic_tags: list[str] | None = None
    is_locked: bool | None = None


class TimetableEntryBody(BaseModel):
    day: str
    time: str
    subject: str
    topic: str | None = None
    teacher: str | None = None
    lecture_id: int | None = None


class TimetableBody(BaseModel):
    week_range: str | None = None
    entries: list[TimetableEntryBody] = []


class NotificationCreate(BaseModel):
    title: str
    message: str
    user_id: str | None = None  # None broadcasts to every user
    type: str = "general"
    batch_id: int | None = None
    lecture_id: int | None = None


class GrantRequest(BaseModel):
    user_id: str
    hours: int = 24


class PasswordCreate(BaseModel):
    batch_id: int
    password: str | None = None
    valid_hours: int = 24
    max_uses: int = 100


class RoleUpdate(BaseModel):
    role: AppRole


class SubjectCreate(BaseModel):
    name: str
    icon: str | None = None
    sort_order: int = 0


class SubjectUpdate(BaseModel):
    name: str | None = None
    icon: str | None = None
    sort_order: int | None = None


class PracticeTestCreate(BaseModel):
    subject: str
    title: str
    batch_id: int | None = None
    description: str | None = None
    pdf_url: str | None = None
    duration_minutes: int = 60
    is_active: bool = True


class PracticeTestUpdate(BaseModel):
    subject: str | None = None
    title: str | None = None
    batch_id: int | None = None
    description: str | None = None
    pdf_url: str | None = None
    duration_minutes: int | None = None
    is_active: bool | None = None


class QuestionCreate(BaseModel):
    question: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: AnswerOption = AnswerOption.A
    explanation: str | None = None
    question_image_url: str | None = None
    option_a_image_url: str | None = None
    option_b_image_url: str | None = None
    option_c_image_url: str | None = None
    option_d_image_url: str | None = None


class MessageCreate(BaseModel):
    to_user_id: str
    message: str


SUBJECT_REQUIRED = ("name", "sort_order")
TEST_REQUIRED = ("subject", "title", "duration_minutes", "is_active")


def _changes(body: BaseModel, required: tuple[str, ...]) -> dict:
    """Fields the client sent. Columns that cannot be empty may not be nulled."""
    changes = body.model_dump(exclude_unset=True)
    nulled = [field for field in required if field in changes and changes[field] is None]
    if nulled:
        raise HTTPException(status_code=400, detail=f"{', '.join(nulled)} cannot be null")
    return changes


# ------------------------------------------------------------------
# Layout
# ------------------------------------------------------------------


@layout_router.get("/admin", response_model=None)
async def admin_layout(session: AuthSession | None = Depends(get_optional_session)):
    """Navigation shell for the admin dashboard; non-admins go to /auth."""
    if await resolve_admin_gate(session) != AdminGate.ADMIN:
        return RedirectResponse("/auth", status_code=303)
    return {"user_id": session.user_id, "sidebar": SIDEBAR_LINKS}


@router.get("/stats")
async def dashboard_stats() -> dict:
    conn = await get_async_conn()
    try:
        batches = await CatalogService(conn).list_batches()
        row = await conn.execute("SELECT COUNT(*) AS n FROM lectures")
        lectures = (await row.fetchone())["n"]
        active_grants = await AccessService(conn).list_active()
        by_status = {s.value: 0 for s in BatchStatus}
        for batch in batches:
            by_status[batch.status.value] += 1
        return {
            "batches": len(batches),
            "batches_by_status": by_status,
            "lectures": lectures,
            "active_grants": len(active_grants),
        }
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Batches
# ------------------------------------------------------------------


@router.post("/batches")
async def create_batch(body: BatchCreate) -> dict:
    conn = await get_async_conn()
    try:
        batch = await CatalogService(conn).create_batch(body.model_dump())
        return batch.to_dict()
    finally:
        await conn.close()


@router.patch("/batches/{batch_id}")
async def update_batch(batch_id: int, body: BatchUpdate) -> dict:
    conn = await get_async_conn()
    try:
        batch = await CatalogService(conn).update_batch(
            batch_id, _changes(body, BATCH_REQUIRED)
        )
        if batch is None:
            raise HTTPException(status_code=404, detail=f"Batch {batch_id} not found")
        return batch.to_dict()
    finally:
        await conn.close()


@router.delete("/batches/{batch_id}")
async def delete_batch(batch_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await CatalogService(conn).delete_batch(batch_id):
            raise HTTPException(status_code=404, detail=f"Batch {batch_id} not found")
        return {"id": batch_id, "status": "deleted"}
    finally:
        await conn.close()


@router.put("/batches/{batch_id}/timetable")
async def replace_timetable(batch_id: int, body: TimetableBody) -> dict:
    conn = await get_async_conn()
    try:
        service = CatalogService(conn)
        if await service.get_batch(batch_id) is None:
            raise HTTPException(status_code=404, detail=f"Batch {batch_id} not found")
        return await service.replace_timetable(
            batch_id, body.week_range, [e.model_dump() for e in body.entries]
        )
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Lectures
# ------------------------------------------------------------------


@router.post("/lectures")
async def create_lecture(body: LectureCreate) -> dict:
    """Create a lecture and, unless ``notify`` is false, announce it."""
    conn = await get_async_conn()
    try:
        service = CatalogService(conn)
        if await service.get_batch(body.batch_id) is None:
            raise HTTPException(
                status_code=404, detail=f"Batch {body.batch_id} not found"
            )
        lecture = await service.create_lecture(body.model_dump(exclude={"notify"}))
        if body.notify:
            await NotificationService(conn).create(
                f"New lecture: {lecture.title}",
                f"{lecture.subject} with {lecture.teacher_name}",
                type="lecture",
                batch_id=lecture.batch_id,
                lecture_id=lecture.id,
            )
        return lecture.to_dict(has_access=True)
    finally:
        await conn.close()


@router.patch("/lectures/{lecture_id}")
async def update_lecture(lecture_id: int, body: LectureUpdate) -> dict:
    conn = await get_async_conn()
    try:
        lecture = await CatalogService(conn).update_lecture(
            lecture_id, _changes(body, LECTURE_REQUIRED)
        )
        if lecture is None:
            raise HTTPException(status_code=404, detail=f"Lecture {lecture_id} not found")
        return lecture.to_dict(has_access=True)
    finally:
        await conn.close()


@router.delete("/lectures/{lecture_id}")
async def delete_lecture(lecture_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await CatalogService(conn).delete_lecture(lecture_id):
            raise HTTPException(status_code=404, detail=f"Lecture {lecture_id} not found")
        return {"id": lecture_id, "status": "deleted"}
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------


@router.get("/notifications")
async def list_notifications(limit: int = 100) -> list[dict]:
    conn = await get_async_conn()
    try:
        return [asdict(n) for n in await NotificationService(conn).list_all(limit)]
    finally:
        await conn.close()


@router.post("/notifications")
async def create_notification(body: NotificationCreate) -> dict:
    conn = await get_async_conn()
    try:
        notification = await NotificationService(conn).create(
            body.title,
            body.message,
            user_id=body.user_id,
            type=body.type,
            batch_id=body.batch_id,
            lecture_id=body.lecture_id,
        )
        return asdict(notification)
    finally:
        await conn.close()


@router.delete("/notifications/{notification_id}")
async def delete_notification(notification_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await NotificationService(conn).delete(notification_id):
            raise HTTPException(
                status_code=404, detail=f"Notification {notification_id} not found"
            )
        return {"id": notification_id, "status": "deleted"}
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Access grants
# ------------------------------------------------------------------


@router.get("/access")
async def list_active_grants() -> list[dict]:
    conn = await get_async_conn()
    try:
        return [asdict(g) for g in await AccessService(conn).list_active()]
    finally:
        await conn.close()


@router.post("/access")
async def grant_access(body: GrantRequest) -> dict:
    if body.hours <= 0:
        raise HTTPException(status_code=400, detail="hours must be positive")
    conn = await get_async_conn()
    try:
        grant = await AccessService(conn).grant(body.user_id, body.hours)
        return asdict(grant)
    finally:
        await conn.close()


@router.delete("/access/{grant_id}")
async def revoke_access(grant_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await AccessService(conn).revoke(grant_id):
            raise HTTPException(status_code=404, detail=f"Grant {grant_id} not found")
        return {"id": grant_id, "status": "revoked"}
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Batch passwords
# ------------------------------------------------------------------


@router.get("/batch-passwords")
async def list_batch_passwords() -> list[dict]:
    conn = await get_async_conn()
    try:
        return await EnrollmentService(conn).list_passwords()
    finally:
        await conn.close()


@router.post("/batch-passwords")
async def create_batch_password(body: PasswordCreate) -> dict:
    if body.valid_hours <= 0:
        raise HTTPException(status_code=400, detail="valid_hours must be positive")
    if body.max_uses <= 0:
        raise HTTPException(status_code=400, detail="max_uses must be positive")
    conn = await get_async_conn()
    try:
        if await CatalogService(conn).get_batch(body.batch_id) is None:
            raise HTTPException(
                status_code=404, detail=f"Batch {body.batch_id} not found"
            )
        return await EnrollmentService(conn).create_password(
            body.batch_id, body.password, body.valid_hours, body.max_uses
        )
    finally:
        await conn.close()


@router.delete("/batch-passwords/{password_id}")
async def delete_batch_password(password_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await EnrollmentService(conn).delete_password(password_id):
            raise HTTPException(
                status_code=404, detail=f"Password {password_id} not found"
            )
        return {"id": password_id, "status": "deleted"}
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Users
# ------------------------------------------------------------------


@router.get("/users/roles")
async def list_roles() -> list[dict]:
    conn = await get_async_conn()
    try:
        return await RoleService(conn).list_roles()
    finally:
        await conn.close()


@router.put("/users/{user_id}/role")
async def set_role(user_id: str, body: RoleUpdate) -> dict:
    conn = await get_async_conn()
    try:
        return await RoleService(conn).set_role(user_id, body.role)
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Subjects
# ------------------------------------------------------------------


@router.post("/subjects")
async def create_subject(body: SubjectCreate) -> dict:
    conn = await get_async_conn()
    try:
        subject = await CatalogService(conn).create_subject(body.model_dump())
        return asdict(subject)
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=409, detail=f"Subject {body.name!r} already exists")
    finally:
        await conn.close()


@router.patch("/subjects/{subject_id}")
async def update_subject(subject_id: int, body: SubjectUpdate) -> dict:
    conn = await get_async_conn()
    try:
        subject = await CatalogService(conn).update_subject(
            subject_id, _changes(body, SUBJECT_REQUIRED)
        )
        if subject is None:
            raise HTTPException(status_code=404, detail=f"Subject {subject_id} not found")
        return asdict(subject)
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=409, detail=f"Subject {body.name!r} already exists")
    finally:
        await conn.close()


@router.delete("/subjects/{subject_id}")
async def delete_subject(subject_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await CatalogService(conn).delete_subject(subject_id):
            raise HTTPException(status_code=404, detail=f"Subject {subject_id} not found")
        return {"id": subject_id, "status": "deleted"}
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Practice tests
# ------------------------------------------------------------------


@router.get("/tests")
async def list_all_tests() -> list[dict]:
    """Every test, including inactive ones."""
    conn = await get_async_conn()
    try:
        tests = await PracticeTestService(conn).list_tests(active_only=False)
        return [asdict(t) for t in tests]
    finally:
        await conn.close()


@router.post("/tests")
async def create_test(body: PracticeTestCreate) -> dict:
    if body.duration_minutes <= 0:
        raise HTTPException(status_code=400, detail="duration_minutes must be positive")
    conn = await get_async_conn()
    try:
        if body.batch_id is not None and await CatalogService(conn).get_batch(body.batch_id) is None:
            raise HTTPException(status_code=404, detail=f"Batch {body.batch_id} not found")
        return asdict(await PracticeTestService(conn).create_test(body.model_dump()))
    finally:
        await conn.close()


@router.patch("/tests/{test_id}")
async def update_test(test_id: int, body: PracticeTestUpdate) -> dict:
    if body.duration_minutes is not None and body.duration_minutes <= 0:
        raise HTTPException(status_code=400, detail="duration_minutes must be positive")
    conn = await get_async_conn()
    try:
        test = await PracticeTestService(conn).update_test(
            test_id, _changes(body, TEST_REQUIRED)
        )
        if test is None:
            raise HTTPException(status_code=404, detail=f"Test {test_id} not found")
        return asdict(test)
    finally:
        await conn.close()


@router.delete("/tests/{test_id}")
async def delete_test(test_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await PracticeTestService(conn).delete_test(test_id):
            raise HTTPException(status_code=404, detail=f"Test {test_id} not found")
        return {"id": test_id, "status": "deleted"}
    finally:
        await conn.close()


@router.get("/tests/{test_id}/questions")
async def list_test_questions(test_id: int) -> list[dict]:
    """Questions with the answer key, for editing."""
    conn = await get_async_conn()
    try:
        service = PracticeTestService(conn)
        if await service.get_test(test_id) is None:
            raise HTTPException(status_code=404, detail=f"Test {test_id} not found")
        return [q.to_dict(reveal=True) for q in await service.list_questions(test_id)]
    finally:
        await conn.close()


@router.post("/tests/{test_id}/questions")
async def add_test_question(test_id: int, body: QuestionCreate) -> dict:
    conn = await get_async_conn()
    try:
        service = PracticeTestService(conn)
        if await service.get_test(test_id) is None:
            raise HTTPException(status_code=404, detail=f"Test {test_id} not found")
        question = await service.add_question(test_id, body.model_dump())
        return question.to_dict(reveal=True)
    finally:
        await conn.close()


@router.delete("/questions/{question_id}")
async def delete_test_question(question_id: int) -> dict:
    conn = await get_async_conn()
    try:
        if not await PracticeTestService(conn).delete_question(question_id):
            raise HTTPException(status_code=404, detail=f"Question {question_id} not found")
        return {"id": question_id, "status": "deleted"}
    finally:
        await conn.close()


@router.get("/tests/{test_id}/stats")
async def test_stats(test_id: int) -> dict:
    conn = await get_async_conn()
    try:
        service = PracticeTestService(conn)
        if await service.get_test(test_id) is None:
            raise HTTPException(status_code=404, detail=f"Test {test_id} not found")
        return await service.stats(test_id)
    finally:
        await conn.close()


@router.get("/tests/{test_id}/attempts")
async def test_attempts(test_id: int) -> list[dict]:
    conn = await get_async_conn()
    try:
        return await PracticeTestService(conn).list_attempts(test_id=test_id)
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Verifications
# ------------------------------------------------------------------


@router.get("/verifications")
async def list_verifications(limit: int = 100) -> dict:
    """Who generated verification links and who completed them."""
    conn = await get_async_conn()
    try:
        return await AccessService(conn).list_verifications(limit)
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Personal messages
# ------------------------------------------------------------------


@router.get("/messages")
async def list_messages(limit: int = 100) -> list[dict]:
    conn = await get_async_conn()
    try:
        return [asdict(m) for m in await MessageService(conn).list_recent(limit)]
    finally:
        await conn.close()


@router.post("/messages")
async def send_message(
    body: MessageCreate, session: AuthSession = Depends(require_admin)
) -> dict:
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    conn = await get_async_conn()
    try:
        sent = await MessageService(conn).send(
            session.user_id, body.to_user_id, body.message, is_admin_message=True
        )
        return asdict(sent)
    finally:
        await conn.close()
