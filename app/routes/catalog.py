from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.auth import AuthSession, get_optional_session, get_session
from app.database import get_async_conn
from app.models import BatchStatus
from app.services.access import AccessService, utcnow
from app.services.catalog import CatalogService
from app.services.enrollment import EnrollmentError, EnrollmentService

router = APIRouter(prefix="/api", tags=["catalog"])


class EnrollRequest(BaseModel):
    password: str


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


async def _viewer_has_access(conn, session: AuthSession | None) -> bool:
    if session is None:
        return False
    return await AccessService(conn).has_access(session.user_id)


async def _get_batch_or_404(service: CatalogService, batch_id: int):
    batch = await service.get_batch(batch_id)
    if batch is None:
        raise HTTPException(status_code=404, detail=f"Batch {batch_id} not found")
    return batch


# ------------------------------------------------------------------
# Batches
# ------------------------------------------------------------------


@router.get("/batches")
async def list_batches(status: BatchStatus | None = None) -> list[dict]:
    conn = await get_async_conn()
    try:
        batches = await CatalogService(conn).list_batches(status)
        return [b.to_dict() for b in batches]
    finally:
        await conn.close()


@router.get("/batches/{batch_id}")
async def get_batch(batch_id: int) -> dict:
    conn = await get_async_conn()
    try:
        batch = await _get_batch_or_404(CatalogService(conn), batch_id)
        return batch.to_dict()
    finally:
        await conn.close()


@router.get("/batches/{batch_id}/lectures")
async def list_lectures(
    batch_id: int, session: AuthSession | None = Depends(get_optional_session)
) -> list[dict]:
    conn = await get_async_conn()
    try:
        service = CatalogService(conn)
        await _get_batch_or_404(service, batch_id)
        has_access = await _viewer_has_access(conn, session)
        return [
            lecture.to_dict(has_access=has_access)
            for lecture in await service.list_lectures(batch_id)
        ]
    finally:
        await conn.close()


@router.get("/batches/{batch_id}/timetable")
async def get_timetable(batch_id: int) -> dict:
    conn = await get_async_conn()
    try:
        service = CatalogService(conn)
        await _get_batch_or_404(service, batch_id)
        timetable = await service.get_timetable(batch_id)
        if timetable is None:
            raise HTTPException(
                status_code=404, detail=f"No timetable for batch {batch_id}"
            )
        return timetable
    finally:
        await conn.close()


@router.get("/subjects")
async def list_subjects() -> list[dict]:
    conn = await get_async_conn()
    try:
        return [asdict(s) for s in await CatalogService(conn).list_subjects()]
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Lectures
# ------------------------------------------------------------------


@router.get("/lectures/{lecture_id}")
async def get_lecture(
    lecture_id: int, session: AuthSession | None = Depends(get_optional_session)
) -> dict:
    conn = await get_async_conn()
    try:
        lecture = await CatalogService(conn).get_lecture(lecture_id)
        if lecture is None:
            raise HTTPException(status_code=404, detail=f"Lecture {lecture_id} not found")
        return lecture.to_dict(has_access=await _viewer_has_access(conn, session))
    finally:
        await conn.close()


@router.get("/live/today")
async def live_today(session: AuthSession | None = Depends(get_optional_session)) -> list[dict]:
    """Lectures scheduled for today, live sessions first."""
    conn = await get_async_conn()
    try:
        lectures = await CatalogService(conn).lectures_on(utcnow().date())
        has_access = await _viewer_has_access(conn, session)
        lectures.sort(key=lambda lec: lec.video_type.value != "live")
        return [lecture.to_dict(has_access=has_access) for lecture in lectures]
    finally:
        await conn.close()


# ------------------------------------------------------------------
# Enrollment
# ------------------------------------------------------------------


@router.post("/enroll")
async def enroll(body: EnrollRequest, session: AuthSession = Depends(get_session)) -> dict:
    """Join a batch with an access password handed out by an admin."""
    conn = await get_async_conn()
    try:
        try:
            return await EnrollmentService(conn).enroll(session.user_id, body.password)
        except EnrollmentError as e:
            raise HTTPException(status_code=400, detail=e.reason)
    finally:
        await conn.close()


@router.get("/me/batches")
async def my_batches(session: AuthSession = Depends(get_session)) -> list[dict]:
    conn = await get_async_conn()
    try:
        batches = await EnrollmentService(conn).enrolled_batches(session.user_id)
        return [b.to_dict() for b in batches]
    finally:
        await conn.close()
