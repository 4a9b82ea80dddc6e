from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.auth import AuthSession, get_session
from app.database import get_async_conn
from app.services.messages import MessageService, NoAdminThreadError

router = APIRouter(prefix="/api/messages", tags=["messages"])


class ReplyRequest(BaseModel):
    message: str


@router.get("")
async def my_messages(session: AuthSession = Depends(get_session)) -> dict:
    """The caller's conversation with admins, oldest first."""
    conn = await get_async_conn()
    try:
        service = MessageService(conn)
        messages = await service.thread(session.user_id)
        return {
            "messages": [asdict(m) for m in messages],
            "unread": await service.unread_count(session.user_id),
        }
    finally:
        await conn.close()


@router.post("/read")
async def mark_read(session: AuthSession = Depends(get_session)) -> dict:
    conn = await get_async_conn()
    try:
        return {"updated": await MessageService(conn).mark_all_read(session.user_id)}
    finally:
        await conn.close()


@router.post("/reply")
async def reply(body: ReplyRequest, session: AuthSession = Depends(get_session)) -> dict:
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    conn = await get_async_conn()
    try:
        try:
            sent = await MessageService(conn).reply(session.user_id, body.message)
        except NoAdminThreadError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return asdict(sent)
    finally:
        await conn.close()
