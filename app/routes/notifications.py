import asyncio
import json
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from app.auth import AuthSession, decode_session_token, get_session
from app.database import get_async_conn
from app.services.notifications import (
    ClientPresence,
    NotificationService,
    UnreadCounter,
    build_alert,
    feed,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


# ==================================================================
# REST endpoints
# ==================================================================


@router.get("/api/notifications")
async def list_notifications(
    limit: int = 50, session: AuthSession = Depends(get_session)
) -> list[dict]:
    """Broadcast notifications plus the caller's own, newest first."""
    conn = await get_async_conn()
    try:
        items = await NotificationService(conn).list_for_user(session.user_id, limit)
        return [asdict(n) for n in items]
    finally:
        await conn.close()


@router.get("/api/notifications/unread-count")
async def unread_count(session: AuthSession = Depends(get_session)) -> dict:
    conn = await get_async_conn()
    try:
        count = await NotificationService(conn).unread_count(session.user_id)
        return {"count": count}
    finally:
        await conn.close()


@router.post("/api/notifications/{notification_id}/read")
async def mark_read(
    notification_id: int, session: AuthSession = Depends(get_session)
) -> dict:
    conn = await get_async_conn()
    try:
        service = NotificationService(conn)
        existing = await service.get(notification_id)
        if existing is None or not existing.is_visible_to(session.user_id):
            raise HTTPException(
                status_code=404, detail=f"Notification {notification_id} not found"
            )
        return asdict(await service.mark_read(notification_id))
    finally:
        await conn.close()


# ==================================================================
# WebSocket endpoint
# ==================================================================


@router.websocket("/ws/notifications")
async def notifications_ws(websocket: WebSocket, token: str | None = None) -> None:
    """Live unread counter and alerts for one signed-in client.

    Server → client: ``{"type": "unread_count", "count": n}`` and
    ``{"type": "alert", "title": ..., "message": ...}``.
    Client → server: ``{"permission": "default|granted|denied"}`` and
    ``{"hidden": bool}``, each acknowledged with a ``presence`` message.
    """
    try:
        session = decode_session_token(token or "")
    except HTTPException:
        await websocket.close(code=4401)
        return
    await websocket.accept()

    presence = ClientPresence()
    counter = UnreadCounter(session.user_id)

    # Subscribe before the first count so no INSERT is missed; events the
    # count already covers are skipped by id.
    async with feed.subscribe() as events:
        await _refresh(counter)
        await websocket.send_json({"type": "unread_count", "count": counter.count})

        receiver = asyncio.create_task(_receive_presence(websocket, presence))
        try:
            while True:
                getter = asyncio.create_task(events.get())
                done, _ = await asyncio.wait(
                    {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
                )
                if receiver in done:
                    getter.cancel()
                    break

                event = getter.result()
                before = counter.count
                if counter.apply(event):
                    await _refresh(counter)
                if counter.count != before:
                    await websocket.send_json(
                        {"type": "unread_count", "count": counter.count}
                    )
                if counter.matches(event) and presence.should_alert():
                    await websocket.send_json(build_alert(event))
        except WebSocketDisconnect:
            pass
        finally:
            receiver.cancel()


# ==================================================================
# Internal helpers
# ==================================================================


async def _refresh(counter: UnreadCounter) -> None:
    conn = await get_async_conn()
    try:
        await counter.refresh(NotificationService(conn))
    finally:
        await conn.close()


async def _receive_presence(websocket: WebSocket, presence: ClientPresence) -> None:
    """Apply client state messages until the client disconnects."""
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                continue  # keep-alive pings are plain text
            if isinstance(message, dict):
                presence.update(message)
                await websocket.send_json({
                    "type": "presence",
                    "permission": presence.permission.value,
                    "hidden": presence.hidden,
                })
    except WebSocketDisconnect:
        return
