import logging

import groq
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.auth import AuthSession, get_session
from app.config import settings
from app.services.chat import ChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


class ChatMessage(BaseModel):
    role: str
    content: str | None = None


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = []
    imageUrl: str | None = None


def get_chat_service() -> ChatService:
    return ChatService()


@router.post("/ai-chat")
async def ai_chat(
    body: ChatRequest,
    session: AuthSession = Depends(get_session),
) -> JSONResponse:
    """Answer a study question. Returns ``{message}`` or ``{error}`` with 500."""
    if not settings.groq_api_key:
        logger.error("GROQ_API_KEY not configured")
        return JSONResponse({"error": "AI service not configured"}, status_code=500)

    messages = [m.model_dump() for m in body.messages]
    logger.info(
        "Relaying %d messages for %s (image=%s)",
        len(messages), session.user_id, bool(body.imageUrl),
    )
    try:
        reply = await get_chat_service().reply(messages, body.imageUrl)
    except groq.APIStatusError as e:
        logger.error("Groq error: %s %s", e.status_code, e.response.text)
        return JSONResponse({"error": "AI service error"}, status_code=500)
    except Exception:
        logger.exception("AI chat error")
        return JSONResponse({"error": "Failed to process request"}, status_code=500)

    return JSONResponse({"message": reply})
