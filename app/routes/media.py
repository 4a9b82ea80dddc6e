import logging
import os

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from app.auth import AuthSession, get_session
from app.services.storage import ALLOWED_MEDIA_EXTENSIONS, StorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["media"])


@router.post("/media")
async def upload_media(
    file: UploadFile = File(...), session: AuthSession = Depends(get_session)
) -> dict:
    """Store an uploaded image or document and return its public URL."""
    filename = file.filename or "upload"
    ext = os.path.splitext(filename)[1].lower()
    if ext not in ALLOWED_MEDIA_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {ext or 'none'}",
        )

    name = await StorageService.save_media(filename, await file.read())
    logger.info("Stored media %s for %s", name, session.user_id)
    return {"name": name, "url": StorageService.public_url(name)}
