import json
import os
import uuid

import aiofiles

from app.config import settings

ALLOWED_MEDIA_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".pdf")


class StorageService:
    @staticmethod
    def media_dir() -> str:
        os.makedirs(settings.media_root, exist_ok=True)
        return settings.media_root

    @staticmethod
    def media_name(filename: str) -> str:
        """Random on-disk name that keeps the upload's extension."""
        ext = os.path.splitext(filename)[1].lower()
        return f"{uuid.uuid4().hex}{ext}"

    @staticmethod
    def public_url(name: str) -> str:
        return f"{settings.public_base_url.rstrip('/')}/media/{name}"

    @staticmethod
    async def save_media(filename: str, content: bytes) -> str:
        """Write an uploaded file under the media root; return its stored name."""
        name = StorageService.media_name(filename)
        async with aiofiles.open(os.path.join(StorageService.media_dir(), name), "wb") as f:
            await f.write(content)
        return name

    @staticmethod
    def write_json(path: str, data: dict | list) -> None:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    @staticmethod
    def read_json(path: str) -> dict | list:
        with open(path) as f:
            return json.load(f)
