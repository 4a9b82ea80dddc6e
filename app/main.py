import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles

from app.auth import NotAdminError
from app.config import settings
from app.database import init_db
from app.routes import access, admin, catalog, chat, media, messages, notifications, practice_tests

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Create SQLite tables on startup. Realtime subscriptions are owned by
    their WebSocket handlers and close with them."""
    await init_db()
    logger.info("Database ready at %s", settings.database_path)
    yield


app = FastAPI(
    title="edu-portal",
    description="Batches, lectures and timetables with time-boxed premium access and an AI study assistant",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

app.include_router(access.router)
app.include_router(notifications.router)
app.include_router(chat.router)
app.include_router(catalog.router)
app.include_router(media.router)
app.include_router(practice_tests.router)
app.include_router(messages.router)
app.include_router(admin.layout_router)
app.include_router(admin.router)

# Uploaded media (chat images, thumbnails)
app.mount(
    "/media",
    StaticFiles(directory=settings.media_root, check_dir=False),
    name="media",
)


@app.exception_handler(NotAdminError)
async def redirect_non_admin(request: Request, _exc: NotAdminError) -> RedirectResponse:
    logger.info("Non-admin request to %s redirected to /auth", request.url.path)
    return RedirectResponse("/auth", status_code=303)


@app.get("/auth")
async def auth_page() -> dict:
    """Where non-admins and signed-out users are sent."""
    return {"detail": "Sign in required"}
