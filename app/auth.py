import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.database import get_async_conn
from app.models import AdminGate, AppRole
from app.services.roles import RoleService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthSession:
    """The signed-in user for one request. Built by ``get_session`` and
    passed explicitly to whatever needs it."""

    user_id: str
    email: str | None
    token: str


class NotAdminError(Exception):
    """Raised by ``require_admin``; the app turns it into a redirect to /auth."""


def create_session_token(
    user_id: str,
    email: str | None = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Mint a bearer token in the identity provider's format."""
    payload = {
        "sub": user_id,
        "email": email,
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_session_token(token: str) -> AuthSession:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return AuthSession(user_id=user_id, email=payload.get("email"), token=token)


async def get_optional_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthSession | None:
    if not credentials:
        return None
    return decode_session_token(credentials.credentials)


async def get_session(
    session: AuthSession | None = Depends(get_optional_session),
) -> AuthSession:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Please log in first"
        )
    return session


async def resolve_admin_gate(session: AuthSession | None) -> AdminGate:
    """Resolve the role check. A failed lookup counts as NOT_ADMIN."""
    if session is None:
        return AdminGate.NOT_ADMIN
    try:
        conn = await get_async_conn()
        try:
            role = await RoleService(conn).get_role(session.user_id)
        finally:
            await conn.close()
    except Exception:
        logger.exception("Role lookup failed for user %s", session.user_id)
        return AdminGate.NOT_ADMIN
    return AdminGate.ADMIN if role == AppRole.ADMIN else AdminGate.NOT_ADMIN


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthSession:
    try:
        session = decode_session_token(credentials.credentials) if credentials else None
    except HTTPException:
        session = None
    if await resolve_admin_gate(session) != AdminGate.ADMIN:
        raise NotAdminError()
    return session
