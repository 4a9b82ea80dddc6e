import logging
from dataclasses import asdict
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from app.auth import AuthSession, get_session
from app.config import settings
from app.database import get_async_conn
from app.services.access import AccessService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/access", tags=["access"])


class CheckAccessRequest(BaseModel):
    jwt: str | None = None


def _verify_redirect(**params) -> RedirectResponse:
    url = f"{settings.app_url.rstrip('/')}/verify-success?{urlencode(params)}"
    return RedirectResponse(url, status_code=302)


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@router.post("/check")
async def check_access(
    body: CheckAccessRequest, session: AuthSession = Depends(get_session)
):
    """Report whether the caller currently holds premium access."""
    conn = await get_async_conn()
    try:
        status = await AccessService(conn).check(session.user_id, body.jwt)
        return status.to_dict()
    except Exception:
        logger.exception("Check access failed for %s", session.user_id)
        return JSONResponse({"error": "Failed to check access"}, status_code=500)
    finally:
        await conn.close()


@router.post("/request")
async def request_access(session: AuthSession = Depends(get_session)):
    """Mint a verification link the user completes out of band."""
    conn = await get_async_conn()
    try:
        return await AccessService(conn).request_link(session.user_id)
    except Exception:
        logger.exception("Request access failed for %s", session.user_id)
        return JSONResponse(
            {"error": "Failed to generate verification link"}, status_code=500
        )
    finally:
        await conn.close()


@router.post("/unlock")
async def unlock_access(session: AuthSession = Depends(get_session)):
    """Grant the caller 24 hours of premium access, replacing any prior grant."""
    conn = await get_async_conn()
    try:
        grant = await AccessService(conn).grant(session.user_id)
        return {
            "success": True,
            "message": f"Premium access granted for {settings.grant_duration_hours} hours!",
            "grant": asdict(grant),
        }
    except Exception:
        logger.exception("Unlock failed for %s", session.user_id)
        return JSONResponse(
            {"success": False, "error": "Failed to unlock. Please try again."},
            status_code=500,
        )
    finally:
        await conn.close()


@router.get("/callback")
async def verification_callback(token: str | None = None) -> RedirectResponse:
    """Redeem a verification link and bounce back to the app."""
    if not token:
        logger.error("Missing token in verification callback")
        return _verify_redirect(error="missing_token")

    try:
        conn = await get_async_conn()
    except Exception:
        logger.exception("Verification callback could not open the database")
        return _verify_redirect(error="server_error")

    try:
        service = AccessService(conn)
        try:
            grant = await service.redeem(token)
        except Exception:
            logger.exception("Access grant failed during verification")
            return _verify_redirect(error="access_failed")
        if grant is None:
            logger.warning("Invalid or expired verification token")
            return _verify_redirect(error="invalid_token")
        logger.info("Premium access granted until %s", grant.expires_at)
        return _verify_redirect(success="true", jwt=service.issue_claim(grant))
    finally:
        await conn.close()
