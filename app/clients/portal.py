import logging
import os

import httpx

from app.models import AccessStatus
from app.services.storage import StorageService

logger = logging.getLogger(__name__)


class TokenStore:
    """Keeps the verification claim across runs in a small JSON file."""

    KEY = "verification_jwt"

    def __init__(self, path: str) -> None:
        self.path = path

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            data = StorageService.read_json(self.path)
        except ValueError:
            logger.warning("Ignoring unreadable token store at %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self) -> str | None:
        return self._load().get(self.KEY)

    def set(self, token: str) -> None:
        data = self._load()
        data[self.KEY] = token
        StorageService.write_json(self.path, data)

    def clear(self) -> None:
        data = self._load()
        if data.pop(self.KEY, None) is not None:
            StorageService.write_json(self.path, data)


class VerificationAccess:
    """Client side of the entitlement flow.

    Holds the last access status in memory and the verification claim in a
    ``TokenStore``. The server's ``hasAccess`` is trusted as-is. Failures
    are logged and surfaced through ``last_error``; nothing is raised.

    Usage::

        async with httpx.AsyncClient(base_url=PORTAL_URL) as http:
            access = VerificationAccess(http, TokenStore(".portal.json"), session_token)
            if not await access.check_access():
                link = await access.request_access()
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        token_store: TokenStore,
        session_token: str | None = None,
    ) -> None:
        self.http = http
        self.token_store = token_store
        self.session_token = session_token
        self.status = AccessStatus()
        self.is_loading = False
        self.last_error: str | None = None

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.session_token}"}

    async def check_access(self) -> bool:
        if not self.session_token:
            self.status = AccessStatus()
            return False

        self.is_loading = True
        try:
            resp = await self.http.post(
                "/api/access/check",
                json={"jwt": self.token_store.get()},
                headers=self._headers(),
            )
            if resp.is_error:
                logger.error("Check access error: %s %s", resp.status_code, resp.text)
                self.status = AccessStatus()
                return False
            self.status = AccessStatus.from_dict(resp.json())
            return self.status.has_access
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Check access error: %s", e)
            return False
        finally:
            self.is_loading = False

    async def request_access(self) -> dict | None:
        """Ask for a verification link. Returns ``{shortLink, token}`` or None."""
        if not self.session_token:
            self.last_error = "Please log in to unlock access"
            return None

        self.is_loading = True
        try:
            resp = await self.http.post(
                "/api/access/request", json={}, headers=self._headers()
            )
            if resp.is_error:
                logger.error("Request access error: %s %s", resp.status_code, resp.text)
                self.last_error = "Failed to generate verification link"
                return None
            data = resp.json()
            return {"shortLink": data["shortLink"], "token": data["token"]}
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("Request access error: %s", e)
            self.last_error = "Failed to generate verification link"
            return None
        finally:
            self.is_loading = False

    def remember_claim(self, claim: str) -> None:
        """Store the claim handed back by the verification redirect."""
        self.token_store.set(claim)
