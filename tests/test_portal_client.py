"""
Tests for the portal client SDK and the link shortener, using httpx.MockTransport.
"""

import json

import httpx

from app.clients import TokenStore, VerificationAccess
from app.clients.shortener import LinkShortener

BASE_URL = "http://portal.test"


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)


class TestTokenStore:
    """JSON-file persistence of the verification claim."""

    def test_set_get_clear(self, tmp_path):
        store = TokenStore(str(tmp_path / "state" / "portal.json"))
        assert store.get() is None

        store.set("claim-1")
        assert store.get() == "claim-1"
        assert TokenStore(store.path).get() == "claim-1"

        store.clear()
        assert store.get() is None

    def test_unreadable_file_is_treated_as_empty(self, tmp_path):
        path = tmp_path / "portal.json"
        path.write_text("{not json")

        assert TokenStore(str(path)).get() is None


class TestVerificationAccess:
    """Client side of /api/access."""

    async def test_check_sends_stored_claim_and_trusts_server(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"hasAccess": True, "expiresAt": "2026-01-02T00:00:00", "remainingHours": 5.5, "source": "jwt"},
            )

        store = TokenStore(str(tmp_path / "portal.json"))
        store.set("claim-1")
        async with _http(handler) as http:
            access = VerificationAccess(http, store, session_token="sess")

            assert await access.check_access() is True

        assert seen == {"auth": "Bearer sess", "body": {"jwt": "claim-1"}}
        assert access.status.source == "jwt"
        assert access.status.remaining_hours == 5.5
        assert access.is_loading is False

    async def test_check_error_resets_status(self, tmp_path):
        def handler(request):
            return httpx.Response(500, json={"error": "Failed to check access"})

        async with _http(handler) as http:
            access = VerificationAccess(http, TokenStore(str(tmp_path / "p.json")), "sess")
            access.status.has_access = True

            assert await access.check_access() is False

        assert access.status.has_access is False

    async def test_check_without_session_skips_request(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"hasAccess": True})

        async with _http(handler) as http:
            access = VerificationAccess(http, TokenStore(str(tmp_path / "p.json")))

            assert await access.check_access() is False

        assert calls == []

    async def test_request_access(self, tmp_path):
        def handler(request):
            assert request.url.path == "/api/access/request"
            return httpx.Response(
                200, json={"success": True, "shortLink": "https://s.test/x", "token": "tok"}
            )

        async with _http(handler) as http:
            access = VerificationAccess(http, TokenStore(str(tmp_path / "p.json")), "sess")

            link = await access.request_access()

        assert link == {"shortLink": "https://s.test/x", "token": "tok"}
        assert access.last_error is None

    async def test_request_access_failure(self, tmp_path):
        def handler(request):
            return httpx.Response(500, json={"error": "nope"})

        async with _http(handler) as http:
            access = VerificationAccess(http, TokenStore(str(tmp_path / "p.json")), "sess")

            assert await access.request_access() is None

        assert access.last_error == "Failed to generate verification link"

    async def test_request_access_requires_login(self, tmp_path):
        async with _http(lambda request: httpx.Response(200)) as http:
            access = VerificationAccess(http, TokenStore(str(tmp_path / "p.json")))

            assert await access.request_access() is None

        assert access.last_error == "Please log in to unlock access"

    def test_remember_claim(self, tmp_path):
        store = TokenStore(str(tmp_path / "p.json"))
        access = VerificationAccess(httpx.AsyncClient(), store, "sess")

        access.remember_claim("claim-2")

        assert store.get() == "claim-2"


class TestLinkShortener:
    """Shortener success and fallbacks."""

    async def test_disabled_returns_long_link(self):
        assert await LinkShortener(api_url="").shorten("http://long") == "http://long"

    async def test_success(self):
        def handler(request):
            assert request.url.params["api"] == "key"
            assert request.url.params["url"] == "http://long"
            return httpx.Response(200, json={"status": "success", "shortenedUrl": "https://s.test/a"})

        shortener = LinkShortener("https://short.test/api", "key", transport=httpx.MockTransport(handler))

        assert await shortener.shorten("http://long") == "https://s.test/a"

    async def test_upstream_error_falls_back(self):
        shortener = LinkShortener(
            "https://short.test/api", "key", transport=httpx.MockTransport(lambda r: httpx.Response(503))
        )

        assert await shortener.shorten("http://long") == "http://long"

    async def test_error_status_in_body_falls_back(self):
        shortener = LinkShortener(
            "https://short.test/api",
            "key",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"status": "error", "message": "bad key"})
            ),
        )

        assert await shortener.shorten("http://long") == "http://long"
