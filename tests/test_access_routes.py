"""
Route tests for the unlock / check-access / request-access flow.
"""

from urllib.parse import parse_qs, urlparse

from tests.conftest import STUDENT_ID, bearer


class TestAccessRoutes:
    """Tests for /api/access."""

    def test_requires_login(self, client):
        assert client.post("/api/access/check", json={}).status_code == 401
        assert client.post("/api/access/request").status_code == 401
        assert client.post("/api/access/unlock").status_code == 401

    def test_check_without_grant(self, client, student_headers):
        resp = client.post("/api/access/check", json={"jwt": None}, headers=student_headers)

        assert resp.status_code == 200
        assert resp.json() == {
            "hasAccess": False,
            "expiresAt": None,
            "remainingHours": 0,
            "source": None,
        }

    def test_unlock_then_check(self, client, student_headers):
        resp = client.post("/api/access/unlock", headers=student_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Premium access granted for 24 hours!"
        assert body["grant"]["user_id"] == STUDENT_ID

        status = client.post("/api/access/check", json={}, headers=student_headers).json()
        assert status["hasAccess"] is True
        assert status["source"] == "database"

    def test_double_unlock_leaves_single_grant(self, client, student_headers):
        first = client.post("/api/access/unlock", headers=student_headers).json()
        second = client.post("/api/access/unlock", headers=student_headers).json()

        assert first["grant"]["id"] == second["grant"]["id"]

    def test_unlock_failure_returns_retry_message(self, client, student_headers, monkeypatch):
        from app.services.access import AccessService

        async def broken(self, user_id, hours=None):
            raise RuntimeError("db down")

        monkeypatch.setattr(AccessService, "grant", broken)

        resp = client.post("/api/access/unlock", headers=student_headers)

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Failed to unlock. Please try again."}

    def test_request_link_and_callback_grant_access(self, client, student_headers):
        link = client.post("/api/access/request", headers=student_headers).json()
        assert set(link) == {"shortLink", "token"}

        resp = client.get(
            "/api/access/callback",
            params={"token": link["token"]},
            follow_redirects=False,
        )

        assert resp.status_code == 302
        location = urlparse(resp.headers["location"])
        assert location.netloc == "app.test"
        assert location.path == "/verify-success"
        query = parse_qs(location.query)
        assert query["success"] == ["true"]

        # The claim handed back is enough on its own.
        status = client.post(
            "/api/access/check", json={"jwt": query["jwt"][0]}, headers=student_headers
        ).json()
        assert status["hasAccess"] is True
        assert status["source"] == "jwt"

    def test_callback_errors(self, client, student_headers):
        missing = client.get("/api/access/callback", follow_redirects=False)
        assert missing.headers["location"].endswith("?error=missing_token")

        invalid = client.get(
            "/api/access/callback", params={"token": "bogus"}, follow_redirects=False
        )
        assert invalid.headers["location"].endswith("?error=invalid_token")

    def test_claim_is_bound_to_its_user(self, client, student_headers):
        token = client.post("/api/access/request", headers=student_headers).json()["token"]
        resp = client.get(
            "/api/access/callback", params={"token": token}, follow_redirects=False
        )
        claim = parse_qs(urlparse(resp.headers["location"]).query)["jwt"][0]

        status = client.post(
            "/api/access/check", json={"jwt": claim}, headers=bearer("someone-else")
        ).json()

        assert status["hasAccess"] is False
