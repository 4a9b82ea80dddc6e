import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import urlencode

import jwt

from app.clients.shortener import LinkShortener
from app.config import settings
from app.models import AccessGrant, AccessStatus

logger = logging.getLogger(__name__)

ACCESS_CLAIM_TYPE = "access_grant"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC timestamp, so stored values compare as strings."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def remaining_hours(expires_at: datetime, now: datetime) -> float:
    seconds = (expires_at - now).total_seconds()
    return max(0.0, round(seconds / 3600, 1))


class AccessService:
    """Time-boxed premium access grants.

    A user holds at most one grant row. Issuing a grant is an upsert keyed on
    ``user_id`` so repeated or concurrent unlocks always leave exactly one
    row, carrying the timestamps of whichever write landed last.

    ``clock`` is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        conn,
        clock: Callable[[], datetime] = utcnow,
        shortener: LinkShortener | None = None,
    ) -> None:
        self.conn = conn
        self.clock = clock
        self.shortener = shortener or LinkShortener()

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    async def grant(self, user_id: str, hours: int | None = None) -> AccessGrant:
        now = self.clock()
        expires_at = now + timedelta(hours=hours or settings.grant_duration_hours)
        await self.conn.execute(
            "INSERT INTO ad_access (user_id, granted_at, expires_at) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET "
            "granted_at = excluded.granted_at, expires_at = excluded.expires_at",
            (user_id, to_iso(now), to_iso(expires_at)),
        )
        await self.conn.commit()
        logger.info("Access granted to %s until %s", user_id, to_iso(expires_at))
        return await self.get_grant(user_id)

    async def get_grant(self, user_id: str) -> AccessGrant | None:
        row = await self.conn.execute(
            "SELECT * FROM ad_access WHERE user_id = ?", (user_id,)
        )
        found = await row.fetchone()
        return AccessGrant(**dict(found)) if found else None

    async def list_active(self) -> list[AccessGrant]:
        rows = await self.conn.execute(
            "SELECT * FROM ad_access WHERE expires_at > ? ORDER BY expires_at DESC",
            (to_iso(self.clock()),),
        )
        return [AccessGrant(**dict(row)) for row in await rows.fetchall()]

    async def revoke(self, grant_id: int) -> bool:
        cursor = await self.conn.execute(
            "DELETE FROM ad_access WHERE id = ?", (grant_id,)
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Entitlement check
    # ------------------------------------------------------------------

    async def check(self, user_id: str, claim: str | None = None) -> AccessStatus:
        """Decide whether *user_id* holds valid access.

        A signed claim for this user is trusted first; otherwise the grant row
        is consulted.
        """
        now = self.clock()
        if claim:
            expires_at = self._verify_claim(claim, user_id, now)
            if expires_at is not None:
                return AccessStatus(
                    has_access=True,
                    expires_at=to_iso(expires_at),
                    remaining_hours=remaining_hours(expires_at, now),
                    source="jwt",
                )

        grant = await self.get_grant(user_id)
        if grant is None:
            return AccessStatus()
        expires_at = parse_iso(grant.expires_at)
        if expires_at <= now:
            return AccessStatus(expires_at=grant.expires_at)
        return AccessStatus(
            has_access=True,
            expires_at=grant.expires_at,
            remaining_hours=remaining_hours(expires_at, now),
            source="database",
        )

    async def has_access(self, user_id: str) -> bool:
        return (await self.check(user_id)).has_access

    def issue_claim(self, grant: AccessGrant) -> str:
        payload = {
            "sub": grant.user_id,
            "type": ACCESS_CLAIM_TYPE,
            "iat": int(parse_iso(grant.granted_at).timestamp()),
            "exp": int(parse_iso(grant.expires_at).timestamp()),
        }
        return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")

    def _verify_claim(self, claim: str, user_id: str, now: datetime) -> datetime | None:
        # Expiry is checked against self.clock rather than the wall clock.
        try:
            payload = jwt.decode(
                claim,
                settings.jwt_secret,
                algorithms=["HS256"],
                options={"verify_exp": False},
            )
        except jwt.InvalidTokenError as e:
            logger.debug("Ignoring invalid access claim: %s", e)
            return None
        if payload.get("type") != ACCESS_CLAIM_TYPE or payload.get("sub") != user_id:
            return None
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            return None
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        return expires_at if expires_at > now else None

    # ------------------------------------------------------------------
    # Verification links
    # ------------------------------------------------------------------

    async def request_link(self, user_id: str) -> dict:
        """Mint a single-use verification token and the link that redeems it."""
        token = secrets.token_urlsafe(24)
        expires_at = self.clock() + timedelta(minutes=settings.verification_token_ttl_minutes)
        await self.conn.execute(
            "INSERT INTO verification_tokens (user_id, token, expires_at) VALUES (?, ?, ?)",
            (user_id, token, to_iso(expires_at)),
        )
        await self.conn.commit()

        long_url = (
            f"{settings.public_base_url.rstrip('/')}/api/access/callback?"
            + urlencode({"token": token})
        )
        short_link = await self.shortener.shorten(long_url)
        return {"shortLink": short_link, "token": token}

    async def redeem(self, token: str) -> AccessGrant | None:
        """Consume a verification token and grant access to its owner.

        Returns ``None`` when the token is unknown, used or expired.
        """
        now = to_iso(self.clock())
        # Claiming the token and checking it is one statement, so only one
        # of several concurrent redemptions can win.
        cursor = await self.conn.execute(
            "UPDATE verification_tokens SET used = 1, verified_at = ?, status = 'verified' "
            "WHERE token = ? AND used = 0 AND expires_at > ?",
            (now, token, now),
        )
        await self.conn.commit()
        if cursor.rowcount != 1:
            return None

        row = await self.conn.execute(
            "SELECT user_id FROM verification_tokens WHERE token = ?", (token,)
        )
        found = await row.fetchone()
        return await self.grant(found["user_id"])

    async def list_verifications(self, limit: int = 100) -> dict:
        """Recent verification tokens with a derived status, plus totals.

        Status is ``verified`` once redeemed, ``expired`` past its deadline,
        otherwise ``pending``.
        """
        now = self.clock()
        rows = await self.conn.execute(
            "SELECT * FROM verification_tokens ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        tokens = []
        for row in await rows.fetchall():
            token = dict(row)
            if token["used"]:
                token["status"] = "verified"
            elif parse_iso(token["expires_at"]) <= now:
                token["status"] = "expired"
            else:
                token["status"] = "pending"
            token["used"] = bool(token["used"])
            tokens.append(token)

        stats = {"generated": len(tokens), "verified": 0, "pending": 0, "expired": 0}
        for token in tokens:
            stats[token["status"]] += 1
        return {"stats": stats, "tokens": tokens}
