import logging

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class LinkShortener:
    """Thin client for an Arolinks-style shortener (``GET ?api=KEY&url=URL``).

    With no API URL configured, links are returned unchanged. Any failure
    from the shortener also falls back to the long link.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url if api_url is not None else settings.shortener_api_url
        self.api_key = api_key if api_key is not None else settings.shortener_api_key
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    async def shorten(self, long_url: str) -> str:
        if not self.enabled:
            return long_url
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10) as client:
                resp = await client.get(
                    self.api_url, params={"api": self.api_key, "url": long_url}
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Link shortener failed, using long link: %s", e)
            return long_url

        if data.get("status") == "success" and data.get("shortenedUrl"):
            return data["shortenedUrl"]
        logger.warning("Link shortener returned no link: %s", data)
        return long_url
