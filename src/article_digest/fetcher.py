"""Plain HTTP retrieval of article pages and referenced images."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .config import Settings, get_settings
from .errors import TransportError, UpstreamStatusError

logger = logging.getLogger(__name__)


def build_http_client(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create an async client carrying the browser identity and the call timeout."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        headers={"User-Agent": settings.user_agent},
        timeout=settings.request_timeout,
        follow_redirects=True,
        transport=transport,
    )


class Fetcher:
    """GET wrapper that maps httpx failures onto the package error taxonomy."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def _get(self, url: str) -> httpx.Response:
        logger.debug("Fetching %s", url)
        try:
            response = await self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"Failed to fetch {url}: {exc}") from exc
        if response.is_error:
            raise UpstreamStatusError(
                f"Failed to fetch URL: {response.reason_phrase or response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def fetch_text(self, url: str) -> str:
        response = await self._get(url)
        return response.text

    async def fetch_bytes(self, url: str) -> tuple[bytes, str]:
        """Return the payload and its declared content type."""
        response = await self._get(url)
        return response.content, response.headers.get("content-type", "")
