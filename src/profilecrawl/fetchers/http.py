"""Plain HTTP fetch strategy."""

import logging
from typing import Optional

import httpx

from profilecrawl.constants import (
    DEFAULT_REQUEST_HEADERS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
)
from profilecrawl.fetchers.base import FetchStrategy
from profilecrawl.models import FetchResult

logger = logging.getLogger(__name__)


class HttpFetcher(FetchStrategy):
    """Default strategy: a single GET over httpx, following redirects.

    Any HTTP response becomes a FetchResult; the body is kept only for a
    200. Transport failures (DNS, refused connection, timeout) propagate as
    httpx exceptions so the retry executor can classify them.
    """

    name = "http"
    priority = 1
    renders_javascript = False

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent, **DEFAULT_REQUEST_HEADERS},
        )

    def supports(self, url: str) -> bool:
        return url.startswith("http://") or url.startswith("https://")

    async def fetch(self, url: str) -> FetchResult:
        response = await self.client.get(url)
        status_code = response.status_code
        html = response.text if status_code == 200 else None

        logger.debug(f"Fetched {url}: HTTP {status_code} ({len(html or '')} chars)")

        return FetchResult(
            html=html,
            final_url=str(response.url),
            status_code=status_code,
            headers=dict(response.headers),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
