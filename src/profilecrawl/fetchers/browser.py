"""JS-rendering fetch strategy backed by the render pool."""

import logging
from typing import Optional

from profilecrawl.constants import JS_REQUIRED_DOMAINS
from profilecrawl.errors import CrawlError, ErrorKind
from profilecrawl.fetchers.base import FetchStrategy
from profilecrawl.infrastructure.browser_pool import RenderPool
from profilecrawl.models import FetchResult
from profilecrawl.parsers.base import hostname_matches
from profilecrawl.parsers.challenge import detect_challenge

logger = logging.getLogger(__name__)


class BrowserFetcher(FetchStrategy):
    """Renders a page in a headless browser and returns the final DOM.

    Preferred over plain HTTP for hosts known to need JavaScript, and used
    as the escalation target for any other host.
    """

    name = "browser"
    priority = 5
    renders_javascript = True

    def __init__(self, pool: RenderPool, domains: Optional[list[str]] = None):
        self.pool = pool
        self.domains = domains if domains is not None else list(JS_REQUIRED_DOMAINS)

    def supports(self, url: str) -> bool:
        return hostname_matches(url, self.domains)

    async def fetch(self, url: str) -> FetchResult:
        async with self.pool.acquire() as page:
            response = await page.goto(url, wait_until="networkidle")
            if response is None:
                raise CrawlError(ErrorKind.TRANSPORT, "No response received from renderer")

            html = await page.content()
            title = await page.title()
            final_url = page.url
            status_code = response.status
            headers = await response.all_headers()

        challenge = detect_challenge(html, title, final_url, requested_url=url)
        if challenge:
            logger.warning(f"Challenge detected on {final_url}: {challenge}")

        logger.debug(f"Rendered {url}: HTTP {status_code} ({len(html)} chars)")

        return FetchResult(
            html=html if status_code == 200 else None,
            final_url=final_url,
            status_code=status_code,
            headers=headers,
            challenge=challenge,
        )

    async def close(self) -> None:
        await self.pool.stop()
