"""
Render pool.

Owns one Playwright browser for the process and hands out isolated pages.
A semaphore caps how many pages render at once, independent of how many
items a job processes in parallel, because a rendered page costs far more
than a plain HTTP fetch.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from playwright.async_api import async_playwright

from profilecrawl.constants import (
    DEFAULT_RENDER_CONCURRENCY,
    DEFAULT_RENDER_TIMEOUT_MS,
    RENDER_USER_AGENT,
    RENDER_VIEWPORT_HEIGHT,
    RENDER_VIEWPORT_WIDTH,
)

logger = logging.getLogger(__name__)


@dataclass
class PoolStatus:
    """Current status of the render pool."""
    max_concurrency: int
    in_use: int
    total_renders: int
    total_errors: int
    uptime_seconds: float


class RenderPool:
    """
    Bounded pool of rendering pages backed by a single browser.

    The browser is launched on first use. Each acquisition gets a fresh
    browser context, so cookies and storage never leak between items.
    """

    def __init__(
        self,
        max_concurrency: int = DEFAULT_RENDER_CONCURRENCY,
        headless: bool = True,
        timeout_ms: int = DEFAULT_RENDER_TIMEOUT_MS,
        user_agent: Optional[str] = RENDER_USER_AGENT,
    ):
        self.max_concurrency = max_concurrency
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._lock = asyncio.Lock()
        self._playwright = None
        self._browser = None
        self._started = False
        self._start_time: datetime | None = None
        self._in_use = 0
        self._total_renders = 0
        self._total_errors = 0

    async def start(self) -> None:
        """Launch the browser if it is not running yet."""
        async with self._lock:
            if self._started:
                return

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._start_time = datetime.now()
            self._started = True
            logger.info(f"Render pool started (max {self.max_concurrency} concurrent pages)")

    async def stop(self) -> None:
        """Close the browser and stop Playwright."""
        async with self._lock:
            if not self._started:
                return

            if self._browser:
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.warning(f"Error closing browser: {e}")
                self._browser = None

            if self._playwright:
                try:
                    await self._playwright.stop()
                except Exception as e:
                    logger.warning(f"Error stopping playwright: {e}")
                self._playwright = None

            self._started = False
            logger.info("Render pool stopped")

    async def _new_context(self) -> Any:
        context_options: dict[str, Any] = {
            "viewport": {"width": RENDER_VIEWPORT_WIDTH, "height": RENDER_VIEWPORT_HEIGHT},
            "ignore_https_errors": True,
        }
        if self.user_agent:
            context_options["user_agent"] = self.user_agent

        context = await self._browser.new_context(**context_options)
        context.set_default_timeout(self.timeout_ms)
        return context

    @asynccontextmanager
    async def acquire(self):
        """
        Acquire a page, waiting for a free render slot.

        Usage:
            async with pool.acquire() as page:
                await page.goto(url)

        Yields:
            Playwright Page in a fresh browser context
        """
        async with self._semaphore:
            if not self._started:
                await self.start()

            context = await self._new_context()
            self._in_use += 1
            self._total_renders += 1
            try:
                page = await context.new_page()
                yield page
            except Exception:
                self._total_errors += 1
                raise
            finally:
                self._in_use -= 1
                try:
                    await context.close()
                except Exception as e:
                    logger.debug(f"Error closing render context: {e}")

    def get_status(self) -> PoolStatus:
        uptime = 0.0
        if self._start_time:
            uptime = (datetime.now() - self._start_time).total_seconds()

        return PoolStatus(
            max_concurrency=self.max_concurrency,
            in_use=self._in_use,
            total_renders=self._total_renders,
            total_errors=self._total_errors,
            uptime_seconds=uptime,
        )

    @property
    def is_started(self) -> bool:
        return self._started
