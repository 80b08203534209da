"""Composition root: builds and wires every crawl component from a Config."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from profilecrawl.config import Config
from profilecrawl.database import AbstractStore, LocalSqliteStore
from profilecrawl.fetchers import BrowserFetcher, HttpFetcher
from profilecrawl.infrastructure.browser_pool import RenderPool
from profilecrawl.infrastructure.rate_limiter import HostRateLimiter
from profilecrawl.infrastructure.retry import RetryPolicy
from profilecrawl.orchestrator import CrawlOrchestrator
from profilecrawl.parsers import GenericParser, GitHubParser, LinkedInParser, SocialParser
from profilecrawl.processor import ItemProcessor
from profilecrawl.queue import InMemoryMessageQueue
from profilecrawl.registry import FetcherRegistry, ParserRegistry
from profilecrawl.services import JobService, ProfileService
from profilecrawl.worker import CrawlWorker

logger = logging.getLogger(__name__)


@dataclass
class Components:
    config: Config
    store: AbstractStore
    queue: InMemoryMessageQueue
    rate_limiter: HostRateLimiter
    render_pool: Optional[RenderPool]
    fetchers: FetcherRegistry
    parsers: ParserRegistry
    profile_service: ProfileService
    job_service: JobService
    processor: ItemProcessor
    orchestrator: CrawlOrchestrator
    worker: CrawlWorker


def build_parsers() -> ParserRegistry:
    return ParserRegistry([GenericParser(), GitHubParser(), LinkedInParser(), SocialParser()])


@asynccontextmanager
async def build_components(
    config: Config,
    store: Optional[AbstractStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    enable_rendering: bool = True,
) -> AsyncIterator[Components]:
    """
    Build the component graph and tear it down on exit.

    Args:
        config: Runtime configuration
        store: Storage to use instead of opening config.database_url
        http_client: httpx client for the HTTP fetch strategy
        enable_rendering: Register the browser strategy and render pool
    """
    owns_store = store is None
    store = store or LocalSqliteStore(config.database_url)

    rate_limiter = HostRateLimiter(interval=config.rate_limit_interval)

    fetchers = FetcherRegistry()
    fetchers.register(HttpFetcher(client=http_client, timeout=config.http_timeout, user_agent=config.user_agent))

    render_pool = None
    if enable_rendering:
        render_pool = RenderPool(
            max_concurrency=config.render_concurrency,
            headless=config.headless,
            timeout_ms=config.render_timeout_ms,
        )
        fetchers.register(BrowserFetcher(render_pool))

    parsers = build_parsers()
    queue = InMemoryMessageQueue(max_deliveries=config.max_deliveries)
    profile_service = ProfileService(store)
    job_service = JobService(store, queue)

    processor = ItemProcessor(
        store=store,
        fetchers=fetchers,
        parsers=parsers,
        rate_limiter=rate_limiter,
        profile_service=profile_service,
        retry_policy=RetryPolicy.from_config(config),
        min_html_size=config.min_html_size,
        item_timeout=config.item_timeout,
    )
    orchestrator = CrawlOrchestrator(store, processor, item_concurrency=config.item_concurrency)
    worker = CrawlWorker(
        queue,
        orchestrator,
        rate_limiter,
        concurrency=config.worker_concurrency,
        drain_timeout=config.item_timeout,
    )

    logger.debug(
        f"Built components: fetchers={[f.name for f in fetchers]} parsers={[p.name for p in parsers]}"
    )

    components = Components(
        config=config,
        store=store,
        queue=queue,
        rate_limiter=rate_limiter,
        render_pool=render_pool,
        fetchers=fetchers,
        parsers=parsers,
        profile_service=profile_service,
        job_service=job_service,
        processor=processor,
        orchestrator=orchestrator,
        worker=worker,
    )

    try:
        yield components
    finally:
        if worker.is_started:
            await worker.stop()
        await queue.close()
        await fetchers.close()
        if owns_store:
            store.close()
