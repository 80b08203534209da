"""
Item processor: fetch, optionally escalate, parse and persist one URL.

Every item-level failure is converted into a terminal ItemOutcome here.
Only infrastructure failures (StorageError) and cancellation escape, so the
orchestrator can abort the job.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Awaitable, Optional

from profilecrawl.constants import DEFAULT_ITEM_TIMEOUT_SECONDS, MIN_HTML_SIZE
from profilecrawl.database import AbstractStore
from profilecrawl.errors import CrawlError, ErrorKind, StorageError, classify_exception, classify_status
from profilecrawl.escalation import should_escalate
from profilecrawl.fetchers.base import FetchStrategy
from profilecrawl.infrastructure.rate_limiter import HostRateLimiter
from profilecrawl.infrastructure.retry import RetryPolicy, execute_with_retry
from profilecrawl.models import FetchResult, ItemOutcome, ItemStatus, JobItem, ParsedProfile
from profilecrawl.registry import FetcherRegistry, ParserRegistry
from profilecrawl.services import ProfileService

logger = logging.getLogger(__name__)


@dataclass
class AttemptTracker:
    """Attempt bookkeeping for one item, shared by every fetch pass."""
    attempts: int = 0
    last_status_code: Optional[int] = None


class ItemProcessor:
    """Runs the fetch/escalate/parse/persist pipeline for a job item."""

    def __init__(
        self,
        store: AbstractStore,
        fetchers: FetcherRegistry,
        parsers: ParserRegistry,
        rate_limiter: HostRateLimiter,
        profile_service: ProfileService,
        retry_policy: Optional[RetryPolicy] = None,
        min_html_size: int = MIN_HTML_SIZE,
        item_timeout: float = DEFAULT_ITEM_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.fetchers = fetchers
        self.parsers = parsers
        self.rate_limiter = rate_limiter
        self.profile_service = profile_service
        self.retry_policy = retry_policy or RetryPolicy()
        self.min_html_size = min_html_size
        self.item_timeout = item_timeout
        self._sleep = sleep

    async def process(self, item: JobItem) -> ItemOutcome:
        """
        Process one item to a terminal outcome.

        Args:
            item: A pending job item. Its stored attempt count is carried on.

        Returns:
            The outcome to persist; never raises for item-level failures.

        Raises:
            StorageError: Storage failed while processing the item.
        """
        tracker = AttemptTracker(attempts=item.attempts)

        try:
            escalated = await asyncio.wait_for(self._run(item, tracker), timeout=self.item_timeout)
        except (StorageError, asyncio.CancelledError):
            raise
        except asyncio.TimeoutError:
            error = CrawlError(ErrorKind.TRANSPORT, f"Item timed out after {self.item_timeout:.0f}s")
            return self._failure(item, tracker, error)
        except CrawlError as e:
            return self._failure(item, tracker, e)
        except Exception as e:
            logger.exception(f"Unexpected error processing {item.url}")
            return self._failure(item, tracker, classify_exception(e))

        logger.info(f"Item {item.url} ok after {tracker.attempts} attempt(s)" + (" (escalated)" if escalated else ""))
        return ItemOutcome(
            item_id=item.id,
            url=item.url,
            status=ItemStatus.OK,
            attempts=tracker.attempts,
            last_status_code=tracker.last_status_code,
            escalated=escalated,
        )

    def _failure(self, item: JobItem, tracker: AttemptTracker, error: CrawlError) -> ItemOutcome:
        status = ItemStatus.BLOCKED if error.kind == ErrorKind.BLOCKED else ItemStatus.ERROR
        level = logging.WARNING if status == ItemStatus.BLOCKED else logging.ERROR
        logger.log(level, f"Item {item.url} {status.value} after {tracker.attempts} attempt(s): "
                          f"{error.kind.value}: {error.message}")
        return ItemOutcome(
            item_id=item.id,
            url=item.url,
            status=status,
            attempts=tracker.attempts,
            last_status_code=error.status_code if error.status_code is not None else tracker.last_status_code,
            error=f"{error.kind.value}: {error.message}",
        )

    async def _run(self, item: JobItem, tracker: AttemptTracker) -> bool:
        strategy = self.fetchers.select(item.url)
        if strategy is None:
            raise CrawlError(ErrorKind.CONTENT, f"No fetch strategy supports {item.url}")

        result = await self._fetch(strategy, item, tracker)
        profile = self._parse(item.url, result)
        escalated = False

        if not strategy.renders_javascript and should_escalate(result, profile, self.min_html_size):
            renderer = self.fetchers.select_renderer(item.url)
            if renderer is not None:
                logger.info(f"Escalating {item.url} to {renderer.name}")
                second = await self._escalate(renderer, item, tracker)
                if second is not None:
                    result, profile = second
                    escalated = True

        if profile is None:
            raise CrawlError(ErrorKind.CONTENT, f"No profile could be parsed from {item.url}")

        # Profiles are keyed by the URL that was requested, not the redirect target
        profile.source_url = item.url
        self.profile_service.save_or_update(profile)
        return escalated

    async def _escalate(
        self, renderer: FetchStrategy, item: JobItem, tracker: AttemptTracker
    ) -> Optional[tuple[FetchResult, Optional[ParsedProfile]]]:
        """Second pass with the renderer. None keeps the first pass's result."""
        try:
            result = await self._fetch(renderer, item, tracker)
            profile = self._parse(item.url, result)
        except CrawlError as e:
            if e.kind == ErrorKind.BLOCKED:
                raise
            logger.warning(f"Escalation failed for {item.url}, keeping first result: {e.message}")
            return None

        if profile is None:
            return None
        return result, profile

    async def _fetch(self, strategy: FetchStrategy, item: JobItem, tracker: AttemptTracker) -> FetchResult:
        async def attempt() -> FetchResult:
            tracker.attempts += 1
            self.store.update_item_attempts(item.id, tracker.attempts)
            await self.rate_limiter.wait_for_host(item.url)

            result = await strategy.fetch(item.url)
            tracker.last_status_code = result.status_code
            return self._check(result)

        return await execute_with_retry(
            attempt,
            self.retry_policy,
            sleep=self._sleep,
            label=f"{strategy.name} fetch of {item.url}",
        )

    @staticmethod
    def _check(result: FetchResult) -> FetchResult:
        """Raise a classified error unless the fetch produced usable HTML."""
        if result.challenge:
            raise CrawlError(
                ErrorKind.BLOCKED, f"Challenge page detected ({result.challenge})", result.status_code
            )

        kind = classify_status(result.status_code)
        if kind is not None:
            raise CrawlError(kind, f"HTTP {result.status_code}", result.status_code)

        if not result.html:
            raise CrawlError(ErrorKind.SERVER, "Empty response body", result.status_code)

        return result

    def _parse(self, url: str, result: FetchResult) -> Optional[ParsedProfile]:
        parser = self.parsers.select(url)
        if parser is None:
            raise CrawlError(ErrorKind.CONTENT, f"No parse strategy supports {url}")

        try:
            return parser.parse(result.html, url)
        except Exception as e:
            raise CrawlError(ErrorKind.CONTENT, f"Parse failed with {parser.name}: {e}") from e
