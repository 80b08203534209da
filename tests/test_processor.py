"""Tests for the per-item fetch/escalate/parse/persist pipeline."""

import asyncio
from unittest.mock import Mock

import httpx
import pytest

from profilecrawl.errors import StorageError
from profilecrawl.fetchers.base import FetchStrategy
from profilecrawl.infrastructure.rate_limiter import HostRateLimiter
from profilecrawl.infrastructure.retry import RetryPolicy
from profilecrawl.models import FetchResult, ItemStatus
from profilecrawl.parsers import GenericParser
from profilecrawl.parsers.base import ParseStrategy
from profilecrawl.processor import ItemProcessor
from profilecrawl.registry import FetcherRegistry, ParserRegistry
from profilecrawl.services import ProfileService


URL = "https://examplesocial.com/janedoe"
THIN_HTML = "<html><body>Loading...</body></html>"


def response(status_code=200, html=None, challenge=None):
    return FetchResult(html=html, final_url=URL, status_code=status_code, challenge=challenge)


class ScriptedFetcher(FetchStrategy):
    """Plays back responses (or raises exceptions) in order; the last one repeats."""

    def __init__(self, script, name="http", priority=1, renders_javascript=False):
        self.script = list(script)
        self.name = name
        self.priority = priority
        self.renders_javascript = renders_javascript
        self.calls = 0

    def supports(self, url):
        return True

    async def fetch(self, url):
        self.calls += 1
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return await step()
        return step


class ExplodingParser(ParseStrategy):
    name = "exploding"
    priority = 50

    def supports(self, url):
        return True

    def parse(self, html, source_url):
        raise AttributeError("'NoneType' object has no attribute 'text'")


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def item(store):
    return store.create_job([URL]).items[0]


@pytest.fixture
def limiter():
    return HostRateLimiter(interval=0.0)


@pytest.fixture
def make_processor(store, sleep, limiter):
    def build(*fetchers, parsers=None, **kwargs):
        return ItemProcessor(
            store=store,
            fetchers=FetcherRegistry(list(fetchers)),
            parsers=ParserRegistry(parsers or [GenericParser()]),
            rate_limiter=limiter,
            profile_service=ProfileService(store),
            retry_policy=RetryPolicy(max_attempts=3, base_delay=0.5, backoff_multiplier=2.0),
            sleep=sleep,
            **kwargs,
        )
    return build


def stored_item(store, item):
    return next(i for i in store.find_items_by_job(item.job_id) if i.id == item.id)


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_ok_profile_is_saved(self, store, item, make_processor, profile_html, limiter):
        http = ScriptedFetcher([response(200, profile_html)])

        outcome = await make_processor(http).process(item)

        assert outcome.status == ItemStatus.OK
        assert outcome.attempts == 1
        assert outcome.last_status_code == 200
        assert outcome.escalated is False
        assert outcome.error is None

        profile = store.find_profile_by_source_url(URL)
        assert profile.display_name == "Jane Doe"
        assert stored_item(store, item).attempts == 1
        assert limiter.get_stats().total_requests == 1

    @pytest.mark.asyncio
    async def test_profile_keyed_by_requested_url(self, store, item, make_processor, profile_html):
        redirected = FetchResult(html=profile_html, final_url="https://examplesocial.com/u/123", status_code=200)

        await make_processor(ScriptedFetcher([redirected])).process(item)

        assert store.find_profile_by_source_url(URL) is not None
        assert store.find_profile_by_source_url("https://examplesocial.com/u/123") is None

    @pytest.mark.asyncio
    async def test_attempts_carry_over_from_item(self, store, item, make_processor, profile_html):
        item.attempts = 2
        outcome = await make_processor(ScriptedFetcher([response(200, profile_html)])).process(item)
        assert outcome.attempts == 3


class TestFailures:

    @pytest.mark.asyncio
    async def test_403_is_blocked_after_one_attempt(self, store, item, make_processor, sleep):
        http = ScriptedFetcher([response(403)])

        outcome = await make_processor(http).process(item)

        assert outcome.status == ItemStatus.BLOCKED
        assert outcome.attempts == 1
        assert outcome.last_status_code == 403
        assert outcome.error == "blocked: HTTP 403"
        assert http.calls == 1
        assert sleep.delays == []
        assert store.count_profiles() == 0

    @pytest.mark.asyncio
    async def test_404_is_client_error_without_retry(self, item, make_processor):
        http = ScriptedFetcher([response(404)])
        outcome = await make_processor(http).process(item)
        assert outcome.status == ItemStatus.ERROR
        assert outcome.error == "client: HTTP 404"
        assert http.calls == 1

    @pytest.mark.asyncio
    async def test_503_retried_until_exhausted(self, store, item, make_processor, sleep, limiter):
        http = ScriptedFetcher([response(503)])

        outcome = await make_processor(http).process(item)

        assert outcome.status == ItemStatus.ERROR
        assert outcome.attempts == 3
        assert outcome.last_status_code == 503
        assert outcome.error.startswith("server:")
        assert sleep.delays == [0.5, 1.0]
        assert stored_item(store, item).attempts == 3
        # every attempt is rate limited
        assert limiter.get_stats().total_requests == 3

    @pytest.mark.asyncio
    async def test_recovers_after_server_error(self, item, make_processor, profile_html):
        http = ScriptedFetcher([response(503), response(200, profile_html)])
        outcome = await make_processor(http).process(item)
        assert outcome.status == ItemStatus.OK
        assert outcome.attempts == 2
        assert outcome.last_status_code == 200

    @pytest.mark.asyncio
    async def test_empty_body_is_retried(self, item, make_processor, profile_html):
        http = ScriptedFetcher([response(200, ""), response(200, profile_html)])
        outcome = await make_processor(http).process(item)
        assert outcome.status == ItemStatus.OK
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_timeouts_exhaust_retries(self, item, make_processor):
        http = ScriptedFetcher([httpx.ReadTimeout("read timed out")])
        outcome = await make_processor(http).process(item)
        assert outcome.status == ItemStatus.ERROR
        assert outcome.error == "transport: Request timeout"
        assert outcome.attempts == 3
        assert outcome.last_status_code is None

    @pytest.mark.asyncio
    async def test_challenge_page_is_blocked(self, item, make_processor):
        http = ScriptedFetcher([response(200, "<html>cf</html>", challenge="cloudflare_challenge")])
        outcome = await make_processor(http).process(item)
        assert outcome.status == ItemStatus.BLOCKED
        assert outcome.last_status_code == 200
        assert "cloudflare_challenge" in outcome.error

    @pytest.mark.asyncio
    async def test_no_fetch_strategy(self, item, make_processor):
        outcome = await make_processor().process(item)
        assert outcome.status == ItemStatus.ERROR
        assert outcome.error.startswith("content:")
        assert outcome.attempts == 0

    @pytest.mark.asyncio
    async def test_parser_exception_is_content_error(self, item, make_processor, profile_html):
        http = ScriptedFetcher([response(200, profile_html)])
        outcome = await make_processor(http, parsers=[ExplodingParser()]).process(item)
        assert outcome.status == ItemStatus.ERROR
        assert outcome.error.startswith("content: Parse failed with exploding")
        assert http.calls == 1

    @pytest.mark.asyncio
    async def test_item_timeout(self, item, make_processor):
        async def hang():
            await asyncio.sleep(10)

        http = ScriptedFetcher([hang])
        outcome = await make_processor(http, item_timeout=0.05).process(item)

        assert outcome.status == ItemStatus.ERROR
        assert outcome.error.startswith("transport: Item timed out")
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self, store, item, make_processor, profile_html):
        store.update_item_attempts = Mock(side_effect=StorageError("disk I/O error"))
        http = ScriptedFetcher([response(200, profile_html)])

        with pytest.raises(StorageError):
            await make_processor(http).process(item)
        assert http.calls == 0


class TestEscalation:

    @pytest.mark.asyncio
    async def test_thin_page_escalates_to_renderer(self, store, item, make_processor, profile_html):
        http = ScriptedFetcher([response(200, THIN_HTML)])
        browser = ScriptedFetcher([response(200, profile_html)], name="browser", priority=5, renders_javascript=True)
        # The renderer only handles other domains, escalation still reaches it
        browser.supports = lambda url: False

        outcome = await make_processor(http, browser).process(item)

        assert outcome.status == ItemStatus.OK
        assert outcome.escalated is True
        assert outcome.attempts == 2
        assert (http.calls, browser.calls) == (1, 1)
        assert store.find_profile_by_source_url(URL).display_name == "Jane Doe"

    @pytest.mark.asyncio
    async def test_failed_escalation_keeps_first_result(self, store, item, make_processor, sleep):
        http = ScriptedFetcher([response(200, THIN_HTML)])
        browser = ScriptedFetcher([response(500)], name="browser", priority=5, renders_javascript=True)
        browser.supports = lambda url: False

        outcome = await make_processor(http, browser).process(item)

        assert outcome.status == ItemStatus.OK
        assert outcome.escalated is False
        assert outcome.attempts == 1 + 3
        assert store.find_profile_by_source_url(URL) is not None

    @pytest.mark.asyncio
    async def test_blocked_escalation_blocks_item(self, store, item, make_processor):
        http = ScriptedFetcher([response(200, THIN_HTML)])
        browser = ScriptedFetcher(
            [response(200, "<html></html>", challenge="title:just a moment")],
            name="browser", priority=5, renders_javascript=True,
        )
        browser.supports = lambda url: False

        outcome = await make_processor(http, browser).process(item)

        assert outcome.status == ItemStatus.BLOCKED
        assert outcome.attempts == 2
        assert store.count_profiles() == 0

    @pytest.mark.asyncio
    async def test_no_escalation_when_first_strategy_renders(self, item, make_processor):
        browser = ScriptedFetcher([response(200, THIN_HTML)], name="browser", priority=5, renders_javascript=True)
        outcome = await make_processor(browser).process(item)
        assert outcome.status == ItemStatus.OK
        assert outcome.escalated is False
        assert browser.calls == 1

    @pytest.mark.asyncio
    async def test_no_renderer_available(self, item, make_processor):
        http = ScriptedFetcher([response(200, THIN_HTML)])
        outcome = await make_processor(http).process(item)
        assert outcome.status == ItemStatus.OK
        assert outcome.escalated is False
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_complete_page_does_not_escalate(self, item, make_processor, profile_html):
        http = ScriptedFetcher([response(200, profile_html)])
        browser = ScriptedFetcher([response(200, profile_html)], name="browser", priority=5, renders_javascript=True)
        browser.supports = lambda url: False

        outcome = await make_processor(http, browser).process(item)

        assert outcome.escalated is False
        assert browser.calls == 0
