"""Queue consumer that drains crawl jobs into the orchestrator."""

import asyncio
import logging
from typing import Optional

from profilecrawl.constants import CRAWL_TOPIC, DEFAULT_ITEM_TIMEOUT_SECONDS, DEFAULT_WORKER_CONCURRENCY
from profilecrawl.errors import JobNotFoundError
from profilecrawl.infrastructure.rate_limiter import HostRateLimiter
from profilecrawl.models import JobRunSummary
from profilecrawl.orchestrator import CrawlOrchestrator
from profilecrawl.queue import Message, MessageQueue

logger = logging.getLogger(__name__)


class CrawlWorker:
    """
    Fixed-size pool of consumers on the crawl topic.

    Each consumer runs one job at a time to completion. Stopping the worker
    sets the shared stop event: running jobs stop starting new items, let
    in-flight items finish, and stay running for a later delivery.
    ``stop()`` returns once every handler has returned or ``drain_timeout``
    has passed.
    """

    def __init__(
        self,
        queue: MessageQueue,
        orchestrator: CrawlOrchestrator,
        rate_limiter: Optional[HostRateLimiter] = None,
        concurrency: int = DEFAULT_WORKER_CONCURRENCY,
        topic: str = CRAWL_TOPIC,
        drain_timeout: float = DEFAULT_ITEM_TIMEOUT_SECONDS,
    ):
        self.queue = queue
        self.orchestrator = orchestrator
        self.rate_limiter = rate_limiter
        self.concurrency = concurrency
        self.topic = topic
        self.drain_timeout = drain_timeout
        self.stop_event = asyncio.Event()
        self.summaries: list[JobRunSummary] = []
        self._cleanup_task: Optional[asyncio.Task] = None
        self._started = False
        self._active = 0
        self._idle = asyncio.Event()
        self._idle.set()

    async def handle(self, message: Message) -> None:
        job_id = message.payload.get("job_id")
        if not job_id:
            logger.error(f"Discarding message {message.id} without job_id")
            return

        logger.info(f"Worker picked up job {job_id} (delivery {message.deliveries})")
        self._active += 1
        self._idle.clear()
        try:
            summary = await self.orchestrator.run(job_id, stop_event=self.stop_event)
        except JobNotFoundError:
            # Redelivery cannot bring a deleted job back
            logger.error(f"Job {job_id} no longer exists, dropping message {message.id}")
            return
        finally:
            self._active -= 1
            if self._active == 0:
                self._idle.set()
        self.summaries.append(summary)

    async def start(self) -> None:
        if self._started:
            return
        self.queue.subscribe(self.topic, self.handle, concurrency=self.concurrency)
        if self.rate_limiter is not None:
            self._cleanup_task = asyncio.create_task(self.rate_limiter.run_cleanup(self.stop_event))
        self._started = True
        logger.info(f"Crawl worker started with {self.concurrency} consumer(s) on {self.topic}")

    async def stop(self) -> None:
        """Signal running jobs to stop and wait for their in-flight items."""
        self.stop_event.set()
        if self._active:
            logger.info(f"Crawl worker stopping, waiting for {self._active} running job(s)")
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Crawl worker still has {self._active} running job(s) after {self.drain_timeout}s"
            )
        if self._cleanup_task is not None:
            await self._cleanup_task
            self._cleanup_task = None
        logger.info("Crawl worker stopped")

    @property
    def active_jobs(self) -> int:
        return self._active

    @property
    def is_started(self) -> bool:
        return self._started
