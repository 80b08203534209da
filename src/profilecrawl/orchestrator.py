"""
Crawl orchestrator.

Drives one job from running to a terminal status:

    queued -> running -> done | partial | failed

Terminal statuses are absorbing. Items are processed with bounded
concurrency; progress counters only ever grow; the final status is written
after every item's terminal write.
"""

import asyncio
import logging
import time
from typing import Optional

from profilecrawl.constants import DEFAULT_ITEM_CONCURRENCY
from profilecrawl.database import AbstractStore
from profilecrawl.errors import JobNotFoundError, StorageError
from profilecrawl.models import ItemOutcome, JobItem, JobRunSummary, JobStatus
from profilecrawl.processor import ItemProcessor
from profilecrawl.status import JobStatusCalculator

logger = logging.getLogger(__name__)


class _Progress:
    """Job counters updated under a lock so writes stay monotonic."""

    def __init__(self, processed: int, failed: int):
        self.processed = processed
        self.failed = failed
        self.lock = asyncio.Lock()


class CrawlOrchestrator:
    """Runs jobs against an item processor."""

    def __init__(
        self,
        store: AbstractStore,
        processor: ItemProcessor,
        item_concurrency: int = DEFAULT_ITEM_CONCURRENCY,
    ):
        self.store = store
        self.processor = processor
        self.item_concurrency = max(1, item_concurrency)

    async def run(self, job_id: str, stop_event: Optional[asyncio.Event] = None) -> JobRunSummary:
        """
        Process every pending item of a job and write its final status.

        Args:
            job_id: Job to run
            stop_event: When set, no further items are started; in-flight
                items finish and the job is left running with its remaining
                items pending

        Returns:
            Summary of this run

        Raises:
            JobNotFoundError: The job does not exist
            StorageError: Storage failed; the job is forced to failed first
                when still possible
        """
        started = time.monotonic()
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status.is_terminal:
            logger.info(f"Job {job_id} already {job.status.value}, skipping")
            return JobRunSummary(
                job_id=job_id, status=job.status, processed=job.processed, failed=job.failed
            )

        try:
            return await self._run(job_id, job.processed, job.failed, stop_event, started)
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} run cancelled, leaving it running")
            raise
        except Exception as e:
            logger.error(f"Job {job_id} aborted: {e}")
            self._force_failed(job_id)
            raise

    async def _run(
        self,
        job_id: str,
        processed: int,
        failed: int,
        stop_event: Optional[asyncio.Event],
        started: float,
    ) -> JobRunSummary:
        self.store.update_job_status(job_id, JobStatus.RUNNING)
        items = self.store.find_pending_items(job_id)
        logger.info(f"Job {job_id} running: {len(items)} pending item(s), concurrency {self.item_concurrency}")

        progress = _Progress(processed, failed)
        semaphore = asyncio.Semaphore(self.item_concurrency)

        async def handle(item: JobItem) -> Optional[ItemOutcome]:
            async with semaphore:
                if stop_event is not None and stop_event.is_set():
                    return None
                outcome = await self.processor.process(item)
                self.store.record_item_outcome(outcome)
                async with progress.lock:
                    if outcome.success:
                        progress.processed += 1
                    else:
                        progress.failed += 1
                    self.store.update_job_progress(job_id, progress.processed, progress.failed)
                return outcome

        tasks = [asyncio.create_task(handle(item)) for item in items]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        outcomes = [outcome for outcome in results if outcome is not None]
        stopped = len(outcomes) < len(items)

        if stopped:
            logger.info(
                f"Job {job_id} stopped with {len(items) - len(outcomes)} item(s) still pending"
            )
            return JobRunSummary(
                job_id=job_id,
                status=JobStatus.RUNNING,
                processed=progress.processed,
                failed=progress.failed,
                outcomes=outcomes,
                stopped=True,
                duration_seconds=time.monotonic() - started,
            )

        final_status = self._finalize(job_id, progress)
        duration = time.monotonic() - started
        logger.info(
            f"Job {job_id} finished {final_status.value}: "
            f"{progress.processed} ok, {progress.failed} failed in {duration:.1f}s"
        )
        return JobRunSummary(
            job_id=job_id,
            status=final_status,
            processed=progress.processed,
            failed=progress.failed,
            outcomes=outcomes,
            duration_seconds=duration,
        )

    def _finalize(self, job_id: str, progress: _Progress) -> JobStatus:
        """Reconcile counters with stored items and write the aggregate status."""
        items = self.store.find_items_by_job(job_id)
        counts = JobStatusCalculator.status_counts(items)
        logger.debug(f"Job {job_id} item counts: {counts.to_dict()}")

        # A crashed earlier delivery can leave recorded items uncounted
        ok, not_ok = counts.ok, counts.error + counts.blocked
        if (ok, not_ok) != (progress.processed, progress.failed) and ok >= progress.processed and not_ok >= progress.failed:
            logger.warning(
                f"Job {job_id} counters {progress.processed}/{progress.failed} "
                f"reconciled to {ok}/{not_ok}"
            )
            progress.processed, progress.failed = ok, not_ok
            self.store.update_job_progress(job_id, ok, not_ok)

        final_status = JobStatusCalculator.status_from_counts(counts)
        self.store.update_job_status(job_id, final_status)
        return final_status

    def _force_failed(self, job_id: str) -> None:
        try:
            job = self.store.get_job(job_id)
            if job is not None and not job.status.is_terminal:
                self.store.update_job_status(job_id, JobStatus.FAILED)
                logger.info(f"Job {job_id} forced to failed")
        except StorageError as e:
            logger.error(f"Could not mark job {job_id} failed: {e}")
