"""Application services over storage: profile upserts and job lifecycle."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from profilecrawl.constants import CRAWL_TOPIC
from profilecrawl.database import AbstractStore
from profilecrawl.errors import JobNotFoundError
from profilecrawl.models import ItemStatus, JobPriority, JobWithItems, ParsedProfile, Profile
from profilecrawl.queue import MessageQueue
from profilecrawl.status import JobStatusCalculator

logger = logging.getLogger(__name__)


class UpsertAction(str, Enum):
    CREATED = "created"
    UNCHANGED = "unchanged"
    UPDATED = "updated"


@dataclass
class UpsertResult:
    profile: Profile
    action: UpsertAction


class ProfileService:
    """Checksum-gated profile persistence keyed by source URL."""

    def __init__(self, store: AbstractStore):
        self.store = store

    def save_or_update(self, parsed: ParsedProfile) -> UpsertResult:
        """
        Create the profile, or refresh it.

        When the stored checksum equals the new one only scraped_at changes;
        otherwise every field is overwritten.
        """
        if not parsed.raw_html_checksum:
            raise ValueError(f"Parsed profile for {parsed.source_url} has no checksum")

        existing = self.store.find_profile_by_source_url(parsed.source_url)

        if existing is None:
            logger.info(f"Creating new profile for {parsed.source_url}")
            return UpsertResult(self.store.insert_profile(parsed), UpsertAction.CREATED)

        if existing.raw_html_checksum == parsed.raw_html_checksum:
            logger.info(f"Profile unchanged for {parsed.source_url}, updating scraped_at only")
            return UpsertResult(
                self.store.touch_profile(existing.id, parsed.scraped_at),
                UpsertAction.UNCHANGED,
            )

        logger.info(
            f"Profile changed for {parsed.source_url} "
            f"({existing.raw_html_checksum[:12]} -> {parsed.raw_html_checksum[:12]}), updating all fields"
        )
        return UpsertResult(self.store.update_profile(existing.id, parsed), UpsertAction.UPDATED)


class JobService:
    """Job creation, enqueueing and reporting."""

    def __init__(self, store: AbstractStore, queue: Optional[MessageQueue] = None, topic: str = CRAWL_TOPIC):
        self.store = store
        self.queue = queue
        self.topic = topic

    async def create_crawl_job(self, urls: list[str], priority: JobPriority = JobPriority.NORMAL) -> JobWithItems:
        """Persist a job for the URLs and publish it for the workers."""
        created = self.store.create_job(urls, JobPriority(priority))
        logger.info(
            f"Created crawl job {created.job.id} with {created.job.total} URL(s) "
            f"(priority {created.job.priority.value})"
        )

        if self.queue is not None:
            await self.queue.publish(
                self.topic,
                {"job_id": created.job.id},
                priority=1 if created.job.priority == JobPriority.HIGH else 0,
            )
            logger.info(f"Crawl job {created.job.id} enqueued on {self.topic}")

        return created

    def get_job_report(self, job_id: str) -> dict[str, Any]:
        """Summarize a job: counters, status counts and per-item failures."""
        job_with_items = self.store.get_job_with_items(job_id)
        if job_with_items is None:
            raise JobNotFoundError(job_id)

        job, items = job_with_items.job, job_with_items.items
        counts = JobStatusCalculator.status_counts(items)

        return {
            "job_id": job.id,
            "status": job.status.value,
            "priority": job.priority.value,
            "total": job.total,
            "processed": job.processed,
            "failed": job.failed,
            "counts": counts.to_dict(),
            "success_rate": round(JobStatusCalculator.success_rate(items), 2),
            "created_at": job.created_at.isoformat(),
            "updated_at": job.updated_at.isoformat(),
            "failures": [
                {
                    "url": item.url,
                    "status": item.status.value,
                    "attempts": item.attempts,
                    "last_status_code": item.last_status_code,
                    "error": item.error,
                }
                for item in items
                if item.status in (ItemStatus.ERROR, ItemStatus.BLOCKED)
            ],
        }
