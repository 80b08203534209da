"""Aggregation of item statuses into a job status."""

from collections import Counter
from typing import Iterable, Union

from profilecrawl.models import ItemStatus, JobItem, JobStatus, StatusCounts

StatusLike = Union[ItemStatus, JobItem]


def _status_of(item: StatusLike) -> ItemStatus:
    return item.status if isinstance(item, JobItem) else ItemStatus(item)


class JobStatusCalculator:
    """
    Pure functions over a job's item statuses.

    Rules, in order:
    - any item pending -> running
    - every item ok -> done
    - every item error or blocked -> failed
    - otherwise (ok mixed with error/blocked) -> partial
    """

    @staticmethod
    def status_counts(items: Iterable[StatusLike]) -> StatusCounts:
        counter = Counter(_status_of(item) for item in items)
        return StatusCounts(
            total=sum(counter.values()),
            pending=counter[ItemStatus.PENDING],
            ok=counter[ItemStatus.OK],
            error=counter[ItemStatus.ERROR],
            blocked=counter[ItemStatus.BLOCKED],
        )

    @classmethod
    def calculate_status(cls, items: Iterable[StatusLike]) -> JobStatus:
        counts = cls.status_counts(items)
        return cls.status_from_counts(counts)

    @staticmethod
    def status_from_counts(counts: StatusCounts) -> JobStatus:
        if counts.pending > 0:
            return JobStatus.RUNNING
        if counts.ok == counts.total:
            # An empty job has nothing left to do
            return JobStatus.DONE
        if counts.error + counts.blocked == counts.total:
            return JobStatus.FAILED
        return JobStatus.PARTIAL

    @classmethod
    def success_rate(cls, items: Iterable[StatusLike]) -> float:
        """Percentage of processed items that ended ok."""
        counts = cls.status_counts(items)
        processed = counts.ok + counts.error + counts.blocked
        if processed == 0:
            return 0.0
        return counts.ok / processed * 100
