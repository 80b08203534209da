"""Data models for crawl jobs, items and profiles."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class JobStatus(str, Enum):
    """Lifecycle of a crawl job: queued -> running -> done | partial | failed."""
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES

    def can_transition_to(self, target: "JobStatus") -> bool:
        """Whether the state machine allows moving from this status to target."""
        if self.is_terminal:
            return False
        if self == JobStatus.QUEUED:
            return target in (JobStatus.RUNNING, JobStatus.FAILED)
        # running may be re-entered on redelivery, or settle in a terminal state
        return target == JobStatus.RUNNING or target.is_terminal


TERMINAL_JOB_STATUSES = frozenset({JobStatus.DONE, JobStatus.PARTIAL, JobStatus.FAILED})


class ItemStatus(str, Enum):
    """Outcome of a single URL within a job."""
    PENDING = "pending"
    OK = "ok"
    ERROR = "error"
    BLOCKED = "blocked"

    @property
    def is_terminal(self) -> bool:
        return self != ItemStatus.PENDING


class JobPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class Job:
    """A unit of work covering a set of URLs to crawl."""

    id: str
    total: int
    processed: int = 0
    failed: int = 0
    priority: JobPriority = JobPriority.NORMAL
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class JobItem:
    """One URL's crawl outcome within a job."""

    id: str
    job_id: str
    url: str
    status: ItemStatus = ItemStatus.PENDING
    attempts: int = 0
    last_status_code: Optional[int] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class JobWithItems:
    job: Job
    items: list[JobItem] = field(default_factory=list)


@dataclass
class FetchResult:
    """Raw result of one fetch attempt.

    ``html`` is None when the fetch produced no usable document.
    ``challenge`` names a bot challenge detected on the page, if any.
    """

    html: Optional[str]
    final_url: str
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    challenge: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200 and bool(self.html)


@dataclass
class ParsedProfile:
    """Profile data extracted from one page."""

    source_url: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_url: Optional[str] = None
    public_stats: Optional[dict[str, float]] = None
    links: Optional[list[str]] = None
    raw_html_checksum: Optional[str] = None
    scraped_at: datetime = field(default_factory=datetime.now)

    @property
    def has_core_fields(self) -> bool:
        """True when any of display name, bio or avatar was found."""
        return bool(self.display_name or self.bio or self.avatar_url)


@dataclass
class Profile:
    """Stored profile record, keyed by source URL."""

    id: int
    source_url: str
    raw_html_checksum: str
    scraped_at: datetime
    username: Optional[str] = None
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    cover_url: Optional[str] = None
    public_stats: Optional[dict[str, float]] = None
    links: Optional[list[str]] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class StatusCounts:
    total: int = 0
    pending: int = 0
    ok: int = 0
    error: int = 0
    blocked: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "pending": self.pending,
            "ok": self.ok,
            "error": self.error,
            "blocked": self.blocked,
        }


@dataclass
class ItemOutcome:
    """Terminal result of processing one job item."""

    item_id: str
    url: str
    status: ItemStatus
    attempts: int
    last_status_code: Optional[int] = None
    error: Optional[str] = None
    escalated: bool = False

    @property
    def success(self) -> bool:
        return self.status == ItemStatus.OK


@dataclass
class JobRunSummary:
    """What one orchestrator run did to a job."""

    job_id: str
    status: JobStatus
    processed: int = 0
    failed: int = 0
    outcomes: list[ItemOutcome] = field(default_factory=list)
    stopped: bool = False
    duration_seconds: float = 0.0
