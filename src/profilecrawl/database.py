# src/profilecrawl/database.py
"""Storage abstraction for jobs, job items and profiles, with a local SQLite backend."""

import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from profilecrawl.errors import JobNotFoundError, StorageError
from profilecrawl.models import (
    ItemOutcome,
    ItemStatus,
    Job,
    JobItem,
    JobPriority,
    JobStatus,
    JobWithItems,
    ParsedProfile,
    Profile,
    StatusCounts,
)

logger = logging.getLogger(__name__)

# Schema shared by every SQLite connection
CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    total INTEGER NOT NULL,
    processed INTEGER NOT NULL DEFAULT 0,
    failed INTEGER NOT NULL DEFAULT 0,
    priority TEXT NOT NULL DEFAULT 'normal',
    status TEXT NOT NULL DEFAULT 'queued',
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS job_items (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
    url TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    attempts INTEGER NOT NULL DEFAULT 0,
    last_status_code INTEGER,
    error TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,

    UNIQUE(job_id, url)
);

CREATE INDEX IF NOT EXISTS idx_job_items_job_status ON job_items(job_id, status);

CREATE TABLE IF NOT EXISTS profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_url TEXT NOT NULL UNIQUE,
    username TEXT,
    display_name TEXT,
    bio TEXT,
    avatar_url TEXT,
    cover_url TEXT,
    public_stats TEXT,
    links TEXT,
    raw_html_checksum TEXT NOT NULL,
    scraped_at TIMESTAMP NOT NULL,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);
"""

PROFILE_FIELDS = (
    "username",
    "display_name",
    "bio",
    "avatar_url",
    "cover_url",
    "public_stats",
    "links",
    "raw_html_checksum",
    "scraped_at",
)


class AbstractStore(ABC):
    """Abstract base class defining the storage interface the crawl engine needs."""

    @abstractmethod
    def close(self) -> None:
        """Close the storage connection."""
        pass

    # Jobs

    @abstractmethod
    def create_job(self, urls: List[str], priority: JobPriority = JobPriority.NORMAL) -> JobWithItems:
        """Create a queued job with one pending item per distinct URL.

        Args:
            urls: URLs to crawl. Duplicates are dropped, first occurrence wins.
            priority: Queue priority.

        Returns:
            The new job and its items.
        """
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    def get_job_with_items(self, job_id: str) -> Optional[JobWithItems]:
        pass

    @abstractmethod
    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 20, offset: int = 0) -> List[Job]:
        pass

    @abstractmethod
    def update_job_status(self, job_id: str, status: JobStatus) -> Job:
        """Move a job to a new status.

        Raises:
            ValueError: If the job state machine does not allow the move.
        """
        pass

    @abstractmethod
    def update_job_progress(self, job_id: str, processed: int, failed: int) -> Job:
        """Write progress counters.

        Raises:
            ValueError: If counters would decrease or exceed the job total.
        """
        pass

    @abstractmethod
    def delete_job(self, job_id: str) -> bool:
        """Delete a job and, by cascade, its items."""
        pass

    # Job items

    @abstractmethod
    def find_items_by_job(self, job_id: str) -> List[JobItem]:
        pass

    @abstractmethod
    def find_pending_items(self, job_id: str) -> List[JobItem]:
        pass

    @abstractmethod
    def update_item_attempts(self, item_id: str, attempts: int) -> None:
        pass

    @abstractmethod
    def record_item_outcome(self, outcome: ItemOutcome) -> None:
        """Atomically write an item's terminal status, attempts, last status code and error."""
        pass

    @abstractmethod
    def count_items_by_status(self, job_id: str) -> StatusCounts:
        pass

    # Profiles

    @abstractmethod
    def find_profile_by_source_url(self, source_url: str) -> Optional[Profile]:
        pass

    @abstractmethod
    def insert_profile(self, profile: ParsedProfile) -> Profile:
        pass

    @abstractmethod
    def update_profile(self, profile_id: int, profile: ParsedProfile) -> Profile:
        """Overwrite every profile field."""
        pass

    @abstractmethod
    def touch_profile(self, profile_id: int, scraped_at: datetime) -> Profile:
        """Refresh only scraped_at."""
        pass

    @abstractmethod
    def search_profiles(self, query: str, limit: int = 20) -> List[Profile]:
        pass

    @abstractmethod
    def list_profiles(self, limit: int = 20, offset: int = 0) -> List[Profile]:
        pass

    @abstractmethod
    def count_profiles(self) -> int:
        pass


class LocalSqliteStore(AbstractStore):
    """SQLite implementation for local storage."""

    def __init__(self, db_url: str = "sqlite:///profilecrawl.db"):
        """Initialize local SQLite storage.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db or sqlite:///:memory:).
        """
        self.db_url = db_url
        self.db_path = db_url.replace("sqlite:///", "")
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        """Establish SQLite connection."""
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.debug(f"Connected to local SQLite database: {self.db_path}")

    def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed local SQLite connection")

    def create_schema(self) -> None:
        with self._lock, self.conn:
            self.conn.executescript(CREATE_SCHEMA_SQL)
        logger.debug("Schema verified/created for local SQLite")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self.conn is None:
            raise StorageError("Database connection is closed")
        try:
            with self._lock, self.conn:
                return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {e}") from e

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        if self.conn is None:
            raise StorageError("Database connection is closed")
        try:
            with self._lock:
                return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {e}") from e

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def create_job(self, urls: List[str], priority: JobPriority = JobPriority.NORMAL) -> JobWithItems:
        unique_urls = list(dict.fromkeys(url.strip() for url in urls if url and url.strip()))
        if not unique_urls:
            raise ValueError("A job needs at least one URL")

        now = datetime.now()
        job = Job(
            id=uuid.uuid4().hex,
            total=len(unique_urls),
            priority=JobPriority(priority),
            created_at=now,
            updated_at=now,
        )
        items = [
            JobItem(id=uuid.uuid4().hex, job_id=job.id, url=url, created_at=now, updated_at=now)
            for url in unique_urls
        ]

        if self.conn is None:
            raise StorageError("Database connection is closed")
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    "INSERT INTO jobs (id, total, processed, failed, priority, status, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (job.id, job.total, 0, 0, job.priority.value, job.status.value,
                     now.isoformat(), now.isoformat()),
                )
                self.conn.executemany(
                    "INSERT INTO job_items (id, job_id, url, status, attempts, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    [(item.id, job.id, item.url, item.status.value, 0, now.isoformat(), now.isoformat())
                     for item in items],
                )
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {e}") from e

        logger.debug(f"Created job {job.id} with {job.total} item(s)")
        return JobWithItems(job=job, items=items)

    def get_job(self, job_id: str) -> Optional[Job]:
        rows = self._query("SELECT * FROM jobs WHERE id = ?", (job_id,))
        return _row_to_job(rows[0]) if rows else None

    def get_job_with_items(self, job_id: str) -> Optional[JobWithItems]:
        job = self.get_job(job_id)
        if job is None:
            return None
        return JobWithItems(job=job, items=self.find_items_by_job(job_id))

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 20, offset: int = 0) -> List[Job]:
        if status is not None:
            rows = self._query(
                "SELECT * FROM jobs WHERE status = ? ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (JobStatus(status).value, limit, offset),
            )
        else:
            rows = self._query(
                "SELECT * FROM jobs ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
        return [_row_to_job(row) for row in rows]

    def _require_job(self, job_id: str) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def update_job_status(self, job_id: str, status: JobStatus) -> Job:
        status = JobStatus(status)
        with self._lock:
            job = self._require_job(job_id)
            if not job.status.can_transition_to(status):
                raise ValueError(
                    f"Job {job_id} cannot move from {job.status.value} to {status.value}"
                )
            self._execute(
                "UPDATE jobs SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, datetime.now().isoformat(), job_id),
            )
        logger.debug(f"Job {job_id} status -> {status.value}")
        return self._require_job(job_id)

    def update_job_progress(self, job_id: str, processed: int, failed: int) -> Job:
        job = self._require_job(job_id)
        if processed + failed > job.total:
            raise ValueError(
                f"Progress {processed}+{failed} exceeds job total {job.total} for job {job_id}"
            )
        if processed < job.processed or failed < job.failed:
            raise ValueError(
                f"Progress for job {job_id} cannot decrease "
                f"({job.processed}/{job.failed} -> {processed}/{failed})"
            )
        self._execute(
            "UPDATE jobs SET processed = ?, failed = ?, updated_at = ? WHERE id = ?",
            (processed, failed, datetime.now().isoformat(), job_id),
        )
        return self._require_job(job_id)

    def delete_job(self, job_id: str) -> bool:
        cursor = self._execute("DELETE FROM jobs WHERE id = ?", (job_id,))
        return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Job items
    # -------------------------------------------------------------------------

    def find_items_by_job(self, job_id: str) -> List[JobItem]:
        rows = self._query(
            "SELECT * FROM job_items WHERE job_id = ? ORDER BY created_at ASC, rowid ASC",
            (job_id,),
        )
        return [_row_to_item(row) for row in rows]

    def find_pending_items(self, job_id: str) -> List[JobItem]:
        rows = self._query(
            "SELECT * FROM job_items WHERE job_id = ? AND status = ? ORDER BY created_at ASC, rowid ASC",
            (job_id, ItemStatus.PENDING.value),
        )
        return [_row_to_item(row) for row in rows]

    def update_item_attempts(self, item_id: str, attempts: int) -> None:
        self._execute(
            "UPDATE job_items SET attempts = ?, updated_at = ? WHERE id = ?",
            (attempts, datetime.now().isoformat(), item_id),
        )

    def record_item_outcome(self, outcome: ItemOutcome) -> None:
        cursor = self._execute(
            "UPDATE job_items SET status = ?, attempts = ?, last_status_code = ?, error = ?, updated_at = ? "
            "WHERE id = ?",
            (outcome.status.value, outcome.attempts, outcome.last_status_code, outcome.error,
             datetime.now().isoformat(), outcome.item_id),
        )
        if cursor.rowcount == 0:
            raise StorageError(f"Job item {outcome.item_id} not found")

    def count_items_by_status(self, job_id: str) -> StatusCounts:
        rows = self._query(
            "SELECT status, COUNT(*) AS n FROM job_items WHERE job_id = ? GROUP BY status",
            (job_id,),
        )
        counts = StatusCounts()
        for row in rows:
            setattr(counts, row["status"], row["n"])
            counts.total += row["n"]
        return counts

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def find_profile_by_source_url(self, source_url: str) -> Optional[Profile]:
        rows = self._query("SELECT * FROM profiles WHERE source_url = ?", (source_url,))
        return _row_to_profile(rows[0]) if rows else None

    def _get_profile(self, profile_id: int) -> Profile:
        rows = self._query("SELECT * FROM profiles WHERE id = ?", (profile_id,))
        if not rows:
            raise StorageError(f"Profile {profile_id} not found")
        return _row_to_profile(rows[0])

    def insert_profile(self, profile: ParsedProfile) -> Profile:
        now = datetime.now().isoformat()
        values = _profile_values(profile)
        columns = ", ".join(("source_url",) + PROFILE_FIELDS + ("created_at", "updated_at"))
        placeholders = ", ".join("?" for _ in range(len(PROFILE_FIELDS) + 3))
        cursor = self._execute(
            f"INSERT INTO profiles ({columns}) VALUES ({placeholders})",
            (profile.source_url, *values, now, now),
        )
        return self._get_profile(cursor.lastrowid)

    def update_profile(self, profile_id: int, profile: ParsedProfile) -> Profile:
        assignments = ", ".join(f"{name} = ?" for name in PROFILE_FIELDS)
        self._execute(
            f"UPDATE profiles SET {assignments}, updated_at = ? WHERE id = ?",
            (*_profile_values(profile), datetime.now().isoformat(), profile_id),
        )
        return self._get_profile(profile_id)

    def touch_profile(self, profile_id: int, scraped_at: datetime) -> Profile:
        self._execute(
            "UPDATE profiles SET scraped_at = ? WHERE id = ?",
            (scraped_at.isoformat(), profile_id),
        )
        return self._get_profile(profile_id)

    def search_profiles(self, query: str, limit: int = 20) -> List[Profile]:
        pattern = f"%{query.lower()}%"
        rows = self._query(
            "SELECT * FROM profiles WHERE lower(username) LIKE ? OR lower(display_name) LIKE ? "
            "OR lower(bio) LIKE ? ORDER BY scraped_at DESC LIMIT ?",
            (pattern, pattern, pattern, limit),
        )
        return [_row_to_profile(row) for row in rows]

    def list_profiles(self, limit: int = 20, offset: int = 0) -> List[Profile]:
        rows = self._query(
            "SELECT * FROM profiles ORDER BY scraped_at DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [_row_to_profile(row) for row in rows]

    def count_profiles(self) -> int:
        return self._query("SELECT COUNT(*) AS n FROM profiles")[0]["n"]


def _profile_values(profile: ParsedProfile) -> tuple:
    return (
        profile.username,
        profile.display_name,
        profile.bio,
        profile.avatar_url,
        profile.cover_url,
        json.dumps(profile.public_stats) if profile.public_stats is not None else None,
        json.dumps(profile.links) if profile.links is not None else None,
        profile.raw_html_checksum,
        profile.scraped_at.isoformat(),
    )


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _row_to_job(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        total=row["total"],
        processed=row["processed"],
        failed=row["failed"],
        priority=JobPriority(row["priority"]),
        status=JobStatus(row["status"]),
        created_at=_parse_time(row["created_at"]),
        updated_at=_parse_time(row["updated_at"]),
    )


def _row_to_item(row: sqlite3.Row) -> JobItem:
    return JobItem(
        id=row["id"],
        job_id=row["job_id"],
        url=row["url"],
        status=ItemStatus(row["status"]),
        attempts=row["attempts"],
        last_status_code=row["last_status_code"],
        error=row["error"],
        created_at=_parse_time(row["created_at"]),
        updated_at=_parse_time(row["updated_at"]),
    )


def _row_to_profile(row: sqlite3.Row) -> Profile:
    data: Dict[str, Any] = dict(row)
    return Profile(
        id=data["id"],
        source_url=data["source_url"],
        username=data["username"],
        display_name=data["display_name"],
        bio=data["bio"],
        avatar_url=data["avatar_url"],
        cover_url=data["cover_url"],
        public_stats=json.loads(data["public_stats"]) if data["public_stats"] else None,
        links=json.loads(data["links"]) if data["links"] else None,
        raw_html_checksum=data["raw_html_checksum"],
        scraped_at=_parse_time(data["scraped_at"]),
        created_at=_parse_time(data["created_at"]),
        updated_at=_parse_time(data["updated_at"]),
    )
