"""Profile crawler: crawl public profile pages and track crawl jobs."""

__version__ = "0.1.0"

from profilecrawl.config import Config
from profilecrawl.models import (
    Job,
    JobItem,
    JobStatus,
    ItemStatus,
    JobPriority,
    FetchResult,
    ParsedProfile,
    Profile,
    ItemOutcome,
    JobRunSummary,
)
from profilecrawl.errors import CrawlError, ErrorKind, StorageError, JobNotFoundError
from profilecrawl.status import JobStatusCalculator
from profilecrawl.escalation import should_escalate
from profilecrawl.registry import FetcherRegistry, ParserRegistry, StrategyRegistry
from profilecrawl.processor import ItemProcessor
from profilecrawl.orchestrator import CrawlOrchestrator
from profilecrawl.container import Components, build_components

# Infrastructure
from profilecrawl.infrastructure import (
    HostRateLimiter,
    RetryPolicy,
    execute_with_retry,
    RenderPool,
)

__all__ = [
    "Config",
    "Job",
    "JobItem",
    "JobStatus",
    "ItemStatus",
    "JobPriority",
    "FetchResult",
    "ParsedProfile",
    "Profile",
    "ItemOutcome",
    "JobRunSummary",
    "CrawlError",
    "ErrorKind",
    "StorageError",
    "JobNotFoundError",
    "JobStatusCalculator",
    "should_escalate",
    "FetcherRegistry",
    "ParserRegistry",
    "StrategyRegistry",
    "ItemProcessor",
    "CrawlOrchestrator",
    "Components",
    "build_components",
    "HostRateLimiter",
    "RetryPolicy",
    "execute_with_retry",
    "RenderPool",
]
