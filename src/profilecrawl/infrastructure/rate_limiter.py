"""
Per-host rate limiter.

Enforces a minimum interval between two requests to the same host. Callers
targeting one host are serialized through that host's lock so the
read-then-write of its timestamp is atomic; callers for different hosts
never wait on each other.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from profilecrawl.constants import (
    DEFAULT_RATE_LIMIT_INTERVAL_SECONDS,
    RATE_LIMIT_CLEANUP_INTERVALS,
)

logger = logging.getLogger(__name__)


def host_key(url: str) -> str:
    """Return the hostname for a URL, or the raw string if it has none."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    return hostname or url


@dataclass
class HostState:
    """Timestamp bookkeeping for one host."""
    lock: asyncio.Lock
    last_request: Optional[float] = None


@dataclass
class RateLimiterStats:
    """Counters for observability."""
    tracked_hosts: int
    total_requests: int
    total_waits: int
    total_wait_time: float


class HostRateLimiter:
    """
    Rate limiter keyed by URL hostname.

    One instance is shared by every fetch strategy in the process. It is
    built by the composition root and injected, never reached globally.
    """

    def __init__(
        self,
        interval: float = DEFAULT_RATE_LIMIT_INTERVAL_SECONDS,
        cleanup_after_intervals: int = RATE_LIMIT_CLEANUP_INTERVALS,
        clock=time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            interval: Minimum seconds between requests to one host
            cleanup_after_intervals: Idle intervals before a host entry is dropped
            clock: Monotonic time source (seconds)
        """
        self.interval = interval
        self.cleanup_after_intervals = cleanup_after_intervals
        self._clock = clock
        self._hosts: dict[str, HostState] = {}

        # Statistics
        self._total_requests = 0
        self._total_waits = 0
        self._total_wait_time = 0.0

    def _state_for(self, key: str) -> HostState:
        # No await between lookup and insert, so this is atomic on the loop
        state = self._hosts.get(key)
        if state is None:
            state = HostState(lock=asyncio.Lock())
            self._hosts[key] = state
        return state

    async def wait_for_host(self, url: str) -> float:
        """
        Wait until a request to the URL's host is permitted.

        Args:
            url: Target URL

        Returns:
            Time waited (seconds)
        """
        key = host_key(url)
        state = self._state_for(key)

        async with state.lock:
            now = self._clock()
            wait_time = 0.0
            if state.last_request is not None:
                elapsed = now - state.last_request
                wait_time = max(0.0, self.interval - elapsed)

            if wait_time > 0:
                logger.debug(f"Rate limiting {key}: waiting {wait_time:.3f}s")
                await asyncio.sleep(wait_time)
                self._total_waits += 1
                self._total_wait_time += wait_time

            state.last_request = self._clock()
            self._total_requests += 1
            return wait_time

    def cleanup(self) -> int:
        """
        Drop host entries idle for longer than the cleanup window.

        Hosts with a caller currently holding or waiting on the lock are kept.

        Returns:
            Number of entries removed
        """
        cutoff = self._clock() - self.interval * self.cleanup_after_intervals
        stale = [
            key for key, state in self._hosts.items()
            if not state.lock.locked()
            and state.last_request is not None
            and state.last_request < cutoff
        ]
        for key in stale:
            del self._hosts[key]

        if stale:
            logger.debug(f"Rate limiter cleanup removed {len(stale)} host(s)")
        return len(stale)

    async def run_cleanup(self, stop_event: asyncio.Event, period: Optional[float] = None) -> None:
        """Run cleanup periodically until stop_event is set."""
        period = period or self.interval * self.cleanup_after_intervals
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=period)
            except asyncio.TimeoutError:
                self.cleanup()

    def last_request_time(self, url: str) -> Optional[float]:
        state = self._hosts.get(host_key(url))
        return state.last_request if state else None

    def get_stats(self) -> RateLimiterStats:
        return RateLimiterStats(
            tracked_hosts=len(self._hosts),
            total_requests=self._total_requests,
            total_waits=self._total_waits,
            total_wait_time=self._total_wait_time,
        )

    @property
    def tracked_hosts(self) -> int:
        return len(self._hosts)
