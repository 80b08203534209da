"""Shared infrastructure: per-host rate limiting, retries and the render pool."""

from .rate_limiter import HostRateLimiter, host_key
from .retry import RetryPolicy, default_should_retry, execute_with_retry
from .browser_pool import RenderPool

__all__ = [
    "HostRateLimiter",
    "host_key",
    "RetryPolicy",
    "default_should_retry",
    "execute_with_retry",
    "RenderPool",
]
