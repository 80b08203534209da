"""Fetch strategy interface."""

from abc import ABC, abstractmethod

from profilecrawl.models import FetchResult


class FetchStrategy(ABC):
    """A capability-scoped way of retrieving a page.

    ``fetch`` returns a FetchResult for any HTTP response, including error
    statuses, and raises only for transport-level failures.
    """

    name: str = "fetch"
    priority: int = 0
    renders_javascript: bool = False

    @abstractmethod
    def supports(self, url: str) -> bool:
        pass

    @abstractmethod
    async def fetch(self, url: str) -> FetchResult:
        pass

    async def close(self) -> None:
        """Release any resources held by the strategy."""
        return None
