"""Priority-ordered strategy registries for fetching and parsing."""

import logging
from typing import Generic, Iterator, Optional, Protocol, TypeVar

from profilecrawl.fetchers.base import FetchStrategy
from profilecrawl.parsers.base import ParseStrategy

logger = logging.getLogger(__name__)


class Strategy(Protocol):
    name: str
    priority: int

    def supports(self, url: str) -> bool:
        ...


S = TypeVar("S", bound=Strategy)


class StrategyRegistry(Generic[S]):
    """
    Holds strategies sorted by descending priority.

    Ties keep insertion order. ``select`` scans in that order and returns the
    first strategy whose ``supports`` predicate accepts the URL.
    """

    def __init__(self, strategies: Optional[list[S]] = None):
        self._strategies: list[S] = []
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: S) -> None:
        self._strategies.append(strategy)
        # sorted() is stable, so equal priorities keep registration order
        self._strategies = sorted(self._strategies, key=lambda s: s.priority, reverse=True)
        logger.debug(f"Registered strategy {strategy.name} (priority {strategy.priority})")

    def select(self, url: str) -> Optional[S]:
        for strategy in self._strategies:
            if strategy.supports(url):
                return strategy
        return None

    def all(self) -> list[S]:
        return list(self._strategies)

    def __iter__(self) -> Iterator[S]:
        return iter(list(self._strategies))

    def __len__(self) -> int:
        return len(self._strategies)


class FetcherRegistry(StrategyRegistry[FetchStrategy]):

    def select_renderer(self, url: str) -> Optional[FetchStrategy]:
        """First JS-rendering strategy, used for escalation regardless of URL match."""
        for strategy in self._strategies:
            if strategy.renders_javascript:
                return strategy
        return None

    async def close(self) -> None:
        for strategy in self._strategies:
            await strategy.close()


class ParserRegistry(StrategyRegistry[ParseStrategy]):
    pass
