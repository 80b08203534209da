"""Parse strategy interface."""

from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlparse

from profilecrawl.models import ParsedProfile


class ParseStrategy(ABC):
    """Extracts a profile from a page's HTML.

    Strategies that match a URL must return a profile (possibly empty)
    rather than None, so dispatch never falls through to a weaker parser.
    """

    name: str = "parse"
    priority: int = 0

    @abstractmethod
    def supports(self, url: str) -> bool:
        pass

    @abstractmethod
    def parse(self, html: str, source_url: str) -> Optional[ParsedProfile]:
        pass


def hostname_matches(url: str, domains: list[str]) -> bool:
    """True if the URL's host is one of the domains or a subdomain of one."""
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    return any(hostname == d or hostname.endswith("." + d) for d in domains)
