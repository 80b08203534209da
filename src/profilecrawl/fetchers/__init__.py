"""Fetch strategies."""

from .base import FetchStrategy
from .http import HttpFetcher
from .browser import BrowserFetcher

__all__ = ["FetchStrategy", "HttpFetcher", "BrowserFetcher"]
