"""Error taxonomy for the crawl engine.

Every failure that crosses the retry boundary is a ``CrawlError`` tagged with
an ``ErrorKind``. Retry decisions look at the kind, never at exception
subclasses:

- transport: DNS failure, refused/reset connection, timeout (retryable)
- server: HTTP 429 or 5xx (retryable)
- blocked: HTTP 403 or a detected challenge page (terminal)
- client: any other non-200 response (terminal)
- content: no matching strategy, parse failure (terminal)
- unexpected: anything unclassified (terminal)

Storage and queue failures are infrastructure errors; they are raised as
``StorageError`` and abort the job run instead of being recorded on an item.
"""

import asyncio
from enum import Enum
from typing import Optional

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from profilecrawl.constants import HTTP_CODES_BLOCKED, HTTP_CODES_RETRYABLE


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    SERVER = "server"
    BLOCKED = "blocked"
    CLIENT = "client"
    CONTENT = "content"
    UNEXPECTED = "unexpected"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSPORT, ErrorKind.SERVER)


class CrawlError(Exception):
    """A classified item-level failure."""

    def __init__(self, kind: ErrorKind, message: str, status_code: Optional[int] = None):
        self.kind = kind
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"CrawlError(kind={self.kind.value!r}, message={self.message!r}, status_code={self.status_code!r})"


class StorageError(Exception):
    """Raised when the storage collaborator cannot serve a request."""


class JobNotFoundError(StorageError):
    """Raised when a job record is missing."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


def classify_status(status_code: int) -> Optional[ErrorKind]:
    """Map an HTTP status code to an error kind; None means success."""
    if status_code == 200:
        return None
    if status_code in HTTP_CODES_BLOCKED:
        return ErrorKind.BLOCKED
    if status_code in HTTP_CODES_RETRYABLE or 500 <= status_code < 600:
        return ErrorKind.SERVER
    return ErrorKind.CLIENT


def classify_exception(exc: BaseException) -> CrawlError:
    """Wrap a foreign exception in a tagged CrawlError."""
    if isinstance(exc, CrawlError):
        return exc

    # UnsupportedProtocol and InvalidURL won't resolve with a retry
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.InvalidURL)):
        return CrawlError(ErrorKind.CLIENT, f"Invalid URL: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        return CrawlError(ErrorKind.TRANSPORT, "Request timeout")
    if isinstance(exc, httpx.TransportError):
        return CrawlError(ErrorKind.TRANSPORT, f"Connection error: {exc}")

    if isinstance(exc, PlaywrightTimeoutError):
        return CrawlError(ErrorKind.TRANSPORT, "Render timeout")
    if isinstance(exc, PlaywrightError):
        message = str(exc)
        if "net::" in message:
            return CrawlError(ErrorKind.TRANSPORT, f"Render navigation error: {message}")
        return CrawlError(ErrorKind.UNEXPECTED, f"Render error: {message}")

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return CrawlError(ErrorKind.TRANSPORT, f"{type(exc).__name__}: {exc}".rstrip(": "))

    return CrawlError(ErrorKind.UNEXPECTED, str(exc) or type(exc).__name__)
