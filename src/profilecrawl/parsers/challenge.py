"""
Bot challenge detection for rendered pages.

Works on the rendered HTML, title and final URL rather than a live page, so
it can run after the render slot has been released.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from profilecrawl.constants import (
    CHALLENGE_MARKERS,
    CHALLENGE_TITLES,
    CHALLENGE_URL_PATHS,
)

logger = logging.getLogger(__name__)


def _host_and_path(url: str) -> tuple[str, str]:
    parsed = urlparse(url.lower())
    return parsed.hostname or "", parsed.path.rstrip("/")


def redirected_to_challenge(url: str, requested_url: Optional[str]) -> Optional[str]:
    """Return the matching challenge path when navigation was sent to one."""
    if not requested_url:
        return None
    host, path = _host_and_path(url)
    if (host, path) == _host_and_path(requested_url):
        # A profile whose own path looks like a challenge is not a redirect
        return None
    for prefix in CHALLENGE_URL_PATHS:
        if path == prefix or path.startswith(prefix + "/"):
            return prefix
    return None


def detect_challenge(
    html: Optional[str],
    title: Optional[str] = None,
    url: str = "",
    requested_url: Optional[str] = None,
) -> Optional[str]:
    """
    Detect a CAPTCHA or bot challenge.

    Args:
        html: Rendered page HTML
        title: Page title
        url: Final URL after navigation
        requested_url: URL navigation started from; URL rules only apply
            when the final URL differs from it

    Returns:
        Name of detected challenge type, or None if no challenge found
    """
    path = redirected_to_challenge(url, requested_url)
    if path:
        return f"url_pattern:{path}"

    if title:
        normalized = title.strip().lower().rstrip(".… ")
        if normalized in CHALLENGE_TITLES:
            return f"title:{normalized}"

    if html:
        lowered = html.lower()
        for name, markers in CHALLENGE_MARKERS.items():
            if any(marker in lowered for marker in markers):
                return name

    return None


def is_challenge_page(
    html: Optional[str],
    title: Optional[str] = None,
    url: str = "",
    requested_url: Optional[str] = None,
) -> bool:
    """Check if a rendered page is a challenge."""
    return detect_challenge(html, title, url, requested_url) is not None
