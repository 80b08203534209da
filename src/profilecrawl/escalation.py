"""Decides whether a fetched page needs a JS-rendering second pass."""

from typing import Optional

from profilecrawl.constants import MIN_HTML_SIZE, NEEDS_JS_MARKERS
from profilecrawl.models import FetchResult, ParsedProfile


def needs_js_marker(html: str) -> Optional[str]:
    """Return the first needs-JS marker found in the HTML, case-insensitively."""
    lowered = html.lower()
    for marker in NEEDS_JS_MARKERS:
        if marker in lowered:
            return marker
    return None


def should_escalate(
    fetch_result: FetchResult,
    profile: Optional[ParsedProfile],
    min_html_size: int = MIN_HTML_SIZE,
) -> bool:
    """
    Whether a successful fetch looks too thin to trust.

    Failed fetches (non-200 or no HTML) never escalate. Otherwise a page
    escalates when it is short, carries a needs-JS marker, produced no
    profile, or produced a profile without display name, bio and avatar.
    """
    if fetch_result.status_code != 200 or not fetch_result.html:
        return False

    html = fetch_result.html
    if len(html) < min_html_size:
        return True
    if needs_js_marker(html):
        return True
    if profile is None:
        return True
    return not profile.has_core_fields
