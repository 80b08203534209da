"""Tests for the escalation heuristic."""

import pytest

from profilecrawl.escalation import needs_js_marker, should_escalate
from profilecrawl.models import FetchResult, ParsedProfile


def result(html, status_code=200):
    return FetchResult(html=html, final_url="https://example.com/jane", status_code=status_code)


def full_profile():
    return ParsedProfile(
        source_url="https://example.com/jane",
        display_name="Jane",
        bio="Photographer",
        avatar_url="https://cdn.example.com/jane.jpg",
    )


LONG_HTML = "<html><body>" + ("<p>plain server-rendered content</p>" * 60) + "</body></html>"


class TestShouldEscalate:

    def test_short_html_always_escalates(self):
        assert should_escalate(result("<html><body>hi</body></html>"), full_profile())

    @pytest.mark.parametrize("status_code", [403, 404, 429, 500])
    def test_failed_fetch_never_escalates(self, status_code):
        assert not should_escalate(result("<html></html>", status_code), None)

    def test_missing_html_never_escalates(self):
        assert not should_escalate(result(None), None)
        assert not should_escalate(result(""), None)

    def test_full_page_with_profile_does_not_escalate(self):
        assert not should_escalate(result(LONG_HTML), full_profile())

    @pytest.mark.parametrize("marker", [
        "Please Enable JavaScript to continue",
        '<div id="root"></div>',
        "window.__INITIAL_STATE__ = {}",
        "Checking your browser before accessing",
    ])
    def test_needs_js_marker_escalates(self, marker):
        assert should_escalate(result(LONG_HTML + marker), full_profile())

    def test_missing_profile_escalates(self):
        assert should_escalate(result(LONG_HTML), None)

    def test_profile_without_core_fields_escalates(self):
        profile = ParsedProfile(source_url="https://example.com/jane", username="jane")
        assert should_escalate(result(LONG_HTML), profile)

    def test_one_core_field_is_enough(self):
        profile = ParsedProfile(source_url="https://example.com/jane", bio="Photographer")
        assert not should_escalate(result(LONG_HTML), profile)

    def test_custom_threshold(self):
        assert not should_escalate(result("<p>x</p>" * 20), full_profile(), min_html_size=50)


def test_needs_js_marker_is_case_insensitive():
    assert needs_js_marker("<NOSCRIPT>JavaScript Is Required</NOSCRIPT>") == "javascript is required"
    assert needs_js_marker("<p>static</p>") is None
