"""Tests for profile parsers and challenge detection."""

import pytest

from profilecrawl.checksum import html_checksum
from profilecrawl.parsers import (
    GenericParser,
    GitHubParser,
    LinkedInParser,
    SocialParser,
    detect_challenge,
    is_challenge_page,
)
from profilecrawl.parsers.generic import clean_title, parse_stat_value
from profilecrawl.parsers.platforms import PlatformParser


SOURCE_URL = "https://examplesocial.com/janedoe"


def page(head="", body=""):
    return f"<html><head>{head}</head><body>{body}</body></html>"


class TestGenericParser:

    @pytest.fixture
    def parser(self):
        return GenericParser()

    def test_full_profile(self, parser, profile_html):
        profile = parser.parse(profile_html, SOURCE_URL)

        assert profile.source_url == SOURCE_URL
        assert profile.username == "janedoe"
        assert profile.display_name == "Jane Doe"
        assert profile.bio == "Photographer and traveller. Capturing light in small places."
        assert profile.avatar_url == "https://cdn.example.com/avatars/janedoe.jpg"
        assert profile.cover_url == "https://cdn.example.com/covers/janedoe-cover.jpg"
        assert profile.public_stats == {"followers": 5600, "posts": 1234, "likes": 2300000}
        assert profile.links == ["https://janedoe.photo", "https://shop.janedoe.photo/prints"]
        assert profile.raw_html_checksum == html_checksum(profile_html)

    def test_supports_everything(self, parser):
        assert parser.supports("https://anything.example/x")
        assert parser.supports("not even a url")

    def test_empty_page_still_returns_profile(self, parser):
        profile = parser.parse("<html></html>", "https://example.com/")
        assert profile is not None
        assert profile.username is None
        assert profile.display_name is None
        assert profile.public_stats is None
        assert profile.links is None

    def test_username_from_last_path_segment(self, parser):
        profile = parser.parse(page(), "https://example.com/users/jane/?tab=posts")
        assert profile.username == "jane"

    def test_username_falls_back_to_title_handle(self, parser):
        html = page(head='<meta property="og:title" content="Jane (@jane_d) on Example">')
        assert parser.parse(html, "https://example.com/").username == "jane_d"

    def test_username_falls_back_to_profile_link(self, parser):
        html = page(body='<a href="/@linkhandle">me</a>')
        assert parser.parse(html, "https://example.com/").username == "linkhandle"

    def test_display_name_keeps_hyphenated_names(self, parser):
        html = page(head='<meta property="og:title" content="Jean-Luc Picard - Starfleet">')
        assert parser.parse(html, SOURCE_URL).display_name == "Jean-Luc Picard"

    def test_display_name_falls_back_to_heading(self, parser):
        html = page(head="<title>Ignored | Site</title>", body="<h1> Heading Name </h1>")
        assert parser.parse(html, SOURCE_URL).display_name == "Heading Name"

    def test_display_name_falls_back_to_cleaned_title(self, parser):
        html = page(head="<title>Someone Special | ExampleSite</title>")
        assert parser.parse(html, SOURCE_URL).display_name == "Someone Special"

    def test_cover_rejects_og_image(self, parser):
        html = page(head=(
            '<meta property="og:image" content="https://cdn.example.com/a.jpg">'
            '<meta property="og:image:secure_url" content="https://cdn.example.com/a.jpg">'
        ), body='<img alt="profile banner" src="https://cdn.example.com/banner.jpg">')
        assert parser.parse(html, SOURCE_URL).cover_url == "https://cdn.example.com/banner.jpg"

    def test_bio_and_avatar_fall_back_to_selectors(self, parser):
        html = page(body=(
            '<p class="user-bio">Writes about compilers.</p>'
            '<img class="avatar-small" src="/img/me.png">'
        ))
        profile = parser.parse(html, "https://blog.example.com/me")
        assert profile.bio == "Writes about compilers."
        assert profile.avatar_url == "https://blog.example.com/img/me.png"

    def test_links_exclude_same_host_and_non_http(self, parser):
        html = page(body=(
            '<a href="/about">About</a>'
            '<a href="https://examplesocial.com/other">Same host</a>'
            '<a href="javascript:void(0)">JS</a>'
            '<a href="//cdn.partner.example/x">Protocol relative</a>'
        ))
        assert parser.parse(html, SOURCE_URL).links == ["https://cdn.partner.example/x"]


class TestStats:

    @pytest.fixture
    def parser(self):
        return GenericParser()

    @pytest.mark.parametrize("text,expected", [
        ("5.6K followers", {"followers": 5600}),
        ("1,234 posts", {"posts": 1234}),
        ("2.3M likes", {"likes": 2300000}),
        ("1B views", {"views": 1000000000}),
        ("12 K", {}),
        ("0 posts", {}),
        ("no numbers here", {}),
    ])
    def test_stat_parsing(self, parser, text, expected):
        html = page(body=f'<span class="stat">{text}</span>')
        profile = parser.parse(html, SOURCE_URL)
        assert (profile.public_stats or {}) == expected

    def test_data_count_elements(self, parser):
        html = page(body='<li data-count="1">42 repos</li>')
        assert parser.parse(html, SOURCE_URL).public_stats == {"repos": 42}

    def test_parse_stat_value(self):
        assert parse_stat_value("5.6K") == 5600
        assert isinstance(parse_stat_value("5.6K"), int)
        assert parse_stat_value("1.5") == 1.5
        assert parse_stat_value("1,234,567") == 1234567
        assert parse_stat_value("3k") == 3000
        assert parse_stat_value("1.2.3") == 0


class TestCleanTitle:

    @pytest.mark.parametrize("title,expected", [
        ("Jane Doe (@janedoe) | ExampleSocial", "Jane Doe"),
        ("National Geographic (@natgeo) • Instagram photos", "National Geographic"),
        ("Mary-Kate Smith", "Mary-Kate Smith"),
        ("@onlyhandle", None),
    ])
    def test_clean_title(self, title, expected):
        assert clean_title(title, strip_handles=True) == expected


class TestGitHubParser:

    HTML = page(
        head='<meta property="og:image" content="https://avatars.githubusercontent.com/u/583231?v=4">',
        body="""
        <h1 class="vcard-names">
          <span class="p-name">The Octocat</span>
          <span class="p-nickname">octocat</span>
        </h1>
        <div class="user-profile-bio"><div>GitHub mascot</div></div>
        <img class="avatar avatar-user" src="https://avatars.githubusercontent.com/u/583231?s=260">
        <a href="/octocat?tab=followers"><span class="text-bold">12.3k</span> followers</a>
        <a href="/octocat?tab=following"><span class="text-bold">9</span> following</a>
        <nav><a href="/octocat?tab=repositories">Repositories <span class="Counter">8</span></a></nav>
        <ul class="vcard-details"><li><a href="https://github.blog">https://github.blog</a></li></ul>
        """,
    )

    def test_extracts_profile(self):
        profile = GitHubParser().parse(self.HTML, "https://github.com/octocat")
        assert profile.username == "octocat"
        assert profile.display_name == "The Octocat"
        assert profile.bio == "GitHub mascot"
        assert profile.avatar_url == "https://avatars.githubusercontent.com/u/583231?s=260"
        assert profile.public_stats == {"repositories": 8, "followers": 12300, "following": 9}
        assert profile.links == ["https://github.blog"]
        assert profile.raw_html_checksum == html_checksum(self.HTML)

    def test_empty_page_returns_empty_profile(self):
        profile = GitHubParser().parse("<html></html>", "https://github.com/")
        assert profile is not None
        assert profile.username is None
        assert not profile.has_core_fields


class TestLinkedInParser:

    def test_extracts_profile(self):
        html = page(body="""
            <h1 class="top-card-layout__title">Ada Lovelace</h1>
            <h2 class="top-card-layout__headline">Analyst at Engines Ltd</h2>
            <span class="top-card__subline-item">500+ connections</span>
            <img class="top-card__profile-image" src="/img/ada.jpg">
        """)
        profile = LinkedInParser().parse(html, "https://www.linkedin.com/in/ada-lovelace")
        assert profile.username == "ada-lovelace"
        assert profile.display_name == "Ada Lovelace"
        assert profile.bio == "Analyst at Engines Ltd"
        assert profile.avatar_url == "https://www.linkedin.com/img/ada.jpg"
        assert profile.public_stats == {"connections": 500}


class TestSocialParser:

    def test_stats_from_description(self):
        html = page(head=(
            '<meta property="og:title" content="National Geographic (@natgeo) • Instagram photos">'
            '<meta property="og:description" content="283M Followers, 150 Following, 29,000 Posts - See photos">'
            '<meta property="og:image" content="https://cdn.instagram.example/natgeo.jpg">'
        ))
        profile = SocialParser().parse(html, "https://www.instagram.com/natgeo/")
        assert profile.username == "natgeo"
        assert profile.display_name == "National Geographic"
        assert profile.avatar_url == "https://cdn.instagram.example/natgeo.jpg"
        assert profile.public_stats == {"followers": 283000000, "following": 150, "posts": 29000}

    def test_supports_x_and_subdomains(self):
        parser = SocialParser()
        assert parser.supports("https://x.com/jack")
        assert parser.supports("https://m.facebook.com/zuck")
        assert not parser.supports("https://example.com/x.com")


class TestPlatformParser:

    def test_extract_is_required(self):
        class NoRules(PlatformParser):
            name = "norules"
            domains = ["example.com"]

        with pytest.raises(TypeError):
            NoRules()


class TestChallengeDetection:

    def test_cloudflare_markup(self):
        html = '<div id="cf-challenge-running"></div>'
        assert detect_challenge(html, "Example", "https://example.com/") == "cloudflare_challenge"

    def test_title(self):
        assert detect_challenge("<html></html>", "Just a moment...", "https://example.com/") == "title:just a moment"

    def test_title_must_match_whole_phrase(self):
        assert detect_challenge("<html></html>", "Blocked Ads Fan Page", "https://x.com/blockedads") is None
        assert detect_challenge("<html></html>", "Access denied is my band", "https://x.com/band") is None

    def test_redirect_to_challenge_path(self):
        result = detect_challenge(
            "<html></html>", None, "https://example.com/captcha?next=/u", requested_url="https://example.com/u"
        )
        assert result == "url_pattern:/captcha"
        assert detect_challenge(
            "<html></html>", None,
            "https://www.linkedin.com/checkpoint/challenge/abc",
            requested_url="https://www.linkedin.com/in/jane",
        ) == "url_pattern:/checkpoint/challenge"

    @pytest.mark.parametrize("url", [
        "https://x.com/challengeaccepted",
        "https://www.instagram.com/captcha_art/",
        "https://x.com/challenge",
    ])
    def test_profile_path_is_not_a_challenge(self, profile_html, url):
        assert detect_challenge(profile_html, "Jane Doe", url, requested_url=url) is None
        assert detect_challenge(profile_html, "Jane Doe", url) is None

    def test_redirect_to_ordinary_page(self, profile_html):
        assert detect_challenge(
            profile_html, "Jane Doe", "https://x.com/challengeaccepted", requested_url="https://twitter.com/challengeaccepted"
        ) is None

    def test_clean_page(self, profile_html):
        assert detect_challenge(profile_html, "Jane Doe", SOURCE_URL) is None
        assert not is_challenge_page(profile_html, "Jane Doe", SOURCE_URL)
