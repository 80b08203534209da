"""
Platform-specific profile parsers.

Each parser owns a set of domains and applies extraction rules tailored to
that platform's markup. Fields the platform markup does not provide fall
back to the generic Open Graph extraction. A matching parser always returns
a profile, even an empty one.
"""

import logging
import re
from abc import abstractmethod
from typing import Optional

from bs4 import BeautifulSoup

from profilecrawl.checksum import html_checksum
from profilecrawl.models import ParsedProfile
from profilecrawl.parsers.base import ParseStrategy, hostname_matches
from profilecrawl.parsers.generic import (
    clean_title,
    extract_cover_image,
    extract_external_links,
    extract_username,
    first_src,
    first_text,
    meta_content,
    parse_stat_value,
)

logger = logging.getLogger(__name__)

COUNTER_PATTERN = re.compile(r"(\d+(?:[.,]\d+)*[KMB]?)", re.IGNORECASE)


class PlatformParser(ParseStrategy):
    """Base for parsers bound to a fixed set of domains."""

    priority = 10
    domains: list[str] = []

    def supports(self, url: str) -> bool:
        return hostname_matches(url, self.domains)

    def parse(self, html: str, source_url: str) -> ParsedProfile:
        soup = BeautifulSoup(html, "html.parser")
        profile = self.extract(soup, source_url)
        profile.raw_html_checksum = html_checksum(html)
        self._fill_from_metadata(profile, soup)

        logger.debug(
            f"Parsed {source_url} with {self.name}: "
            f"username={profile.username!r} display_name={profile.display_name!r}"
        )
        return profile

    @abstractmethod
    def extract(self, soup: BeautifulSoup, source_url: str) -> ParsedProfile:
        """Apply the platform rules to the parsed document."""
        pass

    @staticmethod
    def _fill_from_metadata(profile: ParsedProfile, soup: BeautifulSoup) -> None:
        og_image = meta_content(soup, "og:image")
        profile.bio = profile.bio or meta_content(soup, "og:description")
        profile.avatar_url = profile.avatar_url or og_image
        if not profile.display_name:
            og_title = meta_content(soup, "og:title")
            if og_title:
                profile.display_name = clean_title(og_title, strip_handles=True)
        profile.cover_url = profile.cover_url or extract_cover_image(soup, og_image)


def anchor_links(soup: BeautifulSoup, selector: str) -> Optional[list[str]]:
    links: dict[str, None] = {}
    for anchor in soup.select(selector):
        href = (anchor.get("href") or "").strip()
        if href.startswith("http"):
            links.setdefault(href, None)
    return list(links) or None


class GitHubParser(PlatformParser):
    """github.com user pages."""

    name = "github"
    domains = ["github.com"]

    STAT_LABELS = ("followers", "following", "repositories")

    def extract(self, soup: BeautifulSoup, source_url: str) -> ParsedProfile:
        stats = {}
        for counter in soup.select(".Counter"):
            container = counter.find_parent("a")
            context = container.get_text(" ", strip=True).lower() if container else ""
            match = COUNTER_PATTERN.search(counter.get_text(strip=True))
            if not match:
                continue
            for label in self.STAT_LABELS:
                if label in context:
                    stats[label] = parse_stat_value(match.group(1))
                    break

        # Follower links render the count outside a .Counter element
        for anchor in soup.select('a[href*="tab=followers"], a[href*="tab=following"]'):
            text = anchor.get_text(" ", strip=True).lower()
            match = COUNTER_PATTERN.search(text)
            if not match:
                continue
            label = "followers" if "followers" in text else "following"
            stats.setdefault(label, parse_stat_value(match.group(1)))

        nickname = first_text(soup, [".p-nickname", '[itemprop="additionalName"]'])

        return ParsedProfile(
            source_url=source_url,
            username=nickname or extract_username(soup, None, None, source_url),
            display_name=first_text(soup, [".p-name", "h1.vcard-names", '[itemprop="name"]']),
            bio=first_text(soup, [".user-profile-bio", '[itemprop="description"]']),
            avatar_url=first_src(soup, ["img.avatar-user", "img.avatar"], source_url),
            public_stats=stats or None,
            links=anchor_links(soup, '.vcard-details a[href^="http"]'),
        )


class LinkedInParser(PlatformParser):
    """linkedin.com public profiles."""

    name = "linkedin"
    domains = ["linkedin.com"]

    CONNECTIONS_PATTERN = re.compile(r"([\d,]+\+?)\s*(connections?|followers?)", re.IGNORECASE)

    def extract(self, soup: BeautifulSoup, source_url: str) -> ParsedProfile:
        stats = {}
        for element in soup.select(".top-card__subline-item, .top-card-layout__first-subline span"):
            match = self.CONNECTIONS_PATTERN.search(element.get_text(" ", strip=True))
            if match:
                value = parse_stat_value(match.group(1).rstrip("+"))
                label = match.group(2).lower()
                label = label if label.endswith("s") else label + "s"
                if value > 0:
                    stats[label] = value

        return ParsedProfile(
            source_url=source_url,
            username=first_text(soup, [".public-identifier", ".profile-handle"])
            or extract_username(soup, None, None, source_url),
            display_name=first_text(soup, ["h1.top-card-layout__title", "h1.text-heading-xlarge"]),
            bio=first_text(soup, [
                ".top-card-layout__headline",
                "div.text-body-medium",
                "section.summary",
                "section.about",
            ]),
            avatar_url=first_src(soup, ["img.top-card__profile-image", "img.profile-photo"], source_url),
            cover_url=first_src(soup, [".cover-photo img", ".artdeco-entity-cover-image img"], source_url),
            public_stats=stats or None,
            links=anchor_links(soup, ".contact-links a, .social-links a"),
        )


class SocialParser(PlatformParser):
    """Twitter/X, Facebook and Instagram profiles.

    These sites expose little stable markup without a session, so extraction
    leans on Open Graph tags and the handle in the URL.
    """

    name = "social"
    domains = ["twitter.com", "x.com", "facebook.com", "instagram.com"]

    # "1,234 Followers, 56 Following, 78 Posts" style descriptions
    DESCRIPTION_STATS_PATTERN = re.compile(
        r"(\d+(?:[.,]\d+)*[KMB]?)\s+(followers|following|posts|likes)", re.IGNORECASE
    )

    def extract(self, soup: BeautifulSoup, source_url: str) -> ParsedProfile:
        description = meta_content(soup, "og:description") or ""
        stats = {}
        for raw, label in self.DESCRIPTION_STATS_PATTERN.findall(description):
            value = parse_stat_value(raw)
            if value > 0:
                stats[label.lower()] = value

        links = extract_external_links(soup, source_url)

        return ParsedProfile(
            source_url=source_url,
            username=extract_username(soup, meta_content(soup, "og:title"), None, source_url),
            display_name=first_text(soup, ['[data-testid="UserName"] span', "header h2"]),
            bio=first_text(soup, ['[data-testid="UserDescription"]', "header section h1 + span"]),
            avatar_url=first_src(soup, ['img[alt*="profile picture"]', 'img[alt*="Profile"]'], source_url),
            public_stats=stats or None,
            links=links or None,
        )
