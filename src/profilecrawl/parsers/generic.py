"""
Generic selector-based profile parser.

Reads Open Graph metadata first and falls back to common CSS patterns.
Matches every URL and always returns a profile, so it is the parser of
last resort.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from profilecrawl.checksum import html_checksum
from profilecrawl.constants import COVER_IMAGE_SELECTORS, STAT_MULTIPLIERS, STAT_SELECTORS
from profilecrawl.models import ParsedProfile
from profilecrawl.parsers.base import ParseStrategy

logger = logging.getLogger(__name__)

HANDLE_PATTERN = re.compile(r"@(\w+)")
TITLE_SUFFIX_PATTERN = re.compile(r"(\s*\|.*|\s+[-–—•]\s.*)$")
EMPTY_PARENS_PATTERN = re.compile(r"\s*\(\s*\)\s*")
STAT_PATTERN = re.compile(r"(\d+(?:[.,]\d+)*[KMB]?)\s*(\w+)", re.IGNORECASE)
STAT_VALUE_PATTERN = re.compile(r"^([\d.]+)([KMB])?$", re.IGNORECASE)

BIO_SELECTORS = [
    'h2[class*="headline"]',
    'p[class*="headline"]',
    'div[class*="headline"]',
    ".profile-headline",
    'p[class*="bio"]',
    ".profile-about",
]

AVATAR_SELECTORS = [
    'img[class*="profile"]',
    'img[class*="avatar"]',
    'img[alt*="profile"]',
    ".profile-photo img",
]

Number = Union[int, float]


def meta_content(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def first_text(soup: BeautifulSoup, selectors: list[str]) -> Optional[str]:
    for selector in selectors:
        element = soup.select_one(selector)
        if element:
            text = element.get_text(" ", strip=True)
            if text:
                return text
    return None


def first_src(soup: BeautifulSoup, selectors: list[str], base_url: str) -> Optional[str]:
    for selector in selectors:
        element = soup.select_one(selector)
        if element and element.get("src"):
            return urljoin(base_url, element["src"])
    return None


def clean_title(title: str, strip_handles: bool = False) -> Optional[str]:
    """Strip handles, site suffixes and empty parentheses from a title."""
    cleaned = HANDLE_PATTERN.sub("", title) if strip_handles else title
    cleaned = TITLE_SUFFIX_PATTERN.sub("", cleaned)
    cleaned = EMPTY_PARENS_PATTERN.sub(" ", cleaned)
    cleaned = re.sub(r"\s{2,}", " ", cleaned).strip()
    return cleaned or None


def extract_username(soup: BeautifulSoup, og_title: Optional[str], page_title: Optional[str], source_url: str) -> Optional[str]:
    try:
        path = urlparse(source_url).path
    except ValueError:
        path = ""
    segments = [segment for segment in path.split("/") if segment]
    if segments:
        return segments[-1]

    for title in (og_title, page_title):
        if title:
            match = HANDLE_PATTERN.search(title)
            if match:
                return match.group(1)

    profile_link = soup.select_one('a[href*="/@"]')
    if profile_link:
        match = HANDLE_PATTERN.search(profile_link.get("href", ""))
        if match:
            return match.group(1)

    return None


def extract_display_name(soup: BeautifulSoup, og_title: Optional[str], page_title: Optional[str]) -> Optional[str]:
    if og_title:
        cleaned = clean_title(og_title, strip_handles=True)
        if cleaned:
            return cleaned

    heading = soup.find("h1")
    if heading:
        text = heading.get_text(" ", strip=True)
        if text:
            return text

    if page_title:
        return clean_title(page_title)

    return None


def extract_cover_image(soup: BeautifulSoup, og_image: Optional[str]) -> Optional[str]:
    for selector in COVER_IMAGE_SELECTORS:
        element = soup.select_one(selector)
        if not element:
            continue
        candidate = element.get("content") or element.get("src")
        if candidate and candidate != og_image:
            return candidate
    return None


def parse_stat_value(raw: str) -> Number:
    """Parse '5.6K' or '1,234' into a number; 0 when unparseable."""
    normalized = raw.replace(",", "")
    match = STAT_VALUE_PATTERN.match(normalized)
    if not match:
        return 0

    try:
        value = Decimal(match.group(1))
    except InvalidOperation:
        return 0

    suffix = match.group(2)
    if suffix:
        value *= STAT_MULTIPLIERS[suffix.upper()]

    if value == value.to_integral_value():
        return int(value)
    return float(value)


def extract_public_stats(soup: BeautifulSoup) -> dict[str, Number]:
    stats: dict[str, Number] = {}
    for element in soup.select(STAT_SELECTORS):
        match = STAT_PATTERN.search(element.get_text(" ", strip=True))
        if not match:
            continue
        value = parse_stat_value(match.group(1))
        label = match.group(2).lower()
        # Single letters are multiplier suffixes split from their number
        if value > 0 and len(label) > 1:
            stats[label] = value
    return stats


def extract_external_links(soup: BeautifulSoup, source_url: str) -> list[str]:
    try:
        source_host = urlparse(source_url).hostname
    except ValueError:
        source_host = None

    links: dict[str, None] = {}
    for anchor in soup.find_all("a", href=True):
        try:
            resolved = urljoin(source_url, anchor["href"].strip())
            parsed = urlparse(resolved)
            hostname = parsed.hostname
        except ValueError:
            continue
        if parsed.scheme in ("http", "https") and hostname and hostname != source_host:
            links.setdefault(resolved, None)
    return list(links)


class GenericParser(ParseStrategy):
    """Open Graph and selector-pattern profile extraction."""

    name = "generic"
    priority = 1

    def supports(self, url: str) -> bool:
        return True

    def parse(self, html: str, source_url: str) -> ParsedProfile:
        soup = BeautifulSoup(html, "html.parser")

        og_title = meta_content(soup, "og:title")
        og_description = meta_content(soup, "og:description")
        og_image = meta_content(soup, "og:image")
        page_title = soup.title.get_text(strip=True) if soup.title else None
        page_title = page_title or None

        stats = extract_public_stats(soup)
        links = extract_external_links(soup, source_url)

        profile = ParsedProfile(
            source_url=source_url,
            username=extract_username(soup, og_title, page_title, source_url),
            display_name=extract_display_name(soup, og_title, page_title),
            bio=og_description or first_text(soup, BIO_SELECTORS),
            avatar_url=og_image or first_src(soup, AVATAR_SELECTORS, source_url),
            cover_url=extract_cover_image(soup, og_image),
            public_stats=stats or None,
            links=links or None,
            raw_html_checksum=html_checksum(html),
        )

        logger.debug(
            f"Parsed {source_url} with {self.name}: "
            f"username={profile.username!r} display_name={profile.display_name!r}"
        )
        return profile
