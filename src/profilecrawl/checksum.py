"""Content fingerprints for the profile checksum gate."""

import hashlib


def html_checksum(html: str) -> str:
    """Return the hex SHA-256 of a page's HTML."""
    return hashlib.sha256(html.encode("utf-8")).hexdigest()
