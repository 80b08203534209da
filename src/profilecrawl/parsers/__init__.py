"""Parse strategies and page classification."""

from .base import ParseStrategy, hostname_matches
from .generic import GenericParser
from .platforms import GitHubParser, LinkedInParser, SocialParser
from .challenge import detect_challenge, is_challenge_page

__all__ = [
    "ParseStrategy",
    "hostname_matches",
    "GenericParser",
    "GitHubParser",
    "LinkedInParser",
    "SocialParser",
    "detect_challenge",
    "is_challenge_page",
]
