# src/profilecrawl/constants.py
"""Centralized constants for the profile crawler.

This module contains fixed lists and default values that are used across
multiple modules. For user-configurable settings, see config.py and Config.
"""

# =============================================================================
# Fetch Constants
# =============================================================================

# Default request timeout in seconds
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0

# Default navigation timeout for the rendering strategy (milliseconds)
DEFAULT_RENDER_TIMEOUT_MS = 15000

# Identifies the crawler to remote hosts
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; ProfileCrawler/1.0)"

# Browser user agent used by the rendering strategy
RENDER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "en-US,en;q=0.9",
}

# Viewport for rendered pages
RENDER_VIEWPORT_WIDTH = 1280
RENDER_VIEWPORT_HEIGHT = 720

# Domains that need a JS-rendering fetch from the first attempt
JS_REQUIRED_DOMAINS = [
    "linkedin.com",
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
]


# =============================================================================
# Politeness and Retry Constants
# =============================================================================

# Minimum delay between two requests to the same host (seconds)
DEFAULT_RATE_LIMIT_INTERVAL_SECONDS = 1.0

# Host entries older than this many intervals are dropped by cleanup
RATE_LIMIT_CLEANUP_INTERVALS = 10

DEFAULT_MAX_ATTEMPTS = 3

# Delay before the second attempt (seconds)
DEFAULT_BASE_DELAY_SECONDS = 0.5

DEFAULT_BACKOFF_MULTIPLIER = 2.0

# HTTP status codes that mean the target refused the crawler
HTTP_CODES_BLOCKED = [403]

# HTTP status codes worth another attempt besides 5xx
HTTP_CODES_RETRYABLE = [429]


# =============================================================================
# Concurrency Constants
# =============================================================================

# Items processed in parallel within one job
DEFAULT_ITEM_CONCURRENCY = 3

# Jobs drained from the queue in parallel
DEFAULT_WORKER_CONCURRENCY = 3

# Process-wide cap on concurrent rendering instances
DEFAULT_RENDER_CONCURRENCY = 2

# Upper bound for a single item's processing (seconds)
DEFAULT_ITEM_TIMEOUT_SECONDS = 120.0

# Delivery attempts per queued message before it is dropped
DEFAULT_MAX_DELIVERIES = 3

CRAWL_TOPIC = "crawl.jobs"


# =============================================================================
# Escalation Constants
# =============================================================================

# Pages shorter than this (characters) are assumed to need JS rendering
MIN_HTML_SIZE = 1000

# Case-insensitive markers of pages that only render with JavaScript
NEEDS_JS_MARKERS = [
    "enable javascript",
    "javascript is required",
    "javascript must be enabled",
    "checking your browser",
    "please wait",
    "loading...",
    '<div id="app"></div>',
    '<div id="root"></div>',
    "window.__initial_state__",
    "react.createelement",
    "angular.module",
]


# =============================================================================
# Challenge Detection Constants
# =============================================================================

# Markup fragments left by bot-protection products on a rendered page
CHALLENGE_MARKERS = {
    "cloudflare_challenge": ["cf-browser-verification", "cf-challenge-running"],
    "cloudflare_turnstile": ["challenges.cloudflare.com"],
    "recaptcha": ["www.google.com/recaptcha", "g-recaptcha"],
    "hcaptcha": ["hcaptcha.com/1/api.js", 'class="h-captcha"'],
    "akamai_challenge": ["sec-cpt-if", "ak-challenge"],
}

# Whole page titles served by challenge and denial pages, lowercased with
# trailing dots removed
CHALLENGE_TITLES = frozenset({
    "access denied",
    "attention required! | cloudflare",
    "just a moment",
    "ddos-guard",
})

# Paths a navigation can be redirected to when the crawler is challenged.
# Matched on whole path segments.
CHALLENGE_URL_PATHS = [
    "/cdn-cgi/challenge-platform",
    "/checkpoint/challenge",
    "/challenge",
    "/captcha",
    "/sorry",
]


# =============================================================================
# Parsing Constants
# =============================================================================

# Candidates for a cover image, tried in order
COVER_IMAGE_SELECTORS = [
    'meta[property="og:image:secure_url"]',
    'meta[property="twitter:image"]',
    'img[alt*="cover"]',
    'img[alt*="banner"]',
    ".cover-image img",
    ".profile-banner img",
]

# Elements that may carry a "<number><suffix?> <label>" statistic
STAT_SELECTORS = '[class*="stat"], [class*="count"], [data-count]'

STAT_MULTIPLIERS = {
    "K": 1_000,
    "M": 1_000_000,
    "B": 1_000_000_000,
}
