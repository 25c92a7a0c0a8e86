"""
Shared utility functions for caption-service.

This module provides the pure input helpers used ahead of any network call:
video ID extraction, language candidate parsing and the transcript URL guard.
"""

import re
from collections.abc import Iterable
from urllib.parse import parse_qs, urlparse


# Pre-compiled regex patterns for performance
YOUTUBE_ID_PATTERN_COMPILED = re.compile(r"[A-Za-z0-9_-]{11}")

YOUTUBE_HOSTS = {"youtube.com", "youtube-nocookie.com"}
SHORT_HOST = "youtu.be"

# Path prefixes that carry the video ID as the next segment
YOUTUBE_PATH_PREFIXES = ("embed", "shorts", "live", "v")

DEFAULT_LANG = "en"


def _is_video_id(token: str) -> bool:
    return bool(YOUTUBE_ID_PATTERN_COMPILED.fullmatch(token))


def _is_youtube_host(host: str) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in YOUTUBE_HOSTS)


def extract_video_id(value: str | None) -> str | None:
    """
    Extract video ID from a YouTube URL or return the input if it's a raw ID.

    This function handles various YouTube URL formats:
    - https://www.youtube.com/watch?v=VIDEO_ID
    - https://youtu.be/VIDEO_ID
    - https://www.youtube.com/embed/VIDEO_ID
    - https://www.youtube.com/shorts/VIDEO_ID
    - Raw 11-character video ID
    - URLs without a scheme (youtu.be/VIDEO_ID)

    The extracted token must be exactly 11 identifier characters; longer
    tokens are rejected even when they start with a valid-looking ID.

    Args:
        value: YouTube URL or video ID

    Returns:
        11-character YouTube video ID, or None if not found

    Examples:
        >>> extract_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
        >>> extract_video_id("dQw4w9WgXcQ")
        'dQw4w9WgXcQ'
        >>> extract_video_id("https://example.com/watch?v=dQw4w9WgXcQ") is None
        True
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if _is_video_id(value):
        return value

    if "://" not in value:
        value = f"https://{value}"

    try:
        parsed = urlparse(value)
        host = (parsed.hostname or "").lower()
    except ValueError:
        return None

    segments = [segment for segment in parsed.path.split("/") if segment]

    if host == SHORT_HOST or host == f"www.{SHORT_HOST}":
        candidate = segments[0] if segments else ""
    elif _is_youtube_host(host):
        candidate = parse_qs(parsed.query).get("v", [""])[0]
        if not candidate and len(segments) >= 2 and segments[0] in YOUTUBE_PATH_PREFIXES:
            candidate = segments[1]
    else:
        return None

    return candidate if _is_video_id(candidate) else None


def resolve_language_candidates(value: str | None, default: str = DEFAULT_LANG) -> list[str]:
    """
    Parse a comma-separated language preference into ordered candidates.

    Segments are trimmed and empty ones dropped; order is kept and duplicates
    are not removed. The result is never empty.

    Examples:
        >>> resolve_language_candidates("en, ru ,,fr")
        ['en', 'ru', 'fr']
        >>> resolve_language_candidates("")
        ['en']
    """
    candidates = [part.strip() for part in (value or "").split(",")]
    candidates = [part for part in candidates if part]
    return candidates or [default]


def is_allowed_url(url: str, allowed_domains: Iterable[str]) -> bool:
    """
    Check that a URL is an absolute http(s) URL on an allowed domain.

    The hostname must equal an allowed domain or be a subdomain of one. Any
    parse failure, other scheme or foreign host yields False.

    Args:
        url: URL to validate
        allowed_domains: Domains the caller may fetch from

    Returns:
        True if the URL may be fetched, False otherwise

    Examples:
        >>> is_allowed_url("https://criticalrole.fandom.com/wiki/X", ["criticalrole.fandom.com"])
        True
        >>> is_allowed_url("https://evil.com/criticalrole.fandom.com", ["criticalrole.fandom.com"])
        False
        >>> is_allowed_url("ftp://criticalrole.fandom.com/wiki/X", ["criticalrole.fandom.com"])
        False
    """
    if not url or not isinstance(url, str):
        return False

    # Parse and validate domain to prevent SSRF/bypass attacks
    try:
        parsed = urlparse(url.strip())
        host = (parsed.hostname or "").lower().rstrip(".")
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https") or not host:
        return False

    for domain in allowed_domains:
        domain = domain.lower().strip(".")
        if domain and (host == domain or host.endswith("." + domain)):
            return True
    return False


def sanitize_for_log(input_str: str | None) -> str:
    """
    Sanitize user input for logging to prevent log injection attacks.

    Replaces newlines, carriage returns, and tabs with their escaped
    representations to prevent malicious log injection.
    """
    if input_str is None:
        return ""
    return input_str.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")
