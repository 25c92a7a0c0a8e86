"""
Heuristic transcript extraction from wiki pages.

Transcript pages on the fandom wiki are prose, not caption tracks. The page
is fetched as rendered HTML through the MediaWiki parse API, flattened to
text lines and classified:

    1. Speaker pass: lines shaped like "MATT: Hello." keep their text with the
       speaker prefix removed. A strict all-caps pattern is tried first and a
       looser mixed-case pattern second.
    2. Fallback pass: only when no speaker line exists anywhere, keep every
       line of three or more words that is not a navigation heading.

All stages except the fetch are pure text transforms.
"""

import logging
import re
from collections.abc import Callable, Iterable
from urllib.parse import unquote, urlencode, urlparse

import httpx

from caption_service.config import Settings
from caption_service.errors import DisallowedHost, NoTranscriptFound, PageNotResolvable
from caption_service.models import CaptionLine, CaptionResult, reindex
from caption_service.utils import is_allowed_url, sanitize_for_log

logger = logging.getLogger(__name__)

SOURCE_NAME = "fandom-wiki"

# ========== Markup stripping ==========

SCRIPT_STYLE_PATTERN = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
BLOCK_CLOSE_PATTERN = re.compile(r"</(?:p|li|div|tr|dd|dt)\s*>", re.IGNORECASE)
BREAK_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<[^>]+>")

# ========== Entity decoding ==========

NAMED_ENTITIES = {
    "nbsp": " ",
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
}
ENTITY_PATTERN = re.compile(r"&(#[xX][0-9a-fA-F]+|#\d+|[a-zA-Z]+);")

# ========== Line classification ==========

STRICT_SPEAKER_PATTERN = re.compile(r"^[A-Z][A-Z' .\-]{2,25}:\s*(.*)$")
LOOSE_SPEAKER_PATTERN = re.compile(r"^[A-Z][A-Za-z' .\-]{1,30}:\s*(.*)$")

STOPLIST = frozenset(
    {"transcript", "contents", "references", "see also", "navigation", "edit", "comments"}
)
MIN_FALLBACK_WORDS = 3


def strip_markup(html: str) -> str:
    """Remove scripts, styles and tags; block ends and <br> become newlines."""
    text = SCRIPT_STYLE_PATTERN.sub("", html)
    text = BLOCK_CLOSE_PATTERN.sub("\n", text)
    text = BREAK_PATTERN.sub("\n", text)
    return TAG_PATTERN.sub("", text)


def _replace_entity(match: re.Match) -> str:
    name = match.group(1)
    if name[0] == "#":
        try:
            codepoint = int(name[2:], 16) if name[1] in "xX" else int(name[1:])
            return chr(codepoint)
        except (ValueError, OverflowError):
            return match.group(0)
    return NAMED_ENTITIES.get(name, match.group(0))


def decode_entities(text: str) -> str:
    """
    Decode the common named entities and all numeric character references.

    Decoding is a single pass, so "&amp;lt;" becomes "&lt;" and not "<".
    Unknown named entities are left untouched.

    Examples:
        >>> decode_entities("Rogue&#39;s &amp; Ranger&#x27;s")
        "Rogue's & Ranger's"
    """
    return ENTITY_PATTERN.sub(_replace_entity, text)


def split_lines(text: str) -> list[str]:
    lines = (line.strip() for line in text.splitlines())
    return [line for line in lines if line]


def strip_strict_speaker(line: str) -> str | None:
    """Return the dialogue after an all-caps speaker prefix, or None."""
    match = STRICT_SPEAKER_PATTERN.match(line)
    return match.group(1).strip() if match else None


def strip_loose_speaker(line: str) -> str | None:
    """Return the dialogue after a mixed-case speaker prefix, or None."""
    match = LOOSE_SPEAKER_PATTERN.match(line)
    return match.group(1).strip() if match else None


SPEAKER_CLASSIFIERS: tuple[Callable[[str], str | None], ...] = (
    strip_strict_speaker,
    strip_loose_speaker,
)


def speaker_lines(lines: Iterable[str]) -> list[str]:
    """Dialogue from speaker-prefixed lines; everything else is dropped."""
    dialogue = []
    for line in lines:
        for classify in SPEAKER_CLASSIFIERS:
            remainder = classify(line)
            if remainder is not None:
                if remainder:
                    dialogue.append(remainder)
                break
    return dialogue


def is_prose_line(line: str) -> bool:
    """True for lines of at least three words that are not section headings."""
    if line.lower() in STOPLIST:
        return False
    return len(line.split()) >= MIN_FALLBACK_WORDS


def prose_lines(lines: Iterable[str]) -> list[str]:
    return [line for line in lines if is_prose_line(line)]


def classify_lines(lines: list[str]) -> list[str]:
    """Speaker pass first; the prose heuristic only when it finds nothing."""
    return speaker_lines(lines) or prose_lines(lines)


def html_to_transcript_lines(html: str) -> list[CaptionLine]:
    """Run markup stripping, entity decoding, classification and sequencing."""
    text = decode_entities(strip_markup(html))
    return reindex([(None, line) for line in classify_lines(split_lines(text))])


def extract_transcript(page_url: str, html: str) -> CaptionResult:
    """
    Extract a positional transcript from a page's rendered HTML.

    The caller is responsible for having checked page_url against the
    allowlist and for fetching html.

    Raises:
        NoTranscriptFound: If no line survives classification
    """
    captions = html_to_transcript_lines(html)
    if not captions:
        raise NoTranscriptFound(page_url)
    return CaptionResult(captions=captions, source=SOURCE_NAME, url=page_url)


# ========== Page resolution ==========


def page_title_from_url(page_url: str) -> str | None:
    """URL-decoded path segment after /wiki/, or None."""
    try:
        path = urlparse(page_url).path
    except ValueError:
        return None
    marker = "/wiki/"
    if marker not in path:
        return None
    title = unquote(path.split(marker, 1)[1]).strip()
    return title or None


def build_content_api_url(page_url: str) -> str | None:
    """
    Build the MediaWiki parse API URL returning the page's rendered HTML.

    Examples:
        >>> build_content_api_url("https://criticalrole.fandom.com/wiki/Episode_1")
        'https://criticalrole.fandom.com/api.php?action=parse&page=Episode_1&prop=text&format=json&formatversion=2'
    """
    title = page_title_from_url(page_url)
    if title is None:
        return None
    parsed = urlparse(page_url)
    query = urlencode(
        {"action": "parse", "page": title, "prop": "text", "format": "json", "formatversion": "2"}
    )
    return f"{parsed.scheme}://{parsed.netloc}/api.php?{query}"


def html_from_parse_response(payload: dict) -> str | None:
    """Pull the HTML out of a parse reply in either formatversion."""
    text = (payload.get("parse") or {}).get("text")
    if isinstance(text, dict):
        text = text.get("*")
    return text if isinstance(text, str) and text.strip() else None


class TranscriptPageClient:
    """
    Fetches wiki transcript pages and runs the extractor on them.

    The allowlist guard always runs before any request is issued.
    """

    def __init__(self, config: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config or Settings()
        self._transport = transport

    def is_allowed(self, page_url: str) -> bool:
        return is_allowed_url(page_url, self.config.transcript_allowed_domains)

    async def fetch_page_html(self, page_url: str) -> str:
        """
        Fetch rendered HTML for an allowed wiki page.

        Raises:
            DisallowedHost: If the URL fails the allowlist guard
            PageNotResolvable: If no title can be derived or the API has no HTML
        """
        if not self.is_allowed(page_url):
            raise DisallowedHost(page_url, self.config.transcript_allowed_domains)

        api_url = build_content_api_url(page_url)
        if api_url is None:
            raise PageNotResolvable(page_url, "URL has no /wiki/<title> segment")

        logger.info(f"Fetching transcript page {sanitize_for_log(page_url)}")
        async with httpx.AsyncClient(
            timeout=self.config.transcript_fetch_timeout,
            headers={"User-Agent": self.config.transcript_user_agent},
            transport=self._transport,
        ) as client:
            try:
                response = await client.get(api_url)
            except httpx.HTTPError as e:
                raise PageNotResolvable(page_url, f"Content API request failed: {e}") from e

        if not response.is_success:
            raise PageNotResolvable(page_url, f"Content API returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise PageNotResolvable(page_url, "Content API returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise PageNotResolvable(page_url, "Content API returned an unexpected payload")

        error = payload.get("error")
        if error:
            info = error.get("info") or error.get("code") if isinstance(error, dict) else error
            raise PageNotResolvable(page_url, f"Content API error: {info or 'unknown error'}")

        html = html_from_parse_response(payload)
        if html is None:
            raise PageNotResolvable(page_url, "Content API response has no page text")
        return html

    async def fetch_transcript(self, page_url: str) -> CaptionResult:
        """Guard, resolve, fetch and extract in that order."""
        html = await self.fetch_page_html(page_url)
        result = extract_transcript(page_url, html)
        logger.info(f"Extracted {len(result.captions)} transcript lines from {sanitize_for_log(page_url)}")
        return result
