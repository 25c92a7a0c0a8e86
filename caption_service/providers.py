"""
Caption providers used by the fallback engine.

Two upstream sources are wrapped behind the same async interface:

    - YtDlpCaptionProvider: downloads the WebVTT track with yt-dlp using
      browser impersonation, then parses cues into caption lines.
    - TranscriptApiProvider: asks youtube-transcript-api for the timedtext
      transcript in a single language.

Both are blocking libraries, so each fetch runs in Starlette's thread pool.
A provider either returns a list of CaptionLine or raises; it never retries.
"""

import logging
import re
import tempfile
from pathlib import Path
from typing import Protocol

import yt_dlp
from starlette.concurrency import run_in_threadpool
from yt_dlp.networking.impersonate import ImpersonateTarget
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from caption_service.config import Settings
from caption_service.errors import ProviderFailure
from caption_service.models import CaptionLine, reindex
from caption_service.transcript import decode_entities

logger = logging.getLogger(__name__)


class CaptionProvider(Protocol):
    """Protocol for caption sources."""

    name: str

    async def fetch(self, video_id: str, lang: str) -> list[CaptionLine]: ...


def vtt_time_to_seconds(timestamp: str) -> float:
    """
    Convert a WebVTT timestamp to seconds.

    Accepts both HH:MM:SS.mmm and MM:SS.mmm.
    """
    parts = timestamp.replace(",", ".").split(":")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    return round(seconds, 3)


class YtDlpCaptionProvider:
    """
    Fetches captions by downloading the WebVTT track with yt-dlp.

    Both manual and auto-generated subtitles are requested for the single
    language passed in; yt-dlp writes whichever exists to a temporary
    directory that is removed after each call.
    """

    name = "yt-dlp"

    # VTT timestamp pattern: HH:MM:SS.mmm --> HH:MM:SS.mmm
    # Also handles MM:SS.mmm format for shorter videos
    TIMESTAMP_PATTERN = re.compile(
        r"((?:\d+:)?\d{2}:\d{2}\.\d+)\s*-->\s*((?:\d+:)?\d{2}:\d{2}\.\d+)"
    )

    # Inline cue tags such as <c> and <00:00:02.500>
    TAG_REMOVAL_PATTERN = re.compile(r"<[^>]*>")

    def __init__(self, config: Settings | None = None):
        self.config = config or Settings()

    @staticmethod
    def subtitle_lang_pattern(lang: str) -> str:
        """Pattern that selects exactly one subtitle language in yt-dlp."""
        return f"(?:{re.escape(lang)})"

    def _build_ydl_options(self, lang: str, out_dir: str) -> dict:
        """
        Build yt-dlp options dictionary with anti-blocking strategies.

        Args:
            lang: Language code for subtitles (e.g., 'en', 'es')
            out_dir: Temporary output directory for subtitle files

        Returns:
            Dictionary of yt-dlp options
        """
        return {
            # Browser impersonation: YouTube fingerprints the TLS handshake
            "impersonate": ImpersonateTarget.from_str(self.config.ytdlp_impersonate_target),
            "sleep_subtitles": self.config.ytdlp_sleep_seconds,
            # The web client requires a PO token; skip it
            "extractor_args": {
                "youtube": {
                    "player_client": ["default,-web"]
                }
            },
            "writesubtitles": True,
            "writeautomaticsub": True,
            # Entries are regexes and "all" is an alias; match this language only
            "subtitleslangs": [self.subtitle_lang_pattern(lang)],
            "skip_download": True,
            "outtmpl": f"{out_dir}/%(id)s.%(ext)s",
            "subtitlesformat": "vtt",
            "quiet": True,
            "no_warnings": True,
            "logger": logger,
            "socket_timeout": self.config.ytdlp_request_timeout,
        }

    def parse_vtt(self, vtt_content: str) -> list[CaptionLine]:
        """
        Parse WebVTT content into caption lines.

        Skips the header, NOTE/STYLE blocks and cue identifiers. Multi-line
        cues are joined with a space; inline timing tags are removed.

        Args:
            vtt_content: Raw VTT file content as string

        Returns:
            Caption lines with start times in seconds
        """
        entries: list[tuple[float | None, str]] = []
        lines = vtt_content.splitlines()

        i = 0
        while i < len(lines):
            line = lines[i].strip()

            if not line or line.startswith(("WEBVTT", "NOTE", "STYLE")):
                i += 1
                continue

            timestamp_match = self.TIMESTAMP_PATTERN.search(line)
            if not timestamp_match:
                i += 1
                continue

            start = vtt_time_to_seconds(timestamp_match.group(1))

            # Collect subtitle text (may span multiple lines)
            text_lines = []
            i += 1
            while i < len(lines) and lines[i].strip():
                text_line = self.TAG_REMOVAL_PATTERN.sub("", lines[i].strip())
                if text_line:
                    text_lines.append(decode_entities(text_line))
                i += 1

            text = re.sub(r"\s+", " ", " ".join(text_lines)).strip()
            if text:
                entries.append((start, text))

        return reindex(entries)

    def fetch_sync(self, video_id: str, lang: str) -> list[CaptionLine]:
        """
        Download and parse the caption track for one language.

        Raises:
            ProviderFailure: If no track exists or it parses to nothing
            yt_dlp.utils.DownloadError: If yt-dlp fails outright
        """
        video_url = f"https://www.youtube.com/watch?v={video_id}"

        with tempfile.TemporaryDirectory(dir=self.config.ytdlp_temp_dir) as temp_dir:
            options = self._build_ydl_options(lang, temp_dir)
            with yt_dlp.YoutubeDL(options) as ydl:
                logger.info(f"yt-dlp subtitle download for {video_id} lang={lang}")
                ydl.extract_info(video_url, download=True)

            vtt_files = sorted(Path(temp_dir).glob("*.vtt"))
            if not vtt_files:
                raise ProviderFailure(f"No subtitles for video {video_id} in language '{lang}'")

            vtt_content = vtt_files[0].read_text(encoding="utf-8")

        captions = self.parse_vtt(vtt_content)
        logger.info(f"Parsed {len(captions)} caption lines from {vtt_files[0].name}")
        return captions

    async def fetch(self, video_id: str, lang: str) -> list[CaptionLine]:
        # yt-dlp is blocking
        return await run_in_threadpool(self.fetch_sync, video_id, lang)


class TranscriptApiProvider:
    """Fetches the timedtext transcript through youtube-transcript-api."""

    name = "youtube-transcript-api"

    def __init__(self, api: YouTubeTranscriptApi | None = None):
        self.api = api or YouTubeTranscriptApi()

    def fetch_sync(self, video_id: str, lang: str) -> list[CaptionLine]:
        try:
            fetched = self.api.fetch(video_id, languages=[lang])
        except CouldNotRetrieveTranscript as e:
            # The library's messages span many lines of troubleshooting text
            first_line = str(e).strip().splitlines()[0] if str(e).strip() else type(e).__name__
            raise ProviderFailure(f"{type(e).__name__}: {first_line}") from e

        entries = []
        for snippet in fetched:
            text = re.sub(r"\s+", " ", decode_entities(snippet.text)).strip()
            if text:
                entries.append((float(snippet.start), text))

        logger.info(f"youtube-transcript-api returned {len(entries)} lines for {video_id} lang={lang}")
        return reindex(entries)

    async def fetch(self, video_id: str, lang: str) -> list[CaptionLine]:
        return await run_in_threadpool(self.fetch_sync, video_id, lang)
