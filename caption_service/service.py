"""
Caption resolution with language and provider fallback.

The resolver turns one request into an ordered list of attempts:

    1. primary provider x each language candidate, in preference order
    2. secondary provider x the first language candidate

Attempts run strictly one after another and the chain stops at the first
non-empty result. Every failure (exception, timeout, empty result) becomes a
FetchAttemptError; when nothing succeeds all of them are raised together in
AllSourcesExhausted.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from caption_service.config import settings
from caption_service.errors import AllSourcesExhausted, InvalidIdentifier
from caption_service.models import AttemptRecord, CaptionLine, CaptionResult, FetchAttemptError
from caption_service.providers import CaptionProvider, TranscriptApiProvider, YtDlpCaptionProvider
from caption_service.utils import extract_video_id, resolve_language_candidates, sanitize_for_log

logger = logging.getLogger(__name__)


@dataclass
class Attempt:
    """One planned (source, language) call, not yet executed."""

    source: str
    lang: str
    call: Callable[[], Awaitable[list[CaptionLine]]]


class CaptionResolver:
    """
    Runs the language x provider fallback chain for a video.

    Args:
        primary: Provider tried once per language candidate
        secondary: Provider tried once, with the first candidate, after
            every primary attempt failed
        timeout: Seconds allowed per attempt; None disables the bound
    """

    def __init__(
        self,
        primary: CaptionProvider,
        secondary: CaptionProvider,
        timeout: float | None = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.timeout = timeout

    def plan(self, video_id: str, candidates: list[str]) -> list[Attempt]:
        """
        Build the ordered attempt list for a video and its candidates.

        A language repeated in the candidates is attempted once per provider.
        """
        attempts = [self._attempt(self.primary, video_id, lang) for lang in dict.fromkeys(candidates)]
        attempts.append(self._attempt(self.secondary, video_id, candidates[0]))
        return attempts

    @staticmethod
    def _attempt(provider: CaptionProvider, video_id: str, lang: str) -> Attempt:
        return Attempt(source=provider.name, lang=lang, call=lambda: provider.fetch(video_id, lang))

    async def run_attempt(self, attempt: Attempt) -> AttemptRecord:
        """
        Execute one attempt and record its outcome.

        Provider exceptions and timeouts are captured in the record.
        CancelledError is not caught, so cancelling the request stops the chain.

        A timeout abandons the await but cannot stop a provider running in a
        worker thread; yt-dlp is bounded separately by its socket timeout,
        which Settings keeps below provider_timeout.
        """
        try:
            if self.timeout is None:
                captions = await attempt.call()
            else:
                captions = await asyncio.wait_for(attempt.call(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            if self.timeout is None:
                message = str(e) or "Timed out"
            else:
                message = f"Timed out after {self.timeout:g}s"
        except Exception as e:
            message = str(e) or type(e).__name__
        else:
            if captions:
                return AttemptRecord(source=attempt.source, lang=attempt.lang, captions=list(captions))
            message = "Provider returned no captions"

        error = FetchAttemptError(lang=attempt.lang, message=message, source=attempt.source)
        return AttemptRecord(source=attempt.source, lang=attempt.lang, error=error)

    async def resolve(self, video_id: str, candidates: list[str]) -> CaptionResult:
        """
        Return captions from the first attempt that yields any.

        Raises:
            AllSourcesExhausted: With every attempt's error, in attempt order
        """
        if not candidates:
            raise ValueError("At least one language candidate is required")

        errors: list[FetchAttemptError] = []
        for attempt in self.plan(video_id, candidates):
            record = await self.run_attempt(attempt)
            if record.succeeded:
                logger.info(
                    f"Captions for {video_id} from {record.source} lang={record.lang} "
                    f"({len(record.captions)} lines, {len(errors)} failed attempts before)"
                )
                return CaptionResult(
                    captions=record.captions,
                    source=record.source,
                    video_id=video_id,
                    lang=record.lang,
                    requested_lang=candidates[0],
                )

            logger.warning(
                f"{record.source} failed for {video_id} lang={sanitize_for_log(record.lang)}: "
                f"{sanitize_for_log(record.error.message)}"
            )
            errors.append(record.error)

        logger.error(f"All caption sources exhausted for {video_id} after {len(errors)} attempts")
        raise AllSourcesExhausted(video_id, candidates, errors)


async def resolve_captions(
    raw_input: str | None,
    raw_lang: str | None,
    resolver: CaptionResolver,
    default_lang: str = "en",
) -> CaptionResult:
    """
    Resolve captions for a user-supplied URL or ID and language preference.

    Raises:
        InvalidIdentifier: If no video ID can be extracted
        AllSourcesExhausted: If every provider and language failed
    """
    video_id = extract_video_id(raw_input)
    if video_id is None:
        raise InvalidIdentifier(raw_input)

    candidates = resolve_language_candidates(raw_lang, default=default_lang)
    return await resolver.resolve(video_id, candidates)


def get_resolver() -> CaptionResolver:
    """
    Get a CaptionResolver wired to the configured providers.

    This function is used as a FastAPI dependency for dependency injection.
    """
    return CaptionResolver(
        primary=YtDlpCaptionProvider(settings),
        secondary=TranscriptApiProvider(),
        timeout=settings.provider_timeout,
    )
