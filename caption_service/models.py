"""
Request-scoped data types for caption resolution.

Nothing here is persisted: every instance lives for the duration of a single
request and is discarded once the response is sent.
"""

from dataclasses import dataclass, field


@dataclass
class CaptionLine:
    """
    A single caption or transcript line.

    Attributes:
        start: Start time in seconds, or None for positional-only transcripts
        text: The spoken text
        index: Zero-based position within the produced sequence
    """

    start: float | None
    text: str
    index: int

    def to_dict(self) -> dict:
        return {"start": self.start, "text": self.text, "index": self.index}


@dataclass
class FetchAttemptError:
    """
    One failed attempt, kept for the aggregated failure report.

    Attributes:
        lang: Language candidate (or other context) the attempt used
        message: Human-readable failure reason
        source: Name of the provider or path that failed
    """

    lang: str | None
    message: str
    source: str

    def to_dict(self) -> dict:
        return {"lang": self.lang, "message": self.message, "source": self.source}


@dataclass
class CaptionResult:
    """
    Successful output of either pipeline.

    Exactly one of video_id or url is set. captions is never empty.

    Attributes:
        captions: Ordered caption lines
        source: Provider or path that produced the captions
        video_id: YouTube video ID for the caption pipeline
        url: Page URL for the transcript pipeline
        lang: Language the captions were fetched in (None for transcripts)
        requested_lang: First language candidate from the request
    """

    captions: list[CaptionLine]
    source: str
    video_id: str | None = None
    url: str | None = None
    lang: str | None = None
    requested_lang: str | None = None

    def __post_init__(self) -> None:
        if not self.captions:
            raise ValueError("CaptionResult requires at least one caption line")

    @property
    def text(self) -> str:
        """All caption text joined with single spaces."""
        return " ".join(line.text for line in self.captions)


@dataclass
class AttemptRecord:
    """Uniform outcome of one (source, language) attempt in the fallback chain."""

    source: str
    lang: str
    captions: list[CaptionLine] = field(default_factory=list)
    error: FetchAttemptError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and bool(self.captions)


def reindex(lines: list[tuple[float | None, str]]) -> list[CaptionLine]:
    """Build contiguous zero-based CaptionLines from (start, text) pairs."""
    return [CaptionLine(start=start, text=text, index=i) for i, (start, text) in enumerate(lines)]
