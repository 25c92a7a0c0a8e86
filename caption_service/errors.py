"""Error kinds surfaced by the caption and transcript pipelines."""

from caption_service.models import FetchAttemptError


class CaptionServiceError(Exception):
    """Base class. Subclasses carry the HTTP status the API layer renders."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message, "detail": self.detail}


class InvalidIdentifier(CaptionServiceError):
    """The input could not be turned into an 11-character video ID."""

    status_code = 400
    error = "invalid_identifier"

    def __init__(self, raw_input: str | None):
        super().__init__(
            "Could not extract a YouTube video ID from the input",
            detail=raw_input or None,
        )
        self.raw_input = raw_input


class ProviderFailure(CaptionServiceError):
    """Raised by a caption provider for one (video, language) attempt.

    The fallback engine records it and moves on; it never reaches the caller
    on its own.
    """

    status_code = 502
    error = "provider_failure"


class AllSourcesExhausted(CaptionServiceError):
    """Every language candidate and provider failed."""

    status_code = 404
    error = "all_sources_exhausted"

    def __init__(
        self,
        video_id: str,
        attempted: list[str],
        errors: list[FetchAttemptError],
    ):
        super().__init__(
            f"No captions found for video {video_id}",
            detail=f"Tried languages: {', '.join(attempted)}",
        )
        self.video_id = video_id
        self.attempted = list(attempted)
        self.errors = list(errors)

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["attempted"] = self.attempted
        payload["errors"] = [error.to_dict() for error in self.errors]
        return payload


class DisallowedHost(CaptionServiceError):
    """The transcript URL points outside the allowed domains."""

    status_code = 400
    error = "disallowed_host"

    def __init__(self, url: str, allowed_domains: list[str]):
        super().__init__(
            "URL host is not allowed for transcript extraction",
            detail=f"Allowed domains: {', '.join(allowed_domains)}",
        )
        self.url = url


class PageNotResolvable(CaptionServiceError):
    """The page title could not be derived, or the content API gave no HTML."""

    status_code = 404
    error = "page_not_resolvable"

    def __init__(self, url: str, reason: str):
        super().__init__("Could not resolve the transcript page", detail=reason)
        self.url = url


class NoTranscriptFound(CaptionServiceError):
    status_code = 404
    error = "no_transcript_found"

    def __init__(self, url: str):
        super().__init__("No transcript found on the page", detail=url)
        self.url = url
