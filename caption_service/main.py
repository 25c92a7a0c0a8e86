"""
FastAPI application for caption resolution and transcript extraction.

This module is the thin HTTP layer over the two pipelines:

    - /api/captions: YouTube captions with language and provider fallback
    - /api/transcript: dialogue extracted from an allowlisted wiki page
"""

import logging
import time
from contextlib import asynccontextmanager
from enum import Enum

import structlog
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field

from caption_service import __version__
from caption_service.config import settings
from caption_service.errors import CaptionServiceError
from caption_service.models import CaptionResult
from caption_service.service import CaptionResolver, get_resolver, resolve_captions
from caption_service.transcript import TranscriptPageClient
from caption_service.utils import sanitize_for_log

SERVICE_NAME = "caption-service"

_log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
logging.basicConfig(level=_log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Configure logging with request ID context
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(_log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)
logger = structlog.get_logger()

# Track app startup time for uptime calculation
_app_start_time = time.time()


# ============================================================================
# Lifespan Context Manager
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective configuration on startup."""
    logger.info("Caption service starting", version=__version__)
    logger.info(
        "Caption providers configured",
        primary="yt-dlp",
        secondary="youtube-transcript-api",
        provider_timeout=settings.provider_timeout,
        impersonate=settings.ytdlp_impersonate_target,
    )
    logger.info(
        "Transcript extraction configured",
        allowed_domains=settings.transcript_allowed_domains,
        fetch_timeout=settings.transcript_fetch_timeout,
    )
    yield
    logger.info("Caption service stopped")


app = FastAPI(
    title="Caption Service",
    description="Resolve YouTube captions across languages and providers, and extract wiki transcripts",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ============================================================================
# Middleware Configuration
# ============================================================================


def configure_middleware():
    """Configure middleware based on settings."""
    from fastapi.middleware.cors import CORSMiddleware

    from caption_service.middleware import RequestIdMiddleware, SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    if settings.enable_security_headers:
        app.add_middleware(SecurityHeadersMiddleware)


configure_middleware()


# ============================================================================
# Pydantic Models
# ============================================================================


class OutputFormat(str, Enum):
    """Supported output formats."""

    json = "json"
    text = "text"


class CaptionLineModel(BaseModel):
    """A single caption line."""

    start: float | None = Field(None, description="Start time in seconds; null for page transcripts")
    text: str = Field(..., description="Spoken text")
    index: int = Field(..., description="Zero-based position in the sequence")


class CaptionResponse(BaseModel):
    """Caption sequence with the source that produced it."""

    video_id: str | None = Field(None, description="YouTube video ID (caption path)")
    url: str | None = Field(None, description="Page URL (transcript path)")
    lang: str | None = Field(None, description="Language the captions were fetched in")
    requested_lang: str | None = Field(None, description="First requested language candidate")
    source: str = Field(..., description="Provider or path that produced the captions")
    caption_count: int = Field(..., description="Number of caption lines")
    captions: list[CaptionLineModel] = Field(..., description="Caption lines in order")

    model_config = {
        "json_schema_extra": {
            "example": {
                "video_id": "dQw4w9WgXcQ",
                "lang": "en",
                "requested_lang": "es",
                "source": "yt-dlp",
                "caption_count": 1,
                "captions": [{"start": 0.0, "text": "Hello world", "index": 0}],
            }
        }
    }


class CaptionTextResponse(BaseModel):
    """Caption text joined into one string."""

    video_id: str | None = None
    url: str | None = None
    lang: str | None = None
    requested_lang: str | None = None
    source: str
    text: str = Field(..., description="Combined caption text")


class AttemptErrorModel(BaseModel):
    lang: str | None = Field(None, description="Language or context of the attempt")
    message: str = Field(..., description="Failure reason")
    source: str = Field(..., description="Provider that failed")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: str | None = Field(None, description="Additional error details")
    attempted: list[str] | None = Field(None, description="Language candidates tried")
    errors: list[AttemptErrorModel] | None = Field(None, description="Every failed attempt")


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: float
    uptime_seconds: float
    allowed_transcript_domains: list[str] = Field(default_factory=list)


def to_response(result: CaptionResult, format: OutputFormat) -> CaptionResponse | CaptionTextResponse:
    common = {
        "video_id": result.video_id,
        "url": result.url,
        "lang": result.lang,
        "requested_lang": result.requested_lang,
        "source": result.source,
    }
    if format == OutputFormat.text:
        return CaptionTextResponse(**common, text=result.text)
    return CaptionResponse(
        **common,
        caption_count=len(result.captions),
        captions=[CaptionLineModel(**line.to_dict()) for line in result.captions],
    )


def get_transcript_client() -> TranscriptPageClient:
    """FastAPI dependency for the wiki transcript client."""
    return TranscriptPageClient(settings)


# ============================================================================
# Exception Handlers
# ============================================================================


@app.exception_handler(CaptionServiceError)
async def caption_error_handler(request: Request, exc: CaptionServiceError):
    """Render every pipeline error with its own status and full failure report."""
    if exc.status_code >= 500:
        logger.error("Request failed", error=exc.error, message=exc.message)
    else:
        logger.warning("Request rejected", error=exc.error, message=exc.message)

    error_response = ErrorResponse.model_validate(exc.to_dict())
    return Response(
        content=error_response.model_dump_json(exclude_none=True),
        status_code=exc.status_code,
        media_type="application/json",
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with field-level detail."""
    errors = exc.errors()
    logger.warning("Validation error", errors=str(errors))

    error_details = []
    for error in errors:
        loc = " -> ".join(str(x) for x in error["loc"])
        error_details.append(f"{loc}: {error['msg']}")

    error_response = ErrorResponse(
        error="validation_error",
        message="Invalid request parameters",
        detail="; ".join(error_details),
    )
    return Response(
        content=error_response.model_dump_json(exclude_none=True),
        status_code=400,
        media_type="application/json",
    )


# ============================================================================
# API Endpoints
# ============================================================================


@app.get(
    "/api/captions",
    response_model=None,
    responses={
        200: {"description": "Captions resolved"},
        400: {"model": ErrorResponse, "description": "Invalid video URL or ID"},
        404: {"model": ErrorResponse, "description": "All languages and providers failed"},
    },
    summary="Resolve captions for a YouTube video",
)
async def get_captions(
    video: str | None = Query(None, max_length=500, description="YouTube URL or 11-character video ID"),
    lang: str | None = Query(
        None,
        max_length=100,
        description="Comma-separated language preference, e.g. 'es,en' (default: en)",
    ),
    format: OutputFormat = Query(OutputFormat.json, description="Output format: json or text"),
    resolver: CaptionResolver = Depends(get_resolver),
) -> CaptionResponse | CaptionTextResponse:
    """
    Resolve captions for a YouTube video.

    Each language candidate is tried with yt-dlp in order; if none yields
    captions, youtube-transcript-api is tried once with the first candidate.
    The first non-empty result is returned together with the source and
    language that produced it.

    **Example Usage:**
    ```bash
    curl "http://localhost:8000/api/captions?video=https://youtu.be/dQw4w9WgXcQ&lang=es,en"
    ```

    **Response Codes:**
    - 200: Success
    - 400: Input is not a YouTube URL or video ID
    - 404: Every attempt failed; body lists each attempt's error
    """
    logger.info("Caption request", video=sanitize_for_log(video), lang=sanitize_for_log(lang))
    result = await resolve_captions(video, lang, resolver, default_lang=settings.default_lang)
    return to_response(result, format)


@app.get(
    "/api/transcript",
    response_model=None,
    responses={
        200: {"description": "Transcript extracted"},
        400: {"model": ErrorResponse, "description": "URL host not allowed"},
        404: {"model": ErrorResponse, "description": "Page not resolvable or no transcript"},
    },
    summary="Extract a dialogue transcript from a wiki page",
)
async def get_transcript(
    url: str = Query(..., min_length=1, max_length=2000, description="Wiki page URL"),
    format: OutputFormat = Query(OutputFormat.json, description="Output format: json or text"),
    client: TranscriptPageClient = Depends(get_transcript_client),
) -> CaptionResponse | CaptionTextResponse:
    """
    Extract a dialogue transcript from an allowlisted wiki page.

    Only hosts in the configured allowlist are fetched. Lines are returned
    in page order without timestamps.

    **Example Usage:**
    ```bash
    curl "http://localhost:8000/api/transcript?url=https://criticalrole.fandom.com/wiki/Episode_1/Transcript"
    ```
    """
    logger.info("Transcript request", url=sanitize_for_log(url))
    result = await client.fetch_transcript(url)
    return to_response(result, format)


@app.get("/", summary="Simple health check")
async def root() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy", "service": SERVICE_NAME, "version": __version__}


@app.get("/health", response_model=HealthResponse, summary="Health check")
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        version=__version__,
        timestamp=time.time(),
        uptime_seconds=time.time() - _app_start_time,
        allowed_transcript_domains=settings.transcript_allowed_domains,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
