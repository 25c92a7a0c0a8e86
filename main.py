"""
Entry point for caption-service.

Run this file directly to start the FastAPI server:
    python main.py
    python -m main

Or use uvicorn directly:
    uvicorn caption_service.main:app --reload --host 0.0.0.0 --port 8000
"""

import uvicorn

from caption_service.config import settings


def main() -> None:
    """
    Start the uvicorn server.

    Server configuration can be overridden via environment variables:
    - HOST: Server host (default: 0.0.0.0)
    - PORT: Server port (default: 8000)
    - LOG_LEVEL: Log level (default: info)
    - CAPTIONS_PROVIDER_TIMEOUT: Seconds allowed per caption provider call
    - CAPTIONS_TRANSCRIPT_ALLOWED_DOMAINS: JSON list of wiki hosts
    """
    print("=" * 60)
    print("Caption Service")
    print("=" * 60)
    print(f"Starting server on http://{settings.host}:{settings.port}")
    print(f"  - Provider timeout: {settings.provider_timeout}s")
    print(f"  - Transcript domains: {', '.join(settings.transcript_allowed_domains)}")
    print("=" * 60)

    uvicorn.run(
        "caption_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
