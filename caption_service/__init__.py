"""Multi-source caption resolution and wiki transcript extraction service."""

__version__ = "0.3.0"
