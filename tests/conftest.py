"""Shared pytest fixtures for caption and transcript tests."""

import pytest
from fastapi.testclient import TestClient

from caption_service.main import app
from caption_service.models import CaptionLine


class FakeProvider:
    """
    Caption provider double.

    responses maps a language to the captions to return or the exception to
    raise; unknown languages return an empty list.
    """

    def __init__(self, name: str, responses: dict | None = None):
        self.name = name
        self.responses = responses or {}
        self.calls: list[tuple[str, str]] = []

    async def fetch(self, video_id: str, lang: str) -> list[CaptionLine]:
        self.calls.append((video_id, lang))
        outcome = self.responses.get(lang, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_captions(*texts: str) -> list[CaptionLine]:
    return [CaptionLine(start=float(i), text=text, index=i) for i, text in enumerate(texts)]


@pytest.fixture
def fake_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def captions():
    """Factory for caption lists with one-second spacing."""
    return make_captions


@pytest.fixture
def client():
    """FastAPI TestClient; dependency overrides are reset after each test."""
    app.dependency_overrides.clear()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def vtt_content():
    """A small WebVTT track with a multi-line cue and inline timing tags."""
    return """WEBVTT
Kind: captions
Language: en

00:00:00.000 --> 00:00:03.500
Hello world

00:00:03.500 --> 00:00:07.000 align:start position:0%
<00:00:04.000><c>This is</c><00:00:05.000><c> a test</c>

2
00:01:05.250 --> 00:01:08.000
Tom &amp; Jerry
say hi
"""
