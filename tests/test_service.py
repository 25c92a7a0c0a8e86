"""Service layer tests for the caption fallback engine.

Tests cover attempt ordering, first-success-wins, secondary fallback,
aggregated failure reports, timeouts and cancellation. Providers are
in-memory doubles, so no network access is needed.
"""

import asyncio

import pytest

from caption_service.config import settings
from caption_service.errors import AllSourcesExhausted, InvalidIdentifier, ProviderFailure
from caption_service.service import CaptionResolver, get_resolver, resolve_captions

VIDEO_ID = "dQw4w9WgXcQ"


class SlowProvider:
    name = "slow"

    def __init__(self, delay: float):
        self.delay = delay
        self.calls = []

    async def fetch(self, video_id, lang):
        self.calls.append((video_id, lang))
        await asyncio.sleep(self.delay)
        return []


class TestResolvePrimary:
    """Tests for results coming from the primary provider."""

    @pytest.mark.asyncio
    async def test_first_candidate_success(self, fake_provider, captions):
        primary = fake_provider("yt-dlp", {"en": captions("Hello")})
        secondary = fake_provider("youtube-transcript-api")
        resolver = CaptionResolver(primary, secondary)

        result = await resolver.resolve(VIDEO_ID, ["en", "es"])

        assert result.lang == "en"
        assert result.source == "yt-dlp"
        assert result.video_id == VIDEO_ID
        assert result.requested_lang == "en"
        assert [line.text for line in result.captions] == ["Hello"]
        assert primary.calls == [(VIDEO_ID, "en")]
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_falls_through_to_second_candidate(self, fake_provider, captions):
        primary = fake_provider(
            "yt-dlp",
            {"es": ProviderFailure("No subtitles in 'es'"), "en": captions("Hello", "World")},
        )
        secondary = fake_provider("youtube-transcript-api", {"es": captions("Hola")})
        resolver = CaptionResolver(primary, secondary)

        result = await resolver.resolve(VIDEO_ID, ["es", "en"])

        assert result.lang == "en"
        assert result.source == "yt-dlp"
        assert result.requested_lang == "es"
        assert primary.calls == [(VIDEO_ID, "es"), (VIDEO_ID, "en")]
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_empty_result_counts_as_failure(self, fake_provider, captions):
        primary = fake_provider("yt-dlp", {"es": [], "en": captions("Hello")})
        resolver = CaptionResolver(primary, fake_provider("youtube-transcript-api"))

        result = await resolver.resolve(VIDEO_ID, ["es", "en"])

        assert result.lang == "en"

    @pytest.mark.asyncio
    async def test_stops_at_first_success(self, fake_provider, captions):
        primary = fake_provider("yt-dlp", {"a": captions("A"), "b": captions("B")})
        resolver = CaptionResolver(primary, fake_provider("youtube-transcript-api"))

        result = await resolver.resolve(VIDEO_ID, ["a", "b", "c"])

        assert result.captions[0].text == "A"
        assert primary.calls == [(VIDEO_ID, "a")]

    @pytest.mark.asyncio
    async def test_captions_passed_through_unmodified(self, fake_provider, captions):
        lines = captions("one", "two", "three")
        primary = fake_provider("yt-dlp", {"en": lines})
        resolver = CaptionResolver(primary, fake_provider("youtube-transcript-api"))

        result = await resolver.resolve(VIDEO_ID, ["en"])

        assert result.captions == lines


class TestResolveSecondary:
    """Tests for the secondary provider fallback."""

    @pytest.mark.asyncio
    async def test_secondary_used_with_first_candidate(self, fake_provider, captions):
        primary = fake_provider("yt-dlp", {"en": RuntimeError("HTTP Error 429")})
        secondary = fake_provider("youtube-transcript-api", {"en": captions("Fallback")})
        resolver = CaptionResolver(primary, secondary)

        result = await resolver.resolve(VIDEO_ID, ["en", "ru"])

        assert result.source == "youtube-transcript-api"
        assert result.lang == "en"
        assert primary.calls == [(VIDEO_ID, "en"), (VIDEO_ID, "ru")]
        assert secondary.calls == [(VIDEO_ID, "en")]

    @pytest.mark.asyncio
    async def test_secondary_called_once(self, fake_provider):
        primary = fake_provider("yt-dlp")
        secondary = fake_provider("youtube-transcript-api")
        resolver = CaptionResolver(primary, secondary)

        with pytest.raises(AllSourcesExhausted):
            await resolver.resolve(VIDEO_ID, ["es", "en", "fr"])

        assert secondary.calls == [(VIDEO_ID, "es")]


class TestAllSourcesExhausted:
    """Tests for the aggregated failure report."""

    @pytest.mark.asyncio
    async def test_error_list_covers_every_attempt(self, fake_provider):
        primary = fake_provider(
            "yt-dlp",
            {"es": ProviderFailure("no es track"), "en": RuntimeError("HTTP Error 429")},
        )
        secondary = fake_provider("youtube-transcript-api", {"es": ProviderFailure("disabled")})
        resolver = CaptionResolver(primary, secondary)

        with pytest.raises(AllSourcesExhausted) as exc_info:
            await resolver.resolve(VIDEO_ID, ["es", "en"])

        exc = exc_info.value
        assert exc.video_id == VIDEO_ID
        assert exc.attempted == ["es", "en"]
        assert len(exc.errors) == 3
        assert [(e.source, e.lang, e.message) for e in exc.errors] == [
            ("yt-dlp", "es", "no es track"),
            ("yt-dlp", "en", "HTTP Error 429"),
            ("youtube-transcript-api", "es", "disabled"),
        ]

    @pytest.mark.asyncio
    async def test_empty_results_reported(self, fake_provider):
        resolver = CaptionResolver(fake_provider("yt-dlp"), fake_provider("youtube-transcript-api"))

        with pytest.raises(AllSourcesExhausted) as exc_info:
            await resolver.resolve(VIDEO_ID, ["en"])

        assert len(exc_info.value.errors) == 2
        assert all(e.message == "Provider returned no captions" for e in exc_info.value.errors)

    @pytest.mark.asyncio
    async def test_exception_without_message_uses_type_name(self, fake_provider):
        primary = fake_provider("yt-dlp", {"en": KeyError()})
        resolver = CaptionResolver(primary, fake_provider("youtube-transcript-api"))

        with pytest.raises(AllSourcesExhausted) as exc_info:
            await resolver.resolve(VIDEO_ID, ["en"])

        assert exc_info.value.errors[0].message == "KeyError"

    @pytest.mark.asyncio
    async def test_to_dict_contains_full_report(self, fake_provider):
        resolver = CaptionResolver(fake_provider("yt-dlp"), fake_provider("youtube-transcript-api"))

        with pytest.raises(AllSourcesExhausted) as exc_info:
            await resolver.resolve(VIDEO_ID, ["en", "de"])

        payload = exc_info.value.to_dict()
        assert payload["error"] == "all_sources_exhausted"
        assert payload["attempted"] == ["en", "de"]
        assert len(payload["errors"]) == 3
        assert payload["errors"][0] == {
            "lang": "en",
            "message": "Provider returned no captions",
            "source": "yt-dlp",
        }


class TestTimeoutsAndCancellation:
    """Tests for per-attempt timeouts and request cancellation."""

    @pytest.mark.asyncio
    async def test_timeout_recorded_as_failure(self, fake_provider, captions):
        primary = SlowProvider(delay=5)
        secondary = fake_provider("youtube-transcript-api", {"en": captions("Fallback")})
        resolver = CaptionResolver(primary, secondary, timeout=0.01)

        result = await resolver.resolve(VIDEO_ID, ["en"])

        assert result.source == "youtube-transcript-api"

    @pytest.mark.asyncio
    async def test_timeout_message(self):
        resolver = CaptionResolver(SlowProvider(delay=5), SlowProvider(delay=5), timeout=0.01)

        with pytest.raises(AllSourcesExhausted) as exc_info:
            await resolver.resolve(VIDEO_ID, ["en"])

        assert [e.message for e in exc_info.value.errors] == ["Timed out after 0.01s"] * 2

    @pytest.mark.asyncio
    async def test_cancellation_skips_remaining_attempts(self, fake_provider):
        primary = SlowProvider(delay=10)
        secondary = fake_provider("youtube-transcript-api")
        resolver = CaptionResolver(primary, secondary)

        task = asyncio.create_task(resolver.resolve(VIDEO_ID, ["en", "es"]))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert primary.calls == [(VIDEO_ID, "en")]
        assert secondary.calls == []


class TestPlan:
    def test_plan_order(self, fake_provider):
        resolver = CaptionResolver(fake_provider("p"), fake_provider("s"))

        plan = resolver.plan(VIDEO_ID, ["es", "en", "fr"])

        assert [(a.source, a.lang) for a in plan] == [
            ("p", "es"),
            ("p", "en"),
            ("p", "fr"),
            ("s", "es"),
        ]

    @pytest.mark.asyncio
    async def test_resolve_requires_candidates(self, fake_provider):
        resolver = CaptionResolver(fake_provider("p"), fake_provider("s"))

        with pytest.raises(ValueError):
            await resolver.resolve(VIDEO_ID, [])


class TestResolveCaptions:
    """Tests for the resolve_captions entry point."""

    @pytest.mark.asyncio
    async def test_url_and_language_string(self, fake_provider, captions):
        primary = fake_provider("yt-dlp", {"ru": captions("Privet")})
        resolver = CaptionResolver(primary, fake_provider("youtube-transcript-api"))

        result = await resolve_captions("https://youtu.be/dQw4w9WgXcQ", "en, ru ,,fr", resolver)

        assert result.video_id == VIDEO_ID
        assert result.lang == "ru"
        assert result.requested_lang == "en"
        assert primary.calls == [(VIDEO_ID, "en"), (VIDEO_ID, "ru")]

    @pytest.mark.asyncio
    async def test_default_language(self, fake_provider, captions):
        primary = fake_provider("yt-dlp", {"en": captions("Hello")})
        resolver = CaptionResolver(primary, fake_provider("youtube-transcript-api"))

        result = await resolve_captions(VIDEO_ID, None, resolver)

        assert result.lang == "en"

    @pytest.mark.asyncio
    async def test_invalid_identifier_makes_no_calls(self, fake_provider):
        primary = fake_provider("yt-dlp")
        secondary = fake_provider("youtube-transcript-api")
        resolver = CaptionResolver(primary, secondary)

        with pytest.raises(InvalidIdentifier):
            await resolve_captions("https://example.com/watch?v=dQw4w9WgXcQ", "en", resolver)

        assert primary.calls == []
        assert secondary.calls == []


def test_get_resolver_wires_real_providers():
    resolver = get_resolver()
    assert resolver.primary.name == "yt-dlp"
    assert resolver.secondary.name == "youtube-transcript-api"
    assert resolver.primary.config is settings
    assert resolver.timeout == settings.provider_timeout


class TestRepeatedLanguages:
    """A language listed twice is fetched once per provider."""

    def test_plan_skips_repeated_pairs(self, fake_provider):
        resolver = CaptionResolver(fake_provider("p"), fake_provider("s"))

        plan = resolver.plan(VIDEO_ID, ["es", "en", "es"])

        assert [(a.source, a.lang) for a in plan] == [("p", "es"), ("p", "en"), ("s", "es")]

    @pytest.mark.asyncio
    async def test_resolve_captions_calls_each_pair_once(self, fake_provider):
        primary = fake_provider("yt-dlp", {"es": ProviderFailure("no es"), "en": ProviderFailure("no en")})
        secondary = fake_provider("youtube-transcript-api", {"es": ProviderFailure("disabled")})
        resolver = CaptionResolver(primary, secondary)

        with pytest.raises(AllSourcesExhausted) as exc_info:
            await resolve_captions(VIDEO_ID, "es,en,es", resolver)

        assert primary.calls == [(VIDEO_ID, "es"), (VIDEO_ID, "en")]
        assert secondary.calls == [(VIDEO_ID, "es")]
        assert exc_info.value.attempted == ["es", "en", "es"]
        assert len(exc_info.value.errors) == 3
