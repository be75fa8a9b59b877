"""Tests for the content analysis adapter and the analysis payload decoder."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from conftest import ANALYSIS_PAYLOAD, FakeAnalysisClient

from src.pipeline.analysis import (
    FallbackOnlyAnalysisAdapter,
    RealContentAnalysisAdapter,
    decode_analysis,
    parse_timestamp,
    render_transcript,
)
from src.pipeline.errors import (
    AdapterExhaustedError,
    AdapterUnavailableError,
    MalformedAnalysisError,
    RetryableTransportError,
)
from src.pipeline.models import KeyMoment, Segment, Sentiment, Transcript

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

TRANSCRIPT = Transcript(
    text="hello world",
    segments=(
        Segment(id="seg-0", start=0.0, end=0.4, text="hello", confidence=0.9),
        Segment(id="seg-1", start=65.0, end=65.5, text="world", confidence=0.95),
    ),
)


def _adapter(client, retry, policy) -> RealContentAnalysisAdapter:
    return RealContentAnalysisAdapter(client, retry, policy, clock=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


class TestDecodeAnalysis:
    def test_well_formed_payload(self) -> None:
        analysis = decode_analysis(ANALYSIS_PAYLOAD, analyzed_at=FIXED_NOW)
        assert analysis.keywords == ("greeting", "world")
        assert analysis.topics == ("Greetings",)
        assert analysis.summary == "A short greeting."
        assert analysis.sentiment is Sentiment.POSITIVE
        assert analysis.key_moments == (KeyMoment(timestamp=0.0, description="Hello"),)
        assert analysis.analyzed_at == FIXED_NOW
        assert analysis.is_fallback is False

    def test_missing_fields_get_empty_defaults(self) -> None:
        analysis = decode_analysis({})
        assert analysis.keywords == ()
        assert analysis.topics == ()
        assert analysis.summary == ""
        assert analysis.sentiment is Sentiment.NEUTRAL
        assert analysis.key_moments == ()
        assert analysis.content_suggestions.blog_post_ideas == ()

    def test_malformed_fields_get_empty_defaults(self) -> None:
        analysis = decode_analysis(
            {
                "keywords": "not, a, list",
                "topics": {"oops": True},
                "summary": 42,
                "sentiment": "ecstatic",
                "keyMoments": "soon",
            }
        )
        assert analysis.keywords == ("not", "a", "list")
        assert analysis.topics == ()
        assert analysis.summary == ""
        assert analysis.sentiment is Sentiment.NEUTRAL
        assert analysis.key_moments == ()

    def test_keywords_are_deduplicated_and_capped(self) -> None:
        keywords = ["AI", "ai", " AI ", ""] + [f"k{i}" for i in range(20)]
        analysis = decode_analysis({"keywords": keywords})
        assert analysis.keywords[0] == "AI"
        assert len(analysis.keywords) == 15
        assert len(set(k.lower() for k in analysis.keywords)) == 15

    def test_topics_keep_order_and_cap(self) -> None:
        topics = [f"topic {i}" for i in range(10)]
        analysis = decode_analysis({"topics": topics})
        assert analysis.topics == tuple(topics[:8])

    def test_sentiment_is_case_insensitive(self) -> None:
        assert decode_analysis({"sentiment": " Negative "}).sentiment is Sentiment.NEGATIVE

    def test_key_moments_are_parsed_sorted_and_filtered(self) -> None:
        analysis = decode_analysis(
            {
                "keyMoments": [
                    {"timestamp": "1:05", "description": "Later"},
                    {"timestamp": 3, "description": "Early"},
                    {"timestamp": "soon", "description": "Dropped"},
                    {"timestamp": 10},
                    "not a dict",
                ]
            }
        )
        assert analysis.key_moments == (
            KeyMoment(timestamp=3.0, description="Early"),
            KeyMoment(timestamp=65.0, description="Later"),
        )

    def test_content_suggestions(self) -> None:
        analysis = decode_analysis(
            {
                "contentSuggestions": {
                    "blogPostIdeas": ["a", "b", "c", "d"],
                    "socialMediaHooks": ["hook"],
                }
            }
        )
        assert analysis.content_suggestions.blog_post_ideas == ("a", "b", "c")
        assert analysis.content_suggestions.social_media_hooks == ("hook",)
        assert analysis.content_suggestions.short_form_content == ()

    def test_json_string_and_code_fence(self) -> None:
        raw = json.dumps(ANALYSIS_PAYLOAD)
        assert decode_analysis(raw).summary == "A short greeting."
        assert decode_analysis(f"```json\n{raw}\n```").summary == "A short greeting."

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]", None, 7])
    def test_unusable_payload_raises(self, payload) -> None:
        with pytest.raises(MalformedAnalysisError):
            decode_analysis(payload)


class TestParseTimestamp:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(12, 12.0), (4.5, 4.5), ("30", 30.0), ("1:05", 65.0), ("[0:10]", 10.0), ("1:00:00", 3600.0)],
    )
    def test_valid(self, value, expected) -> None:
        assert parse_timestamp(value) == expected

    @pytest.mark.parametrize("value", [None, True, "abc", -1, float("nan"), [1]])
    def test_invalid(self, value) -> None:
        assert parse_timestamp(value) is None


def test_render_transcript_uses_segment_timestamps() -> None:
    assert render_transcript(TRANSCRIPT) == "[0:00] hello\n[1:05] world"
    assert render_transcript(Transcript(text="plain text")) == "plain text"


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class TestRealContentAnalysisAdapter:
    @pytest.mark.asyncio
    async def test_analyzes_transcript(self, retry, policy) -> None:
        client = FakeAnalysisClient(ANALYSIS_PAYLOAD)
        analysis = await _adapter(client, retry, policy).analyze(TRANSCRIPT)

        assert analysis is not None
        assert analysis.keywords == ("greeting", "world")
        assert analysis.analyzed_at == FIXED_NOW
        assert client.calls == ["[0:00] hello\n[1:05] world"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   \n"])
    async def test_empty_transcript_is_skipped_without_remote_call(
        self, retry, policy, text
    ) -> None:
        client = FakeAnalysisClient()
        result = await _adapter(client, retry, policy).analyze(Transcript(text=text))
        assert result is None
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_partial_payload_is_still_useful(self, retry, policy) -> None:
        client = FakeAnalysisClient({"summary": "Only a summary."})
        analysis = await _adapter(client, retry, policy).analyze(TRANSCRIPT)
        assert analysis is not None
        assert analysis.summary == "Only a summary."
        assert analysis.keywords == ()

    @pytest.mark.asyncio
    async def test_retries_then_raises_typed_error(self, retry, policy) -> None:
        client = FakeAnalysisClient(RetryableTransportError("overloaded", status_code=529))
        with pytest.raises(AdapterExhaustedError):
            await _adapter(client, retry, policy).analyze(TRANSCRIPT)
        assert len(client.calls) == 3

    @pytest.mark.asyncio
    async def test_unusable_response_raises_typed_error(self, retry, policy) -> None:
        client = FakeAnalysisClient("I cannot help with that.")
        with pytest.raises(AdapterExhaustedError, match="not valid JSON"):
            await _adapter(client, retry, policy).analyze(TRANSCRIPT)
        assert len(client.calls) == 1


class TestFallbackOnlyAnalysisAdapter:
    @pytest.mark.asyncio
    async def test_unavailable(self) -> None:
        with pytest.raises(AdapterUnavailableError):
            await FallbackOnlyAnalysisAdapter().analyze(TRANSCRIPT)

    @pytest.mark.asyncio
    async def test_empty_transcript_still_skipped(self) -> None:
        assert await FallbackOnlyAnalysisAdapter().analyze(Transcript(text="")) is None
