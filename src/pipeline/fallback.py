"""Deterministic placeholder transcript and analysis.

Used whenever an adapter cannot produce real output. Same inputs always give
identical output, and the output satisfies every invariant real output does.
"""

from __future__ import annotations

from datetime import UTC, datetime

from src.pipeline.models import (
    ContentAnalysis,
    ContentSuggestions,
    KeyMoment,
    Segment,
    Sentiment,
    Transcript,
)

FALLBACK_DURATION_SECONDS = 15.0

# Real analyses carry the wall clock
FALLBACK_ANALYZED_AT = datetime(2024, 1, 1, tzinfo=UTC)

_FALLBACK_SEGMENTS: tuple[Segment, ...] = (
    Segment(
        id="seg-0",
        start=0.0,
        end=5.0,
        text="Welcome to this video. Today we're going to explore some amazing content.",
        confidence=0.98,
    ),
    Segment(
        id="seg-1",
        start=5.0,
        end=10.0,
        text="First, let's talk about the main topic and why it's important.",
        confidence=0.95,
    ),
    Segment(
        id="seg-2",
        start=10.0,
        end=15.0,
        text="There are three key points we need to understand.",
        confidence=0.97,
    ),
)


def fallback_transcript(media_reference: str, language_hint: str | None = None) -> Transcript:
    """Return the placeholder transcript.

    ``media_reference`` is accepted so callers use the same signature as the
    real adapter; the content does not depend on it.
    """
    del media_reference
    return Transcript(
        text=" ".join(s.text for s in _FALLBACK_SEGMENTS),
        segments=_FALLBACK_SEGMENTS,
        language_code=language_hint or "en",
        duration_seconds=FALLBACK_DURATION_SECONDS,
        is_fallback=True,
    )


def fallback_analysis() -> ContentAnalysis:
    """Return the placeholder content analysis."""
    return ContentAnalysis(
        keywords=("introduction", "key points", "innovation", "implementation", "best practices"),
        topics=("Content Creation", "Innovation", "Best Practices"),
        summary=(
            "This video provides an introduction to the topic and discusses "
            "key points including innovation and creativity."
        ),
        sentiment=Sentiment.POSITIVE,
        key_moments=(
            KeyMoment(timestamp=0.0, description="Introduction"),
            KeyMoment(timestamp=5.0, description="Main topic"),
            KeyMoment(timestamp=10.0, description="Key points"),
        ),
        content_suggestions=ContentSuggestions(
            blog_post_ideas=("Innovation and Creativity", "Best Practices"),
            social_media_hooks=("Discover innovation!", "Transform today!"),
            short_form_content=("3 key points", "Innovation made simple"),
        ),
        analyzed_at=FALLBACK_ANALYZED_AT,
        is_fallback=True,
    )
