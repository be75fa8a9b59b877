"""Content analysis adapter: Transcript -> ContentAnalysis.

The analysis service returns free-form JSON. ``decode_analysis`` coerces it
into the internal schema, filling empty defaults for anything missing or
malformed.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from src.pipeline.clients import TextAnalysisClient
from src.pipeline.errors import AdapterExhaustedError, AdapterUnavailableError, MalformedAnalysisError
from src.pipeline.models import (
    ContentAnalysis,
    ContentSuggestions,
    KeyMoment,
    RetryPolicy,
    Sentiment,
    Transcript,
    utcnow,
)
from src.pipeline.retry import RetryController

logger = logging.getLogger(__name__)

ADAPTER_NAME = "analysis"

MAX_KEYWORDS = 15
MAX_TOPICS = 8
MAX_KEY_MOMENTS = 5
MAX_SUGGESTIONS = 3


class ContentAnalysisAdapter(Protocol):
    async def analyze(self, transcript: Transcript) -> ContentAnalysis | None: ...


# ---------------------------------------------------------------------------
# Payload decoding
# ---------------------------------------------------------------------------


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _string_list(value: Any, limit: int) -> tuple[str, ...]:
    """Non-empty, stripped, de-duplicated strings in first-seen order."""
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return ()
    seen: set[str] = set()
    items: list[str] = []
    for item in value:
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            continue
        text = str(item).strip()
        if not text or text.lower() in seen:
            continue
        seen.add(text.lower())
        items.append(text)
    return tuple(items[:limit])


def parse_timestamp(value: Any) -> float | None:
    """Seconds from a number, a numeric string, or an ``m:ss`` / ``h:mm:ss`` string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip().strip("[]")
        try:
            if ":" in text:
                seconds = 0.0
                for part in text.split(":"):
                    seconds = seconds * 60 + float(part)
            else:
                seconds = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return None
    return seconds


def _key_moments(value: Any) -> tuple[KeyMoment, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    moments: list[KeyMoment] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        timestamp = parse_timestamp(_first(item, "timestamp", "timestampSeconds", "time", "start"))
        description = _first(item, "description", "text", "title")
        if timestamp is None or not isinstance(description, str) or not description.strip():
            continue
        moments.append(KeyMoment(timestamp=timestamp, description=description.strip()))
    moments.sort(key=lambda m: m.timestamp)
    return tuple(moments[:MAX_KEY_MOMENTS])


def _sentiment(value: Any) -> Sentiment:
    if isinstance(value, str):
        try:
            return Sentiment(value.strip().lower())
        except ValueError:
            pass
    return Sentiment.NEUTRAL


def _suggestions(value: Any) -> ContentSuggestions:
    if not isinstance(value, dict):
        return ContentSuggestions()
    return ContentSuggestions(
        blog_post_ideas=_string_list(
            _first(value, "blogPostIdeas", "blog_post_ideas"), MAX_SUGGESTIONS
        ),
        social_media_hooks=_string_list(
            _first(value, "socialMediaHooks", "social_media_hooks"), MAX_SUGGESTIONS
        ),
        short_form_content=_string_list(
            _first(value, "shortFormContent", "short_form_content"), MAX_SUGGESTIONS
        ),
    )


def decode_analysis(payload: Any, analyzed_at: datetime | None = None) -> ContentAnalysis:
    """Coerce a free-form analysis payload into a ContentAnalysis.

    Accepts a dict or a JSON string (optionally wrapped in a markdown code
    fence). Raises ``MalformedAnalysisError`` only when the payload cannot be
    read as a JSON object at all.
    """
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        text = payload.strip()
        if text.startswith("```"):
            text = text.strip("`")
            text = text.split("\n", 1)[1] if "\n" in text else ""
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedAnalysisError(f"Analysis response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedAnalysisError(
            f"Analysis response is not an object (got {type(payload).__name__})"
        )

    summary = _first(payload, "summary")
    return ContentAnalysis(
        keywords=_string_list(_first(payload, "keywords"), MAX_KEYWORDS),
        topics=_string_list(_first(payload, "topics"), MAX_TOPICS),
        summary=summary.strip() if isinstance(summary, str) else "",
        sentiment=_sentiment(_first(payload, "sentiment")),
        key_moments=_key_moments(_first(payload, "keyMoments", "key_moments")),
        content_suggestions=_suggestions(
            _first(payload, "contentSuggestions", "content_suggestions")
        ),
        analyzed_at=analyzed_at or utcnow(),
    )


def render_transcript(transcript: Transcript) -> str:
    """Text sent for analysis: ``[m:ss] text`` lines when segments exist."""
    if not transcript.segments:
        return transcript.text
    return "\n".join(
        f"[{int(seg.start // 60)}:{int(seg.start % 60):02d}] {seg.text}"
        for seg in transcript.segments
    )


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class RealContentAnalysisAdapter:
    """Analyze a transcript through the configured text-analysis client.

    Returns ``None`` ("skipped") for an empty transcript without calling the
    remote service.
    """

    def __init__(
        self,
        client: TextAnalysisClient,
        retry: RetryController,
        policy: RetryPolicy,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self._retry = retry
        self._policy = policy
        self._clock = clock

    async def analyze(self, transcript: Transcript) -> ContentAnalysis | None:
        if not transcript.text.strip():
            logger.info("Transcript is empty; skipping content analysis")
            return None

        text = render_transcript(transcript)
        try:
            payload = await self._retry.execute(
                lambda: self._client.submit(text),
                self._policy,
                label="content analysis",
            )
            analysis = decode_analysis(payload, analyzed_at=self._clock())
        except Exception as exc:
            raise AdapterExhaustedError(ADAPTER_NAME, str(exc) or type(exc).__name__) from exc

        logger.info(
            "Analysis complete: %d keywords, %d topics, %d key moments, sentiment=%s",
            len(analysis.keywords),
            len(analysis.topics),
            len(analysis.key_moments),
            analysis.sentiment.value,
        )
        return analysis


class FallbackOnlyAnalysisAdapter:
    """Selected when no text-analysis credential is configured."""

    async def analyze(self, transcript: Transcript) -> ContentAnalysis | None:
        if not transcript.text.strip():
            return None
        raise AdapterUnavailableError(ADAPTER_NAME, "text analysis is not configured")
