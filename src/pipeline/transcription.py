"""Transcription adapter: media reference -> normalized Transcript."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from src.pipeline.clients import SpeechToTextClient
from src.pipeline.errors import (
    AdapterExhaustedError,
    AdapterUnavailableError,
    RemoteJobFailedError,
)
from src.pipeline.models import (
    RetryPolicy,
    Segment,
    SpeechToTextResult,
    Transcript,
    WordTiming,
)
from src.pipeline.retry import RetryController
from src.pipeline_config import SegmentGrouping

logger = logging.getLogger(__name__)

ADAPTER_NAME = "transcription"

# Subtitle grouping limits
MAX_WORDS_PER_SEGMENT = 10
MAX_SEGMENT_SECONDS = 5.0
MIN_WORDS_BEFORE_PUNCTUATION_SPLIT = 5
_SENTENCE_PUNCTUATION = (".", "!", "?", ":", ";")


class MediaResolver(Protocol):
    async def signed_url(self, locator: str, ttl_seconds: int) -> str: ...


class TranscriptionAdapter(Protocol):
    async def transcribe(self, media_reference: str, language_hint: str | None) -> Transcript: ...


# ---------------------------------------------------------------------------
# Word timing -> segments
# ---------------------------------------------------------------------------


def _clamp_confidence(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


def _ordered_words(words: Iterable[WordTiming]) -> list[tuple[str, float, float, float]]:
    """Sort words by start and convert ms to seconds, clamping overlaps away.

    Returns ``(text, start_s, end_s, confidence)`` tuples where every start is
    at or after the previous end.
    """
    ordered: list[tuple[str, float, float, float]] = []
    previous_end = 0.0
    for word in sorted(words, key=lambda w: (w.start_ms, w.end_ms)):
        start = max(word.start_ms / 1000, previous_end)
        end = max(word.end_ms / 1000, start)
        ordered.append((word.text, start, end, _clamp_confidence(word.confidence)))
        previous_end = end
    return ordered


def words_to_segments(words: Iterable[WordTiming]) -> list[Segment]:
    """One segment per recognised word."""
    return [
        Segment(id=f"seg-{i}", start=start, end=end, text=text, confidence=confidence)
        for i, (text, start, end, confidence) in enumerate(_ordered_words(words))
    ]


def group_words_into_segments(words: Iterable[WordTiming]) -> list[Segment]:
    """Group words into subtitle-sized segments.

    A new segment starts once the current one holds ``MAX_WORDS_PER_SEGMENT``
    words, would span ``MAX_SEGMENT_SECONDS``, or holds at least
    ``MIN_WORDS_BEFORE_PUNCTUATION_SPLIT`` words and the last of them ends a
    sentence. Segment confidence is the mean word confidence.
    """
    segments: list[Segment] = []
    texts: list[str] = []
    confidences: list[float] = []
    seg_start = seg_end = 0.0

    def flush() -> None:
        segments.append(
            Segment(
                id=f"seg-{len(segments)}",
                start=seg_start,
                end=seg_end,
                text=" ".join(texts),
                confidence=sum(confidences) / len(confidences),
            )
        )

    for text, start, end, confidence in _ordered_words(words):
        if texts:
            should_split = (
                len(texts) >= MAX_WORDS_PER_SEGMENT
                or end - seg_start >= MAX_SEGMENT_SECONDS
                or (
                    len(texts) >= MIN_WORDS_BEFORE_PUNCTUATION_SPLIT
                    and texts[-1].endswith(_SENTENCE_PUNCTUATION)
                )
            )
            if should_split:
                flush()
                texts, confidences = [], []
        if not texts:
            seg_start = start
        texts.append(text)
        confidences.append(confidence)
        seg_end = end

    if texts:
        flush()
    return segments


def normalize_result(
    result: SpeechToTextResult,
    language_hint: str | None,
    grouping: SegmentGrouping = SegmentGrouping.WORD,
) -> Transcript:
    """Build a Transcript from a completed speech-to-text result."""
    if grouping is SegmentGrouping.SUBTITLE:
        segments = group_words_into_segments(result.words)
    else:
        segments = words_to_segments(result.words)

    duration = result.duration_seconds
    if duration is None:
        duration = segments[-1].end if segments else 0.0

    text = result.text or " ".join(s.text for s in segments)
    if not segments and text.strip():
        # Text without word timings: one segment covering the whole recording
        segments = [Segment(id="seg-0", start=0.0, end=float(duration), text=text)]

    return Transcript(
        text=text,
        segments=tuple(segments),
        language_code=result.language_code or language_hint or "en",
        duration_seconds=float(duration),
    )


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class RealTranscriptionAdapter:
    """Exchange the media reference for a signed URL, then transcribe it.

    Both remote calls go through the retry controller. Any failure surfaces
    as an ``AdapterError``; a partial Transcript is never returned.
    """

    def __init__(
        self,
        resolver: MediaResolver,
        client: SpeechToTextClient,
        retry: RetryController,
        policy: RetryPolicy,
        signed_url_ttl_seconds: int = 3600,
        grouping: SegmentGrouping = SegmentGrouping.WORD,
    ) -> None:
        self._resolver = resolver
        self._client = client
        self._retry = retry
        self._policy = policy
        self._ttl = signed_url_ttl_seconds
        self._grouping = grouping

    async def transcribe(self, media_reference: str, language_hint: str | None) -> Transcript:
        try:
            url = await self._retry.execute(
                lambda: self._resolver.signed_url(media_reference, self._ttl),
                self._policy,
                label="signed URL",
            )
            result = await self._retry.execute(
                lambda: self._client.submit(url, language_hint),
                self._policy,
                label="speech-to-text",
            )
        except Exception as exc:
            raise AdapterExhaustedError(ADAPTER_NAME, str(exc) or type(exc).__name__) from exc

        if result.status != "completed":
            if result.status == "error":
                reason = f"remote job failed: {result.error or 'unknown error'}"
            else:
                reason = f"remote job not completed (status: {result.status})"
            raise RemoteJobFailedError(ADAPTER_NAME, reason)

        transcript = normalize_result(result, language_hint, self._grouping)
        logger.info(
            "Transcribed %s: %d chars, %d segments, %.1fs",
            media_reference,
            len(transcript.text),
            len(transcript.segments),
            transcript.duration_seconds,
        )
        return transcript


class FallbackOnlyTranscriptionAdapter:
    """Selected when no speech-to-text credential is configured."""

    async def transcribe(self, media_reference: str, language_hint: str | None) -> Transcript:
        raise AdapterUnavailableError(ADAPTER_NAME, "speech-to-text is not configured")
