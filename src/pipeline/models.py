"""Data models for the media ingestion pipeline."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class Stage(StrEnum):
    """Position of a run in the pipeline state machine."""

    QUEUED = "queued"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.COMPLETED, Stage.FAILED)


class Sentiment(StrEnum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Segment:
    """A time-aligned slice of a transcript. Offsets are in seconds."""

    id: str
    start: float
    end: float
    text: str
    confidence: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Transcript:
    """Normalized speech-to-text output.

    ``segments`` is ordered by ``start`` and never overlaps, for real and
    fallback transcripts alike.
    """

    text: str
    segments: tuple[Segment, ...] = ()
    language_code: str = "en"
    duration_seconds: float = 0.0
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "segments": [s.to_dict() for s in self.segments],
            "language_code": self.language_code,
            "duration_seconds": self.duration_seconds,
            "is_fallback": self.is_fallback,
        }


@dataclass(frozen=True)
class KeyMoment:
    timestamp: float
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "description": self.description}


@dataclass(frozen=True)
class ContentSuggestions:
    """Repurposing ideas returned alongside the analysis."""

    blog_post_ideas: tuple[str, ...] = ()
    social_media_hooks: tuple[str, ...] = ()
    short_form_content: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "blog_post_ideas": list(self.blog_post_ideas),
            "social_media_hooks": list(self.social_media_hooks),
            "short_form_content": list(self.short_form_content),
        }


@dataclass(frozen=True)
class ContentAnalysis:
    """Normalized text-analysis output, always derived from one Transcript.

    ``keywords`` holds no duplicates; ``topics`` is in importance order and
    ``key_moments`` in timestamp order.
    """

    keywords: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()
    summary: str = ""
    sentiment: Sentiment = Sentiment.NEUTRAL
    key_moments: tuple[KeyMoment, ...] = ()
    content_suggestions: ContentSuggestions = field(default_factory=ContentSuggestions)
    analyzed_at: datetime = field(default_factory=utcnow)
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "keywords": list(self.keywords),
            "topics": list(self.topics),
            "summary": self.summary,
            "sentiment": self.sentiment.value,
            "key_moments": [m.to_dict() for m in self.key_moments],
            "content_suggestions": self.content_suggestions.to_dict(),
            "analyzed_at": self.analyzed_at.isoformat(),
            "is_fallback": self.is_fallback,
        }


@dataclass
class PipelineRun:
    """One execution of the pipeline for one media item.

    Only the orchestrator mutates a run, and only through the progress
    tracker. ``percent`` never decreases; a failed run keeps the percent of
    its last confirmed checkpoint.
    """

    id: str
    project_id: str
    media_reference: str
    language_hint: str = "en"
    stage: Stage = Stage.QUEUED
    percent: int = 0
    started_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    failure_reason: str | None = None
    diagnostics: list[str] = field(default_factory=list)
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "media_reference": self.media_reference,
            "language_hint": self.language_hint,
            "stage": self.stage.value,
            "percent": self.percent,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "failure_reason": self.failure_reason,
            "diagnostics": list(self.diagnostics),
            "degraded": self.degraded,
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> PipelineRun:
        return cls(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            media_reference=row["media_reference"],
            language_hint=row.get("language_hint") or "en",
            stage=Stage(row.get("stage", Stage.QUEUED)),
            percent=int(row.get("percent", 0)),
            started_at=_parse_datetime(row.get("started_at")),
            updated_at=_parse_datetime(row.get("updated_at")),
            failure_reason=row.get("failure_reason"),
            diagnostics=list(row.get("diagnostics") or []),
            degraded=bool(row.get("degraded", False)),
        )


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return utcnow()


@dataclass(frozen=True)
class RetryPolicy:
    """How the retry controller treats one class of remote call.

    ``backoff`` is ``"linear"`` (``initial_delay * attempt``) or
    ``"exponential"`` (``initial_delay * 2 ** (attempt - 1)``); either is
    capped by ``max_delay``. ``attempt_timeout`` bounds each single attempt.
    """

    max_attempts: int
    initial_delay: float
    is_retryable: Callable[[BaseException], bool]
    backoff: str = "linear"
    max_delay: float = 60.0
    attempt_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must not be negative")
        if self.backoff not in ("linear", "exponential"):
            raise ValueError(f"Unknown backoff strategy: {self.backoff}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        if self.backoff == "exponential":
            delay = self.initial_delay * 2 ** (attempt - 1)
        else:
            delay = self.initial_delay * attempt
        return min(delay, self.max_delay)


@dataclass(frozen=True)
class WordTiming:
    """One recognised word as reported by the speech-to-text service (ms)."""

    text: str
    start_ms: int
    end_ms: int
    confidence: float = 1.0


@dataclass(frozen=True)
class SpeechToTextResult:
    """Raw result of a speech-to-text submission, before normalization."""

    status: str
    text: str = ""
    words: tuple[WordTiming, ...] = ()
    language_code: str | None = None
    duration_seconds: float | None = None
    error: str | None = None
