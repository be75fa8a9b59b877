"""Pipeline configuration: strategy enums and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.config import Settings


class SegmentGrouping(str, Enum):
    """How recognised words are grouped into transcript segments."""

    WORD = "word"
    SUBTITLE = "subtitle"


class AnalysisProvider(str, Enum):
    """Available text-analysis backends."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class BackoffStrategy(str, Enum):
    """Delay growth between retry attempts."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for one pipeline process.

    Built once at startup and handed to the adapters and the retry
    controller. Defaults mirror the production behaviour (three attempts,
    5s linear backoff, word-level segments).
    """

    retry_max_attempts: int = 3
    retry_initial_delay_seconds: float = 5.0
    retry_backoff: BackoffStrategy = BackoffStrategy.LINEAR
    retry_max_delay_seconds: float = 60.0
    transcription_timeout_seconds: float = 600.0
    analysis_timeout_seconds: float = 120.0
    signed_url_ttl_seconds: int = 3600
    segment_grouping: SegmentGrouping = SegmentGrouping.WORD
    analysis_provider: AnalysisProvider = AnalysisProvider.ANTHROPIC

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            retry_max_attempts=settings.retry_max_attempts,
            retry_initial_delay_seconds=settings.retry_initial_delay_seconds,
            retry_backoff=BackoffStrategy(settings.retry_backoff),
            retry_max_delay_seconds=settings.retry_max_delay_seconds,
            transcription_timeout_seconds=settings.transcription_timeout_seconds,
            analysis_timeout_seconds=settings.analysis_timeout_seconds,
            signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
            segment_grouping=SegmentGrouping(settings.segment_grouping),
            analysis_provider=AnalysisProvider(settings.analysis_provider),
        )
