"""Shared fakes for pipeline tests. No external services are contacted."""

from __future__ import annotations

from typing import Any

import pytest

from src.pipeline.errors import PersistenceError
from src.pipeline.models import (
    ContentAnalysis,
    PipelineRun,
    RetryPolicy,
    SpeechToTextResult,
    Stage,
    Transcript,
    WordTiming,
)
from src.pipeline.progress import InMemoryProgressStore, ProgressTracker
from src.pipeline.retry import RetryController, is_retryable_error

HAPPY_RESULT = SpeechToTextResult(
    status="completed",
    text="hello world",
    words=(
        WordTiming(text="hello", start_ms=0, end_ms=400, confidence=0.9),
        WordTiming(text="world", start_ms=400, end_ms=900, confidence=0.95),
    ),
    language_code="en",
    duration_seconds=0.9,
)

ANALYSIS_PAYLOAD: dict[str, Any] = {
    "keywords": ["greeting", "world"],
    "topics": ["Greetings"],
    "summary": "A short greeting.",
    "sentiment": "positive",
    "keyMoments": [{"timestamp": 0, "description": "Hello"}],
}


class FakeResolver:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def signed_url(self, locator: str, ttl_seconds: int) -> str:
        self.calls.append((locator, ttl_seconds))
        if self.error is not None:
            raise self.error
        return f"https://signed.example/{locator}?token=abc"


class FakeSpeechClient:
    """Returns (or raises) the queued outcomes in order; repeats the last one."""

    def __init__(self, *outcomes: SpeechToTextResult | Exception) -> None:
        self.outcomes = list(outcomes) or [HAPPY_RESULT]
        self.calls: list[tuple[str, str | None]] = []

    async def submit(self, url: str, language_hint: str | None) -> SpeechToTextResult:
        self.calls.append((url, language_hint))
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeAnalysisClient:
    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes) or [ANALYSIS_PAYLOAD]
        self.calls: list[str] = []

    async def submit(self, text: str) -> Any:
        self.calls.append(text)
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeGateway:
    """Persistence double. ``fail_times`` leading saves raise PersistenceError."""

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.calls: list[tuple[str, Transcript, ContentAnalysis | None]] = []

    async def save(
        self, project_id: str, transcript: Transcript, analysis: ContentAnalysis | None
    ) -> None:
        self.calls.append((project_id, transcript, analysis))
        if len(self.calls) <= self.fail_times:
            raise PersistenceError("database unavailable")


class RecordingTracker(ProgressTracker):
    """ProgressTracker that also records every checkpoint it is asked to apply."""

    def __init__(self) -> None:
        super().__init__(InMemoryProgressStore())
        self.checkpoints: list[tuple[int, Stage]] = []

    async def update(self, run_id: str, percent: int, stage: Stage) -> PipelineRun:
        self.checkpoints.append((percent, stage))
        return await super().update(run_id, percent, stage)

    @property
    def percents(self) -> list[int]:
        return [percent for percent, _ in self.checkpoints]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry(sleep: RecordingSleep) -> RetryController:
    return RetryController(sleep=sleep)


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_delay=5.0, is_retryable=is_retryable_error)


@pytest.fixture
def tracker() -> RecordingTracker:
    return RecordingTracker()


@pytest.fixture
def new_run():
    def _make(run_id: str = "run-1", media_reference: str = "ref-A") -> PipelineRun:
        return PipelineRun(id=run_id, project_id="project-1", media_reference=media_reference)

    return _make
