"""Pipeline service: run kickoff, progress lookup, and startup wiring."""

from __future__ import annotations

import asyncio
import logging
import uuid

from supabase import Client

from src.config import Settings
from src.ingestion.storage import (
    InMemoryPersistenceGateway,
    PersistenceGateway,
    SupabaseMediaResolver,
    SupabasePersistenceGateway,
    SupabaseProgressStore,
    get_supabase_client,
)
from src.pipeline.analysis import (
    ContentAnalysisAdapter,
    FallbackOnlyAnalysisAdapter,
    RealContentAnalysisAdapter,
)
from src.pipeline.clients import (
    AnthropicAnalysisClient,
    AssemblyAISpeechClient,
    OpenAIAnalysisClient,
    TextAnalysisClient,
)
from src.pipeline.models import PipelineRun, RetryPolicy
from src.pipeline.orchestrator import PipelineOrchestrator
from src.pipeline.progress import InMemoryProgressStore, ProgressStore, ProgressTracker
from src.pipeline.retry import RetryController, is_retryable_error
from src.pipeline.transcription import (
    FallbackOnlyTranscriptionAdapter,
    RealTranscriptionAdapter,
    TranscriptionAdapter,
)
from src.pipeline_config import AnalysisProvider, PipelineConfig

logger = logging.getLogger(__name__)


class PipelineService:
    """Entry point used by the HTTP layer and the CLI.

    ``start_pipeline`` returns as soon as the run record exists; the run
    itself executes as an independent asyncio task.
    """

    def __init__(self, orchestrator: PipelineOrchestrator, tracker: ProgressTracker) -> None:
        self._orchestrator = orchestrator
        self._tracker = tracker
        self._tasks: dict[str, asyncio.Task[PipelineRun]] = {}

    async def start_pipeline(
        self, project_id: str, media_reference: str, language_hint: str | None = None
    ) -> str:
        run = PipelineRun(
            id=str(uuid.uuid4()),
            project_id=project_id,
            media_reference=media_reference,
            language_hint=language_hint or "en",
        )
        await self._tracker.create(run)

        task = asyncio.create_task(self._orchestrator.run(run), name=f"pipeline-{run.id}")
        self._tasks[run.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run.id, None))
        return run.id

    async def get_progress(self, run_id: str) -> PipelineRun:
        """Current record for ``run_id``. Raises ``RunNotFoundError`` if unknown."""
        return await self._tracker.get(run_id)

    async def wait(self, run_id: str) -> PipelineRun:
        """Wait for an in-flight run to finish and return its final record."""
        task = self._tasks.get(run_id)
        if task is not None:
            return await task
        return await self._tracker.get(run_id)

    async def cancel(self, run_id: str) -> bool:
        """Cancel an in-flight run. The run ends in ``failed``."""
        task = self._tasks.get(run_id)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        run = await self._tracker.get(run_id)
        if not run.stage.is_terminal:
            # Cancelled before the orchestrator took its first step
            await self._tracker.fail(run_id, "cancelled")
        return True

    async def shutdown(self) -> None:
        """Cancel every in-flight run."""
        for run_id in list(self._tasks):
            await self.cancel(run_id)


# ---------------------------------------------------------------------------
# Startup wiring
# ---------------------------------------------------------------------------


def build_retry_policy(config: PipelineConfig, attempt_timeout: float | None) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry_max_attempts,
        initial_delay=config.retry_initial_delay_seconds,
        is_retryable=is_retryable_error,
        backoff=config.retry_backoff.value,
        max_delay=config.retry_max_delay_seconds,
        attempt_timeout=attempt_timeout,
    )


def _analysis_client(settings: Settings, config: PipelineConfig) -> TextAnalysisClient | None:
    if config.analysis_provider is AnalysisProvider.OPENAI:
        if not settings.openai_api_key:
            return None
        return OpenAIAnalysisClient(
            settings.openai_api_key, settings.openai_model, config.analysis_timeout_seconds
        )
    if not settings.anthropic_api_key:
        return None
    return AnthropicAnalysisClient(
        settings.anthropic_api_key, settings.llm_model, config.analysis_timeout_seconds
    )


def _supabase(settings: Settings) -> Client | None:
    if settings.supabase_url and settings.supabase_key:
        return get_supabase_client(settings.supabase_url, settings.supabase_key)
    return None


def _gateway(supabase: Client | None, settings: Settings) -> PersistenceGateway:
    if supabase is None:
        return InMemoryPersistenceGateway()
    return SupabasePersistenceGateway(supabase, settings.projects_table)


def build_persistence_gateway(settings: Settings) -> PersistenceGateway:
    return _gateway(_supabase(settings), settings)


def build_pipeline_service(
    settings: Settings, persistence: PersistenceGateway | None = None
) -> PipelineService:
    """Select real or fallback-only strategies once, from configuration.

    Missing credentials select the fallback-only adapter for that stage;
    missing Supabase settings select in-memory storage. ``persistence``
    replaces the configured gateway.
    """
    config = PipelineConfig.from_settings(settings)
    retry = RetryController()

    supabase = _supabase(settings)
    if supabase is None:
        logger.warning("Supabase is not configured; runs and results are kept in memory")

    transcriber: TranscriptionAdapter
    if settings.assemblyai_api_key and supabase is not None:
        transcriber = RealTranscriptionAdapter(
            resolver=SupabaseMediaResolver(supabase, settings.media_bucket),
            client=AssemblyAISpeechClient(
                settings.assemblyai_api_key,
                settings.speech_model,
                poll_interval=settings.transcription_poll_interval_seconds,
            ),
            retry=retry,
            policy=build_retry_policy(config, config.transcription_timeout_seconds),
            signed_url_ttl_seconds=config.signed_url_ttl_seconds,
            grouping=config.segment_grouping,
        )
    else:
        logger.warning("Speech-to-text is not configured; transcripts will be placeholders")
        transcriber = FallbackOnlyTranscriptionAdapter()

    analyzer: ContentAnalysisAdapter
    client = _analysis_client(settings, config)
    if client is not None:
        analyzer = RealContentAnalysisAdapter(
            client, retry, build_retry_policy(config, config.analysis_timeout_seconds)
        )
    else:
        logger.warning("Text analysis is not configured; analyses will be placeholders")
        analyzer = FallbackOnlyAnalysisAdapter()

    store: ProgressStore
    if supabase is not None:
        store = SupabaseProgressStore(supabase, settings.runs_table)
    else:
        store = InMemoryProgressStore()
    if persistence is None:
        persistence = _gateway(supabase, settings)

    tracker = ProgressTracker(store)
    orchestrator = PipelineOrchestrator(transcriber, analyzer, persistence, tracker)
    return PipelineService(orchestrator, tracker)
