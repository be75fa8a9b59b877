"""Pipeline orchestrator: transcribe -> analyze -> persist, one run at a time.

Checkpoints, in order:

====================  =======  ============
point                 percent  stage
====================  =======  ============
started               10       transcribing
transcript obtained   60       analyzing
transcript fallback   30       transcribing
analysis settled      80       analyzing
about to persist      90       persisting
persisted             100      completed
====================  =======  ============

Adapter failures degrade the run to fallback output instead of aborting it.
Only a failed transcript-only write ends the run in ``failed``.
"""

from __future__ import annotations

import asyncio
import logging

from src.ingestion.storage import PersistenceGateway
from src.pipeline.analysis import ContentAnalysisAdapter
from src.pipeline.errors import AdapterError, PersistenceError
from src.pipeline.fallback import fallback_analysis, fallback_transcript
from src.pipeline.models import ContentAnalysis, PipelineRun, Stage, Transcript
from src.pipeline.progress import ProgressTracker
from src.pipeline.transcription import TranscriptionAdapter

logger = logging.getLogger(__name__)

CHECKPOINT_STARTED = 10
CHECKPOINT_TRANSCRIPT_FALLBACK = 30
CHECKPOINT_TRANSCRIBED = 60
CHECKPOINT_ANALYZED = 80
CHECKPOINT_PERSISTING = 90
CHECKPOINT_COMPLETED = 100


class PipelineOrchestrator:
    def __init__(
        self,
        transcriber: TranscriptionAdapter,
        analyzer: ContentAnalysisAdapter,
        persistence: PersistenceGateway,
        tracker: ProgressTracker,
    ) -> None:
        self._transcriber = transcriber
        self._analyzer = analyzer
        self._persistence = persistence
        self._tracker = tracker

    async def run(self, run: PipelineRun) -> PipelineRun:
        """Drive ``run`` (already created in the tracker) to a terminal stage.

        Returns the final run record. Cancellation marks the run failed and
        propagates; no other error escapes.
        """
        try:
            return await self._execute(run)
        except asyncio.CancelledError:
            logger.warning("Run %s cancelled", run.id)
            await asyncio.shield(self._tracker.fail(run.id, "cancelled"))
            raise
        except PersistenceError as exc:
            logger.error("Run %s could not persist results: %s", run.id, exc)
            return await self._tracker.fail(run.id, f"persistence failed: {exc}")
        except Exception as exc:
            logger.exception("Run %s failed unexpectedly", run.id)
            return await self._tracker.fail(run.id, f"unexpected error: {exc}")

    async def _execute(self, run: PipelineRun) -> PipelineRun:
        await self._tracker.update(run.id, CHECKPOINT_STARTED, Stage.TRANSCRIBING)

        transcript = await self._transcribe(run)
        analysis = await self._analyze(run, transcript)
        await self._tracker.update(run.id, CHECKPOINT_ANALYZED, Stage.ANALYZING)

        await self._tracker.update(run.id, CHECKPOINT_PERSISTING, Stage.PERSISTING)
        await self._persist(run, transcript, analysis)

        final = await self._tracker.update(run.id, CHECKPOINT_COMPLETED, Stage.COMPLETED)
        logger.info(
            "Run %s completed for project %s%s",
            run.id,
            run.project_id,
            " (degraded)" if final.degraded else "",
        )
        return final

    async def _transcribe(self, run: PipelineRun) -> Transcript:
        try:
            transcript = await self._transcriber.transcribe(run.media_reference, run.language_hint)
        except AdapterError as exc:
            logger.warning("Run %s: using fallback transcript (%s)", run.id, exc)
            await self._tracker.note(run.id, f"transcription fallback: {exc.reason}")
            await self._tracker.update(
                run.id, CHECKPOINT_TRANSCRIPT_FALLBACK, Stage.TRANSCRIBING
            )
            return fallback_transcript(run.media_reference, run.language_hint)

        await self._tracker.update(run.id, CHECKPOINT_TRANSCRIBED, Stage.ANALYZING)
        return transcript

    async def _analyze(self, run: PipelineRun, transcript: Transcript) -> ContentAnalysis:
        if transcript.is_fallback:
            # Placeholder text is never sent for analysis
            logger.info("Run %s: fallback transcript, skipping content analysis", run.id)
            return fallback_analysis()

        try:
            analysis = await self._analyzer.analyze(transcript)
        except AdapterError as exc:
            logger.warning("Run %s: using fallback analysis (%s)", run.id, exc)
            await self._tracker.note(run.id, f"analysis fallback: {exc.reason}")
            return fallback_analysis()

        if analysis is None:
            await self._tracker.note(run.id, "analysis skipped: empty transcript")
            return fallback_analysis()
        return analysis

    async def _persist(
        self, run: PipelineRun, transcript: Transcript, analysis: ContentAnalysis
    ) -> None:
        try:
            await self._persistence.save(run.project_id, transcript, analysis)
            return
        except PersistenceError as exc:
            logger.warning(
                "Run %s: full save failed (%s); retrying with transcript only", run.id, exc
            )

        # A second failure propagates and fails the run at the last checkpoint.
        await self._persistence.save(run.project_id, transcript, None)
        await self._tracker.note(run.id, "analysis dropped: saved transcript only")
