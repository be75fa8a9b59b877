"""Per-run progress tracking.

The tracker is the only writer of PipelineRun records. Writes for one run
are serialised behind a per-run lock and awaited by the caller, so a
checkpoint is durable before the orchestrator moves past it.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from src.pipeline.errors import ProgressRegressionError, RunNotFoundError
from src.pipeline.models import PipelineRun, Stage, utcnow

logger = logging.getLogger(__name__)


class ProgressStore(Protocol):
    async def load(self, run_id: str) -> PipelineRun | None: ...

    async def save(self, run: PipelineRun) -> None: ...


class InMemoryProgressStore:
    """Process-local store. Returns copies so callers cannot mutate stored runs."""

    def __init__(self) -> None:
        self._runs: dict[str, PipelineRun] = {}

    async def load(self, run_id: str) -> PipelineRun | None:
        run = self._runs.get(run_id)
        return copy.deepcopy(run) if run is not None else None

    async def save(self, run: PipelineRun) -> None:
        self._runs[run.id] = copy.deepcopy(run)


class ProgressTracker:
    def __init__(self, store: ProgressStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, run_id: str) -> asyncio.Lock:
        lock = self._locks.get(run_id)
        if lock is None:
            lock = self._locks[run_id] = asyncio.Lock()
        return lock

    def _release(self, run_id: str) -> None:
        """Forget the lock of a run that takes no further writes."""
        self._locks.pop(run_id, None)

    async def _load(self, run_id: str) -> PipelineRun:
        run = await self._store.load(run_id)
        if run is None:
            self._release(run_id)
            raise RunNotFoundError(run_id)
        return run

    async def create(self, run: PipelineRun) -> PipelineRun:
        """Persist a new run in the ``queued`` stage at 0%."""
        async with self._lock(run.id):
            if await self._store.load(run.id) is not None:
                raise ValueError(f"Pipeline run {run.id} already exists")
            run.stage = Stage.QUEUED
            run.percent = 0
            run.started_at = run.updated_at = self._clock()
            await self._store.save(run)
        logger.info("Run %s queued for project %s", run.id, run.project_id)
        return run

    async def get(self, run_id: str) -> PipelineRun:
        return await self._load(run_id)

    async def update(self, run_id: str, percent: int, stage: Stage) -> PipelineRun:
        """Record a checkpoint.

        Re-applying the current ``(percent, stage)`` is a no-op. Moving the
        percent backwards, or touching a terminal run, raises
        ``ProgressRegressionError``.
        """
        if not 0 <= percent <= 100:
            raise ValueError(f"percent must be within 0-100, got {percent}")
        if stage is Stage.FAILED:
            raise ValueError("use fail() to mark a run as failed")
        if stage is Stage.COMPLETED and percent != 100:
            raise ValueError("a completed run must be at 100%")

        async with self._lock(run_id):
            run = await self._load(run_id)
            if run.percent == percent and run.stage is stage:
                if stage.is_terminal:
                    self._release(run_id)
                return run
            if run.stage.is_terminal:
                self._release(run_id)
                raise ProgressRegressionError(
                    f"Run {run_id} is already {run.stage.value}; cannot move to {stage.value}"
                )
            if percent < run.percent:
                raise ProgressRegressionError(
                    f"Run {run_id} cannot move from {run.percent}% back to {percent}%"
                )
            run.percent = percent
            run.stage = stage
            run.updated_at = self._clock()
            await self._store.save(run)

        if stage is Stage.COMPLETED:
            self._release(run_id)

        logger.info("Run %s: %s %d%%", run_id, stage.value, percent)
        return run

    async def note(self, run_id: str, reason: str) -> PipelineRun:
        """Record why fallback output was used. Marks the run as degraded."""
        async with self._lock(run_id):
            run = await self._load(run_id)
            run.diagnostics.append(reason)
            run.degraded = True
            run.updated_at = self._clock()
            await self._store.save(run)
            if run.stage.is_terminal:
                self._release(run_id)
        return run

    async def fail(self, run_id: str, reason: str) -> PipelineRun:
        """Move a run to ``failed``, keeping the percent of its last checkpoint."""
        async with self._lock(run_id):
            run = await self._load(run_id)
            if run.stage.is_terminal:
                self._release(run_id)
            if run.stage is Stage.FAILED:
                return run
            if run.stage is Stage.COMPLETED:
                raise ProgressRegressionError(f"Run {run_id} already completed")
            run.stage = Stage.FAILED
            run.failure_reason = reason
            run.updated_at = self._clock()
            await self._store.save(run)

        self._release(run_id)

        logger.warning("Run %s failed at %d%%: %s", run_id, run.percent, reason)
        return run
