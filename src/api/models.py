"""Pydantic request/response schemas for the pipeline API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.pipeline.models import PipelineRun, Stage


class StartPipelineRequest(BaseModel):
    """Request body for POST /api/pipeline."""

    project_id: str = Field(min_length=1)
    media_reference: str = Field(min_length=1)
    language_hint: str | None = None


class StartPipelineResponse(BaseModel):
    run_id: str


class ProgressResponse(BaseModel):
    """Response body for GET /api/pipeline/{run_id}."""

    run_id: str
    project_id: str
    stage: Stage
    percent: int
    degraded: bool = False
    failure_reason: str | None = None
    diagnostics: list[str] = []
    started_at: datetime
    updated_at: datetime

    @classmethod
    def from_run(cls, run: PipelineRun) -> ProgressResponse:
        return cls(
            run_id=run.id,
            project_id=run.project_id,
            stage=run.stage,
            percent=run.percent,
            degraded=run.degraded,
            failure_reason=run.failure_reason,
            diagnostics=list(run.diagnostics),
            started_at=run.started_at,
            updated_at=run.updated_at,
        )
