"""Pipeline endpoints: start a run, poll its progress, cancel it."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from src.api.dependencies import get_pipeline_service
from src.api.models import ProgressResponse, StartPipelineRequest, StartPipelineResponse
from src.pipeline.errors import RunNotFoundError
from src.pipeline.service import PipelineService

router = APIRouter()


@router.post("/api/pipeline", response_model=StartPipelineResponse, status_code=202)
async def start_pipeline(
    request: StartPipelineRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> StartPipelineResponse:
    """Kick off a pipeline run for an uploaded media item.

    Returns immediately with the run id; poll ``GET /api/pipeline/{run_id}``
    for progress. Results are written to the project record.
    """
    run_id = await service.start_pipeline(
        request.project_id, request.media_reference, request.language_hint
    )
    return StartPipelineResponse(run_id=run_id)


@router.get("/api/pipeline/{run_id}", response_model=ProgressResponse)
async def get_progress(
    run_id: str, service: PipelineService = Depends(get_pipeline_service)
) -> ProgressResponse:
    try:
        run = await service.get_progress(run_id)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail=f"Pipeline run {run_id} not found") from None
    return ProgressResponse.from_run(run)


@router.delete("/api/pipeline/{run_id}", status_code=204)
async def cancel_pipeline(
    run_id: str, service: PipelineService = Depends(get_pipeline_service)
) -> None:
    """Cancel an in-flight run; it ends in ``failed`` with reason ``cancelled``."""
    if not await service.cancel(run_id):
        raise HTTPException(status_code=404, detail=f"No in-flight run {run_id}")
