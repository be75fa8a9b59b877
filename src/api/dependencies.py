"""FastAPI dependency providers."""

from __future__ import annotations

from functools import lru_cache

from src.config import settings
from src.pipeline.service import PipelineService, build_pipeline_service


@lru_cache(maxsize=1)
def get_pipeline_service() -> PipelineService:
    """Process-wide PipelineService, built from settings on first use."""
    return build_pipeline_service(settings)
