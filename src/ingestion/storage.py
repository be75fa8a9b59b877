"""Supabase storage helpers: signed media URLs, project persistence, run records.

supabase-py is synchronous, so every call runs in a worker thread to keep the
event loop free for other runs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, cast

from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.pipeline.errors import MediaReferenceError, PersistenceError
from src.pipeline.models import ContentAnalysis, PipelineRun, Transcript, utcnow
from src.pipeline.retry import is_retryable_error

logger = logging.getLogger(__name__)

# Path prefixes Supabase uses for object URLs, ahead of "<bucket>/<path>"
_OBJECT_URL_MARKERS = (
    "/storage/v1/object/public/",
    "/storage/v1/object/authenticated/",
    "/storage/v1/object/sign/",
    "/storage/v1/object/",
)


def get_supabase_client(url: str, key: str) -> Client:
    """Create and return a Supabase client."""
    return create_client(url, key)


class PersistenceGateway(Protocol):
    async def save(
        self, project_id: str, transcript: Transcript, analysis: ContentAnalysis | None
    ) -> None: ...


def storage_path(locator: str, bucket: str) -> str:
    """Object path inside ``bucket`` for a public/authenticated URL or a bare path.

    >>> storage_path("https://x.supabase.co/storage/v1/object/public/videos/u1/a.mp4", "videos")
    'u1/a.mp4'
    """
    path = locator.split("?", 1)[0]
    for marker in _OBJECT_URL_MARKERS:
        if marker in path:
            path = path.split(marker, 1)[1]
            break
    path = path.lstrip("/")
    if path.startswith(f"{bucket}/"):
        path = path[len(bucket) + 1 :]
    return path


class SupabaseMediaResolver:
    """Exchange an internal media locator for a short-lived signed URL."""

    def __init__(self, client: Client, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    async def signed_url(self, locator: str, ttl_seconds: int) -> str:
        path = storage_path(locator, self._bucket)
        if not path:
            raise MediaReferenceError(f"Cannot derive a storage path from {locator!r}")

        try:
            data = await asyncio.to_thread(
                self._client.storage.from_(self._bucket).create_signed_url, path, ttl_seconds
            )
        except Exception as exc:
            if is_retryable_error(exc):
                raise
            raise MediaReferenceError(f"Failed to sign {self._bucket}/{path}: {exc}") from exc

        url = (data or {}).get("signedURL") or (data or {}).get("signedUrl")
        if not url:
            raise MediaReferenceError(f"No signed URL returned for {self._bucket}/{path}")
        logger.info("Signed URL created for %s/%s (ttl %ds)", self._bucket, path, ttl_seconds)
        return cast(str, url)


class SupabasePersistenceGateway:
    """Write the transcript (and analysis, when present) onto the project row."""

    def __init__(self, client: Client, table: str = "projects") -> None:
        self._client = client
        self._table = table

    async def save(
        self, project_id: str, transcript: Transcript, analysis: ContentAnalysis | None
    ) -> None:
        payload: dict[str, Any] = {
            "transcription": transcript.to_dict(),
            "updated_at": utcnow().isoformat(),
        }
        if analysis is not None:
            payload["content_analysis"] = analysis.to_dict()

        def _update() -> Any:
            return self._client.table(self._table).update(payload).eq("id", project_id).execute()

        try:
            result = await asyncio.to_thread(_update)
        except APIError as exc:
            raise PersistenceError(f"Supabase rejected update of {project_id}: {exc.message}") from exc
        except Exception as exc:
            raise PersistenceError(f"Failed to update project {project_id}: {exc}") from exc

        if not result.data:
            raise PersistenceError(f"Project {project_id} not found")


class SupabaseProgressStore:
    """PipelineRun records in a Supabase table, keyed by run id."""

    def __init__(self, client: Client, table: str = "pipeline_runs") -> None:
        self._client = client
        self._table = table

    async def load(self, run_id: str) -> PipelineRun | None:
        def _select() -> Any:
            return self._client.table(self._table).select("*").eq("id", run_id).execute()

        result = await asyncio.to_thread(_select)
        rows = cast(list[dict[str, Any]], result.data)
        if not rows:
            return None
        return PipelineRun.from_dict(rows[0])

    async def save(self, run: PipelineRun) -> None:
        row = run.to_dict()
        await asyncio.to_thread(
            lambda: self._client.table(self._table).upsert(row).execute()
        )


class InMemoryPersistenceGateway:
    """Keeps saved payloads in a dict. Used when Supabase is not configured."""

    def __init__(self) -> None:
        self.saved: dict[str, dict[str, Any]] = {}

    async def save(
        self, project_id: str, transcript: Transcript, analysis: ContentAnalysis | None
    ) -> None:
        record: dict[str, Any] = {"transcription": transcript.to_dict()}
        if analysis is not None:
            record["content_analysis"] = analysis.to_dict()
        self.saved[project_id] = record
        logger.info("Stored results for project %s in memory", project_id)
