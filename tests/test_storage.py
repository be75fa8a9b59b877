"""Tests for the Supabase storage helpers, with the Supabase client mocked."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from src.ingestion.storage import (
    InMemoryPersistenceGateway,
    SupabaseMediaResolver,
    SupabasePersistenceGateway,
    SupabaseProgressStore,
    storage_path,
)
from src.pipeline.errors import MediaReferenceError, PersistenceError
from src.pipeline.fallback import fallback_analysis, fallback_transcript
from src.pipeline.models import PipelineRun, Stage


class TestStoragePath:
    @pytest.mark.parametrize(
        ("locator", "expected"),
        [
            ("u1/a.mp4", "u1/a.mp4"),
            ("videos/u1/a.mp4", "u1/a.mp4"),
            ("https://x.supabase.co/storage/v1/object/public/videos/u1/a.mp4", "u1/a.mp4"),
            ("https://x.supabase.co/storage/v1/object/sign/videos/u1/a.mp4?token=t", "u1/a.mp4"),
        ],
    )
    def test_locators(self, locator: str, expected: str) -> None:
        assert storage_path(locator, "videos") == expected


class TestSupabaseMediaResolver:
    @pytest.mark.asyncio
    async def test_signs_object_path(self) -> None:
        client = MagicMock()
        bucket = client.storage.from_.return_value
        bucket.create_signed_url.return_value = {"signedURL": "https://signed/u1/a.mp4?token=t"}

        url = await SupabaseMediaResolver(client, "videos").signed_url("videos/u1/a.mp4", 600)

        assert url == "https://signed/u1/a.mp4?token=t"
        client.storage.from_.assert_called_with("videos")
        bucket.create_signed_url.assert_called_once_with("u1/a.mp4", 600)

    @pytest.mark.asyncio
    async def test_missing_object_is_a_reference_error(self) -> None:
        client = MagicMock()
        client.storage.from_.return_value.create_signed_url.side_effect = RuntimeError(
            "Object not found"
        )
        with pytest.raises(MediaReferenceError, match="Object not found"):
            await SupabaseMediaResolver(client, "videos").signed_url("u1/missing.mp4", 600)

    @pytest.mark.asyncio
    async def test_transient_errors_propagate_unchanged(self) -> None:
        client = MagicMock()
        client.storage.from_.return_value.create_signed_url.side_effect = ConnectionResetError()
        with pytest.raises(ConnectionResetError):
            await SupabaseMediaResolver(client, "videos").signed_url("u1/a.mp4", 600)

    @pytest.mark.asyncio
    async def test_empty_locator(self) -> None:
        with pytest.raises(MediaReferenceError):
            await SupabaseMediaResolver(MagicMock(), "videos").signed_url("videos/", 600)


class TestSupabasePersistenceGateway:
    @staticmethod
    def _client(data) -> MagicMock:
        client = MagicMock()
        query = client.table.return_value.update.return_value.eq.return_value
        query.execute.return_value = SimpleNamespace(data=data)
        return client

    @pytest.mark.asyncio
    async def test_writes_transcript_and_analysis(self) -> None:
        client = self._client([{"id": "project-1"}])
        gateway = SupabasePersistenceGateway(client, "projects")

        await gateway.save("project-1", fallback_transcript("ref", "en"), fallback_analysis())

        client.table.assert_called_with("projects")
        payload = client.table.return_value.update.call_args.args[0]
        assert payload["transcription"]["is_fallback"] is True
        assert payload["content_analysis"]["sentiment"] == "positive"
        client.table.return_value.update.return_value.eq.assert_called_with("id", "project-1")

    @pytest.mark.asyncio
    async def test_transcript_only_omits_analysis(self) -> None:
        client = self._client([{"id": "project-1"}])
        await SupabasePersistenceGateway(client).save(
            "project-1", fallback_transcript("ref", "en"), None
        )
        payload = client.table.return_value.update.call_args.args[0]
        assert "content_analysis" not in payload

    @pytest.mark.asyncio
    async def test_unknown_project(self) -> None:
        client = self._client([])
        with pytest.raises(PersistenceError, match="not found"):
            await SupabasePersistenceGateway(client).save(
                "nope", fallback_transcript("ref", "en"), None
            )

    @pytest.mark.asyncio
    async def test_api_error_becomes_persistence_error(self) -> None:
        client = MagicMock()
        query = client.table.return_value.update.return_value.eq.return_value
        query.execute.side_effect = APIError({"message": "permission denied", "code": "42501"})
        with pytest.raises(PersistenceError, match="permission denied"):
            await SupabasePersistenceGateway(client).save(
                "project-1", fallback_transcript("ref", "en"), None
            )


class TestSupabaseProgressStore:
    @pytest.mark.asyncio
    async def test_load_round_trips_run(self) -> None:
        run = PipelineRun(
            id="run-1",
            project_id="project-1",
            media_reference="u1/a.mp4",
            stage=Stage.ANALYZING,
            percent=60,
        )
        client = MagicMock()
        select = client.table.return_value.select.return_value.eq.return_value
        select.execute.return_value = SimpleNamespace(data=[run.to_dict()])

        loaded = await SupabaseProgressStore(client).load("run-1")

        assert loaded == run
        client.table.assert_called_with("pipeline_runs")

    @pytest.mark.asyncio
    async def test_load_missing(self) -> None:
        client = MagicMock()
        select = client.table.return_value.select.return_value.eq.return_value
        select.execute.return_value = SimpleNamespace(data=[])
        assert await SupabaseProgressStore(client).load("run-1") is None

    @pytest.mark.asyncio
    async def test_save_upserts(self) -> None:
        client = MagicMock()
        run = PipelineRun(id="run-1", project_id="project-1", media_reference="u1/a.mp4")
        await SupabaseProgressStore(client, "runs").save(run)
        client.table.assert_called_with("runs")
        assert client.table.return_value.upsert.call_args.args[0]["id"] == "run-1"


@pytest.mark.asyncio
async def test_in_memory_gateway_keeps_latest_payload() -> None:
    gateway = InMemoryPersistenceGateway()
    await gateway.save("project-1", fallback_transcript("ref", "en"), fallback_analysis())
    await gateway.save("project-1", fallback_transcript("ref", "en"), None)
    assert "content_analysis" not in gateway.saved["project-1"]
