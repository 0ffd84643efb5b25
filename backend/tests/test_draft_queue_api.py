"""Tests for draft queue endpoints."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from drafting.models import TranscriptItemInput
from drafting.services import draft_queue as draft_queue_module
from drafting.services.draft_queue import DraftQueue
from drafting.services.storage import PROJECTS, InMemoryStorage
from drafting.services.transcript_store import TranscriptStore


@pytest_asyncio.fixture
async def api_queue(app_storage: InMemoryStorage, llm, telemetry, progress) -> DraftQueue:
    """Queue bound to the application storage with stubbed collaborators."""
    await app_storage.insert(PROJECTS, {"_id": "proj-1", "title": "Founder memoir"})
    queue = DraftQueue(app_storage, llm_client=llm, telemetry=telemetry, progress=progress)
    draft_queue_module.set_draft_queue(queue)
    return queue


class TestEnqueue:
    """Tests for POST /api/projects/{project_id}/draft-jobs."""

    @pytest.mark.asyncio
    async def test_enqueue_returns_accepted_job(self, client: AsyncClient, api_queue: DraftQueue) -> None:
        response = await client.post(
            "/api/projects/proj-1/draft-jobs",
            json={"session_id": "sess-1", "summary": "Draft intro", "urgency": "high"},
        )

        assert response.status_code == 202
        job = response.json()["data"]
        assert job["status"] == "queued"
        assert job["attempt_count"] == 0
        assert job["urgency"] == "high"

    @pytest.mark.asyncio
    async def test_second_request_coalesces(self, client: AsyncClient, api_queue: DraftQueue) -> None:
        first = await client.post("/api/projects/proj-1/draft-jobs", json={"session_id": "sess-1", "summary": "a"})
        second = await client.post("/api/projects/proj-1/draft-jobs", json={"session_id": "sess-1", "summary": "b"})
        assert first.json()["data"]["id"] == second.json()["data"]["id"]

    @pytest.mark.asyncio
    async def test_missing_session_id(self, client: AsyncClient, api_queue: DraftQueue) -> None:
        response = await client.post("/api/projects/proj-1/draft-jobs", json={"summary": "a"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, client: AsyncClient, api_queue: DraftQueue) -> None:
        response = await client.post(
            "/api/projects/proj-1/draft-jobs", json={"session_id": "s", "priority": 1}
        )
        assert response.status_code == 400


class TestQueueState:
    @pytest.mark.asyncio
    async def test_state_shows_active_job(self, client: AsyncClient, api_queue: DraftQueue) -> None:
        await client.post("/api/projects/proj-1/draft-jobs", json={"session_id": "sess-1"})

        response = await client.get("/api/projects/proj-1/draft-queue")

        state = response.json()["data"]
        assert state["active_job"]["status"] == "queued"
        assert len(state["jobs"]) == 1
        assert state["latest_transcript"] is None


class TestProcess:
    """Tests for POST /api/draft-queue/process."""

    @pytest.mark.asyncio
    async def test_process_completes_job(
        self, client: AsyncClient, api_queue: DraftQueue, app_storage: InMemoryStorage
    ) -> None:
        await TranscriptStore(app_storage).ingest(
            "proj-1", "sess-1", TranscriptItemInput(id="i1", role="user", text="We started in a garage.")
        )
        await client.post("/api/projects/proj-1/draft-jobs", json={"session_id": "sess-1"})

        response = await client.post("/api/draft-queue/process", json={"limit": 2})

        results = response.json()["data"]
        assert [result["processed"] for result in results] == [True, False]
        assert results[1]["reason"] == "empty"

        workspace = await client.get("/api/projects/proj-1/document")
        assert [s["heading"] for s in workspace.json()["data"]["sections"]] == ["Introduction", "Growth"]

    @pytest.mark.asyncio
    async def test_dry_run(self, client: AsyncClient, api_queue: DraftQueue, app_storage: InMemoryStorage) -> None:
        await client.post("/api/projects/proj-1/draft-jobs", json={"session_id": "sess-1"})

        response = await client.post("/api/draft-queue/process", json={"dry_run": True})

        assert response.json()["data"][0]["reason"] == "dry-run"
        assert (await api_queue.get_active_job("proj-1")).attempt_count == 0

    @pytest.mark.asyncio
    async def test_empty_body_and_empty_queue(self, client: AsyncClient, api_queue: DraftQueue) -> None:
        response = await client.post("/api/draft-queue/process")
        assert response.status_code == 200
        assert response.json()["data"] == [{"processed": False, "reason": "empty", "job_id": None}]

    @pytest.mark.asyncio
    async def test_limit_out_of_range(self, client: AsyncClient, api_queue: DraftQueue) -> None:
        response = await client.post("/api/draft-queue/process", json={"limit": 11})
        assert response.status_code == 400
