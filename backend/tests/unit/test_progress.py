"""Unit tests for realtime progress events."""

import json

import httpx
import pytest
import pytest_asyncio

from drafting.models import DraftJob, DraftJobStatus
from drafting.services.progress import PROGRESS_PREFIX, ProgressReporter, SectionProgress
from drafting.services.storage import DRAFT_JOBS, SESSIONS, to_doc


@pytest_asyncio.fixture
async def job(storage):
    job = DraftJob(id="job-1", project_id="proj-1", session_id="sess-1", attempt_count=2)
    await storage.insert(DRAFT_JOBS, to_doc(job))
    await storage.insert(SESSIONS, {"_id": "sess-1", "project_id": "proj-1", "realtime_session_id": "rt-1"})
    return job


def reporter(storage, requests, status_code=200, api_key="sk-test"):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code)

    return ProgressReporter(
        storage,
        api_key=api_key,
        endpoint="https://realtime.test/sessions/",
        transport=httpx.MockTransport(handler),
    )


class TestProgressReporter:
    @pytest.mark.asyncio
    async def test_emits_system_message_then_response(self, storage, job):
        requests = []
        result = await reporter(storage, requests).report(
            "job-1",
            DraftJobStatus.complete,
            summary="Drafted intro",
            sections=[SectionProgress(heading="Introduction", status="drafting", order=0)],
        )

        assert result.ok
        assert [str(r.url) for r in requests] == ["https://realtime.test/sessions/rt-1/events"] * 2
        assert requests[0].headers["Authorization"] == "Bearer sk-test"

        first = json.loads(requests[0].content)
        assert first["type"] == "conversation.item.create"
        assert first["item"]["role"] == "system"
        text = first["item"]["content"][0]["text"]
        assert text.startswith(PROGRESS_PREFIX)
        event = json.loads(text[len(PROGRESS_PREFIX):])
        assert event["tool"] == "queue_draft_update"
        assert event["status"] == "complete"
        assert event["attempt_count"] == 2
        assert event["sections"][0]["heading"] == "Introduction"

        assert json.loads(requests[1].content) == {"type": "response.create"}

    @pytest.mark.asyncio
    async def test_missing_job(self, storage):
        result = await reporter(storage, []).report("nope", DraftJobStatus.running)
        assert result.reason == "missing_job"

    @pytest.mark.asyncio
    async def test_missing_realtime_session(self, storage, job):
        await storage.patch(SESSIONS, "sess-1", {"realtime_session_id": None})
        requests = []
        result = await reporter(storage, requests).report("job-1", DraftJobStatus.running)
        assert result.reason == "missing_session"
        assert requests == []

    @pytest.mark.asyncio
    async def test_missing_api_key(self, storage, job, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        result = await reporter(storage, [], api_key=None).report("job-1", DraftJobStatus.running)
        assert result.reason == "missing_api_key"

    @pytest.mark.asyncio
    async def test_http_failure_reported_not_raised(self, storage, job):
        requests = []
        result = await reporter(storage, requests, status_code=502).report(
            "job-1", DraftJobStatus.error, error="boom"
        )
        assert not result.ok
        assert result.reason == "network_error"
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_reported_not_raised(self, storage, job, monkeypatch):
        async def broken_get(collection, doc_id):
            raise ConnectionError("database went away")

        monkeypatch.setattr(storage, "get", broken_get)
        requests = []
        result = await reporter(storage, requests).report("job-1", DraftJobStatus.running)
        assert not result.ok
        assert result.reason == "error"
        assert requests == []
