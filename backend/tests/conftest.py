"""Pytest fixtures for testing."""

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from drafting.db import mongo
from drafting.llm import client as llm_client_module
from drafting.models import (
    Note,
    NoteType,
    Project,
    SectionInput,
    SectionStatus,
    SessionMessage,
    Todo,
)
from drafting.services import draft_queue as draft_queue_module
from drafting.services import storage as storage_module
from drafting.services.draft_queue import DraftQueue
from drafting.services.model_output import DraftingModelResponse
from drafting.services.storage import (
    MESSAGES,
    NOTES,
    PROJECTS,
    SESSIONS,
    TODOS,
    InMemoryStorage,
    MongoStorage,
    to_doc,
)


@pytest.fixture
def storage() -> InMemoryStorage:
    """Fresh in-memory storage."""
    return InMemoryStorage()


@pytest_asyncio.fixture
async def mongo_storage() -> AsyncGenerator[MongoStorage, None]:
    """MongoDB storage with mock backend."""
    mongomock_motor = pytest.importorskip("mongomock_motor")
    mock_client = mongomock_motor.AsyncMongoMockClient()

    # Replace the real client with mock
    mongo.set_client(mock_client)

    store = MongoStorage()
    await store.ensure_indexes()

    yield store

    # Cleanup
    mongo.set_client(None)


@pytest.fixture
def telemetry() -> AsyncMock:
    """Telemetry sink double recording metrics and alerts."""
    sink = AsyncMock()
    sink.publish_metrics = AsyncMock()
    sink.send_alert = AsyncMock()
    return sink


@pytest.fixture
def progress() -> AsyncMock:
    reporter = AsyncMock()
    reporter.report = AsyncMock()
    return reporter


@pytest.fixture
def llm() -> AsyncMock:
    """LLM client double; tests set ``draft`` return values or side effects."""
    client = AsyncMock()
    client.draft = AsyncMock(return_value=make_model_response())
    client.summarize = AsyncMock(return_value="A short summary of the draft.")
    return client


@pytest.fixture
def queue(storage, llm, telemetry, progress) -> DraftQueue:
    return DraftQueue(storage, llm_client=llm, telemetry=telemetry, progress=progress)


@pytest_asyncio.fixture
async def project(storage) -> Project:
    """Project with a session, two messages, a note and an open todo."""
    project = Project(id="proj-1", title="Founder memoir", content_type="memoir", goal="Tell the story")
    await storage.insert(PROJECTS, to_doc(project))
    await storage.insert(
        SESSIONS,
        {"_id": "sess-1", "project_id": project.id, "realtime_session_id": "rt-1", "status": "active"},
    )
    for message in (
        SessionMessage(id="msg-1", session_id="sess-1", speaker="user", transcript="We started in a garage.", tags=["tag-1"]),
        SessionMessage(id="msg-2", session_id="sess-1", speaker="assistant", transcript="Tell me more."),
    ):
        await storage.insert(MESSAGES, to_doc(message))
    await storage.insert(
        NOTES,
        to_doc(Note(id="note-1", project_id=project.id, note_type=NoteType.fact, content="Founded 2012")),
    )
    await storage.insert(
        TODOS, to_doc(Todo(id="todo-1", project_id=project.id, label="Confirm founding year"))
    )
    return project


def make_model_response(
    markdown: str = "# Introduction\n\nWe started in a garage.\n\n# Growth\n\nThen we grew.",
    sections: list[SectionInput] | None = None,
    summary: str | None = "Drafted the introduction.",
) -> DraftingModelResponse:
    """Decoded drafting output for stubbing ``LLMClient.draft``."""
    return DraftingModelResponse(
        markdown=markdown,
        sections=sections
        if sections is not None
        else [
            SectionInput(heading="Introduction", content="We started in a garage.", status=SectionStatus.drafting, order=0),
            SectionInput(heading="Growth", content="Then we grew.", status=SectionStatus.needs_detail, order=1),
        ],
        summary=summary,
    )


@pytest.fixture
def app_storage() -> AsyncGenerator[InMemoryStorage, None]:
    """In-memory storage installed as the application default."""
    store = InMemoryStorage()
    storage_module.set_storage(store)
    yield store
    storage_module.set_storage(None)
    draft_queue_module.set_draft_queue(None)
    llm_client_module.set_client(None)


@pytest_asyncio.fixture
async def client(app_storage: InMemoryStorage) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""
    from drafting.api.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sample_sections() -> list[dict[str, Any]]:
    return [
        {"heading": "Introduction", "content": "Opening lines.", "status": "drafting", "order": 0},
        {"heading": "Growth", "content": "", "order": 1},
        {"heading": "Lessons", "content": "What we learned.", "status": "complete", "order": 2},
    ]


@pytest.fixture
def draft_output():
    """Factory for decoded drafting output."""
    return make_model_response
