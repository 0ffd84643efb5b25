"""Tests for transcript ingestion and integrity endpoints."""

import pytest
from httpx import AsyncClient

from drafting.services.storage import PROJECTS, InMemoryStorage


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"data": {"status": "ok", "storage": "memory"}, "error": None}


class TestIngestItems:
    """Tests for POST /api/projects/{project_id}/transcripts/{session_id}/items."""

    @pytest.mark.asyncio
    async def test_out_of_order_items_are_chained(self, client: AsyncClient) -> None:
        url = "/api/projects/proj-1/transcripts/sess-1/items"
        await client.post(url, json={"id": "b", "previous_item_id": "a", "text": "second"})
        response = await client.post(url, json={"id": "a", "role": "user", "text": "first"})

        assert response.status_code == 200
        record = response.json()["data"]
        assert record["project_id"] == "proj-1"
        assert [item["id"] for item in record["items"]] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_id_is_validation_error(self, client: AsyncClient) -> None:
        response = await client.post("/api/projects/proj-1/transcripts/sess-1/items", json={"text": "x"})

        assert response.status_code == 400
        json_data = response.json()
        assert json_data["data"] is None
        assert json_data["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_malformed_json(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/projects/proj-1/transcripts/sess-1/items",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestFinalizeAndList:
    @pytest.mark.asyncio
    async def test_finalize_then_list(self, client: AsyncClient) -> None:
        await client.post("/api/projects/proj-1/transcripts/sess-1/items", json={"id": "a", "text": "hi"})

        finalized = await client.post("/api/projects/proj-1/transcripts/sess-1/finalize")
        assert finalized.status_code == 200
        assert finalized.json()["data"]["finalized_at"] is not None

        listed = await client.get("/api/projects/proj-1/transcripts")
        records = listed.json()["data"]
        assert len(records) == 1
        assert records[0]["session_id"] == "sess-1"

    @pytest.mark.asyncio
    async def test_list_empty_project(self, client: AsyncClient) -> None:
        response = await client.get("/api/projects/none/transcripts")
        assert response.json()["data"] == []


class TestVerify:
    """Tests for POST /api/transcripts/verify."""

    @pytest.mark.asyncio
    async def test_reports_anomalies(self, client: AsyncClient, app_storage: InMemoryStorage) -> None:
        await app_storage.insert(PROJECTS, {"_id": "proj-1", "title": "Memoir"})
        await client.post(
            "/api/projects/proj-1/transcripts/sess-1/items",
            json={"id": "a", "previous_item_id": "ghost"},
        )

        response = await client.post("/api/transcripts/verify", json={"project_id": "proj-1"})

        data = response.json()["data"]
        assert data["ok"] is False
        assert data["issue_count"] == 1
        assert data["anomalies"][0]["issues"] == ["missing previousItemId ghost referenced by a"]

    @pytest.mark.asyncio
    async def test_empty_body_uses_defaults(self, client: AsyncClient) -> None:
        response = await client.post("/api/transcripts/verify")
        assert response.status_code == 200
        assert response.json()["data"]["ok"] is True

    @pytest.mark.asyncio
    async def test_invalid_limit(self, client: AsyncClient) -> None:
        response = await client.post("/api/transcripts/verify", json={"limit": 0})
        assert response.status_code == 400
