"""Transcript ingestion and integrity endpoints.

- POST /projects/{project_id}/transcripts/{session_id}/items: merge one fragment
- POST /projects/{project_id}/transcripts/{session_id}/finalize
- GET /projects/{project_id}/transcripts: records in chain order
- POST /transcripts/verify: integrity audit (advisory)
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from drafting.api.exceptions import parse_body
from drafting.api.response import envelope
from drafting.models import TranscriptItemInput, VerifyTranscriptsRequest
from drafting.services.storage import get_storage
from drafting.services.transcript_store import TranscriptStore

router = APIRouter(tags=["Transcripts"])


def _store() -> TranscriptStore:
    return TranscriptStore(get_storage())


@router.post("/projects/{project_id}/transcripts/{session_id}/items")
async def ingest_transcript_item(project_id: str, session_id: str, request: Request) -> JSONResponse:
    """Merge one transcript fragment into the session's record."""
    item = await parse_body(request, TranscriptItemInput)
    record = await _store().ingest(project_id, session_id, item)
    return envelope(record)


@router.post("/projects/{project_id}/transcripts/{session_id}/finalize")
async def finalize_transcript(project_id: str, session_id: str) -> JSONResponse:
    record = await _store().finalize(project_id, session_id)
    return envelope(record)


@router.get("/projects/{project_id}/transcripts")
async def list_transcripts(project_id: str) -> JSONResponse:
    records = await _store().get_for_project(project_id)
    return envelope(records)


@router.post("/transcripts/verify")
async def verify_transcripts(request: Request) -> JSONResponse:
    """Audit stored transcripts for ordering anomalies."""
    body = await parse_body(request, VerifyTranscriptsRequest)
    report = await _store().audit(project_id=body.project_id, limit=body.limit)
    data = report.model_dump(mode="json")
    data["ok"] = report.ok
    data["issue_count"] = report.issue_count
    return envelope(data)
