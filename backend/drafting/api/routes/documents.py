"""Document workspace endpoints.

Full and surgical edits, outline operations and summary management for a
project's draft. Structural changes (rename, reorder) only go through the
outline endpoint.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from drafting.api.exceptions import ValidationError, parse_body
from drafting.api.response import envelope
from drafting.models import (
    FullEditsRequest,
    OutlineRequest,
    SectionEditRequest,
    SummaryRequest,
)
from drafting.services.document_service import DocumentService
from drafting.services.storage import get_storage

router = APIRouter(prefix="/projects/{project_id}/document", tags=["Documents"])


def _service() -> DocumentService:
    return DocumentService(get_storage())


@router.get("")
async def get_workspace(project_id: str) -> JSONResponse:
    workspace = await _service().get_workspace(project_id)
    return envelope(workspace)


@router.post("/edits")
async def apply_full_edits(project_id: str, request: Request) -> JSONResponse:
    """Replace the draft and reconcile every section by heading."""
    body = await parse_body(request, FullEditsRequest)
    workspace = await _service().apply_full_edits(
        project_id, body.markdown, body.sections, summary=body.summary
    )
    return envelope(workspace)


@router.post("/sections")
async def apply_section_edit(project_id: str, request: Request) -> JSONResponse:
    """Rewrite one existing section (404 when the document or section is missing)."""
    body = await parse_body(request, SectionEditRequest)
    if not body.section_heading.strip():
        raise ValidationError("section_heading must not be blank")
    workspace = await _service().apply_section_edit(
        project_id,
        body.section_heading,
        body.section_markdown,
        status=body.status,
        summary=body.summary,
    )
    return envelope(workspace)


@router.post("/outline")
async def manage_outline(project_id: str, request: Request) -> JSONResponse:
    body = await parse_body(request, OutlineRequest)
    result = await _service().manage_outline(project_id, body.operations)
    return envelope(result)


@router.put("/summary")
async def set_summary(project_id: str, request: Request) -> JSONResponse:
    body = await parse_body(request, SummaryRequest)
    if not body.summary.strip():
        raise ValidationError("summary must not be blank")
    document = await _service().set_summary(project_id, body.summary)
    return envelope(document)


@router.post("/summary/generate")
async def generate_summary(project_id: str) -> JSONResponse:
    """Summarize the draft with the summary model when no summary exists."""
    result = await _service().generate_draft_summary(project_id)
    return envelope(result)


@router.post("/reset")
async def reset_draft(project_id: str) -> JSONResponse:
    workspace = await _service().reset_draft(project_id)
    return envelope(workspace)
