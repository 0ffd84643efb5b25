"""Draft queue endpoints.

- POST /projects/{project_id}/draft-jobs: enqueue (coalesces per project)
- GET /projects/{project_id}/draft-queue: active job, recent jobs, latest transcript
- POST /draft-queue/process: batch trigger, returns one outcome per attempt

All responses use the { data, error } envelope pattern.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from drafting.api.exceptions import parse_body
from drafting.api.response import envelope
from drafting.models import EnqueueDraftRequest, ProcessQueueRequest
from drafting.services.draft_queue import get_draft_queue

router = APIRouter(tags=["Draft queue"])


@router.post("/projects/{project_id}/draft-jobs")
async def enqueue_draft(project_id: str, request: Request) -> JSONResponse:
    body = await parse_body(request, EnqueueDraftRequest)
    job = await get_draft_queue().enqueue(
        project_id,
        body.session_id,
        summary=body.summary,
        urgency=body.urgency,
        message_pointers=body.message_pointers,
        transcript_anchors=body.transcript_anchors,
        prompt_context=body.prompt_context,
    )
    return envelope(job, status_code=202)


@router.get("/projects/{project_id}/draft-queue")
async def get_queue_state(project_id: str) -> JSONResponse:
    state = await get_draft_queue().get_queue_state(project_id)
    return envelope(state)


@router.post("/draft-queue/process")
async def process_queue(request: Request) -> JSONResponse:
    """Process up to ``limit`` queued jobs now.

    Runs in the request; a periodic worker (scripts/run_draft_worker.py)
    drives the same batch on a schedule.
    """
    body = await parse_body(request, ProcessQueueRequest)
    results = await get_draft_queue().process_batch(limit=body.limit, dry_run=body.dry_run)
    return envelope(results)
