"""Progress events pushed to the client's realtime session.

The realtime assistant learns about background drafting through a system
message carrying a ``TOOL_PROGRESS::{json}`` payload, followed by a
``response.create`` so it can react. Delivery is best-effort: the outcome is
returned, never raised.
"""

from __future__ import annotations

import json
import logging
import os
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field

from drafting.models.context import Session
from drafting.models.draft_job import DraftJob, DraftJobStatus
from drafting.models.timestamps import utcnow

from .storage import DRAFT_JOBS, SESSIONS, Storage, from_doc

logger = logging.getLogger(__name__)

PROGRESS_TOOL_NAME = "queue_draft_update"
PROGRESS_PREFIX = "TOOL_PROGRESS::"
DEFAULT_REALTIME_ENDPOINT = "https://api.openai.com/v1/realtime/sessions"


class SectionProgress(BaseModel):
    heading: str
    status: Optional[str] = None
    order: Optional[int] = None


class DraftProgressEvent(BaseModel):
    tool: str = PROGRESS_TOOL_NAME
    job_id: str
    project_id: str
    status: DraftJobStatus
    summary: Optional[str] = None
    error: Optional[str] = None
    sections: List[SectionProgress] = Field(default_factory=list)
    attempt_count: Optional[int] = None
    timestamp: int = Field(default_factory=lambda: int(utcnow().timestamp() * 1000))


class ProgressResult(BaseModel):
    ok: bool
    reason: Optional[str] = None


class ProgressReporter:
    """Best-effort progress channel to the realtime session of a job."""

    def __init__(
        self,
        storage: Storage,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.storage = storage
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.endpoint = (
            endpoint or os.getenv("OPENAI_REALTIME_ENDPOINT") or DEFAULT_REALTIME_ENDPOINT
        ).rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def report(
        self,
        job_id: str,
        status: DraftJobStatus,
        summary: Optional[str] = None,
        error: Optional[str] = None,
        sections: Optional[List[SectionProgress]] = None,
        attempt_count: Optional[int] = None,
    ) -> ProgressResult:
        """Emit one progress event; failures come back as ``ok=False``, never raised."""
        try:
            return await self._deliver(job_id, status, summary, error, sections, attempt_count)
        except Exception as e:
            logger.error(f"Draft progress for job {job_id} failed: {e}", exc_info=True)
            return ProgressResult(ok=False, reason="error")

    async def _deliver(
        self,
        job_id: str,
        status: DraftJobStatus,
        summary: Optional[str],
        error: Optional[str],
        sections: Optional[List[SectionProgress]],
        attempt_count: Optional[int],
    ) -> ProgressResult:
        doc = await self.storage.get(DRAFT_JOBS, job_id)
        if doc is None:
            return ProgressResult(ok=False, reason="missing_job")
        job = from_doc(DraftJob, doc)

        session_doc = await self.storage.get(SESSIONS, job.session_id)
        session = from_doc(Session, session_doc) if session_doc else None
        realtime_session_id = session.realtime_session_id if session else None
        if not realtime_session_id:
            return ProgressResult(ok=False, reason="missing_session")

        if not self.api_key:
            logger.warning("Draft progress emission skipped: OPENAI_API_KEY missing")
            return ProgressResult(ok=False, reason="missing_api_key")

        event = DraftProgressEvent(
            job_id=job.id,
            project_id=job.project_id,
            status=status,
            summary=summary,
            error=error,
            sections=sections or [],
            attempt_count=attempt_count if attempt_count is not None else job.attempt_count,
        )
        serialized = json.dumps(event.model_dump(mode="json"))
        url = f"{self.endpoint}/{realtime_session_id}/events"
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                created = await client.post(
                    url,
                    headers=headers,
                    json={
                        "type": "conversation.item.create",
                        "item": {
                            "type": "message",
                            "role": "system",
                            "content": [
                                {"type": "input_text", "text": f"{PROGRESS_PREFIX}{serialized}"}
                            ],
                        },
                    },
                )
                created.raise_for_status()
                response = await client.post(url, headers=headers, json={"type": "response.create"})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to emit draft progress for job {job_id}: {e}")
            return ProgressResult(ok=False, reason="network_error")

        return ProgressResult(ok=True)
