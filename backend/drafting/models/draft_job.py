"""Draft job model for the background drafting queue.

A job is one unit of drafting work tied to a project and a session. Jobs move
``queued -> running -> complete | error``; a retryable failure moves a running
job back to ``queued``. Terminal jobs are retained for history.

Pydantic v2.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .timestamps import coerce_timestamp, ensure_tz_aware, utcnow

# Job-level retry ceiling: the third failed attempt is terminal
MAX_JOB_ATTEMPTS = 3


class DraftJobStatus(str, Enum):
    """Lifecycle states of a draft job."""

    queued = "queued"
    running = "running"
    complete = "complete"
    error = "error"


ACTIVE_JOB_STATUSES = (DraftJobStatus.queued, DraftJobStatus.running)
TERMINAL_JOB_STATUSES = (DraftJobStatus.complete, DraftJobStatus.error)


class ModelUsage(BaseModel):
    """Token usage reported by the drafting model."""

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class DraftJob(BaseModel):
    """Persisted state of a drafting request."""

    model_config = ConfigDict(extra="ignore")

    # Identity
    id: str = Field(description="Job identifier")
    project_id: str
    session_id: str

    # Status
    status: DraftJobStatus = Field(default=DraftJobStatus.queued)
    attempt_count: int = Field(default=0, ge=0)
    error: Optional[str] = Field(
        default=None,
        description="Last failure message; kept on re-queued jobs for diagnostics",
    )

    # Request
    summary: Optional[str] = None
    urgency: Optional[str] = None
    message_pointers: List[str] = Field(default_factory=list)
    transcript_anchors: List[str] = Field(default_factory=list)
    prompt_context: Optional[Any] = Field(
        default=None,
        description="Opaque JSON supplied by the realtime assistant",
    )

    # Results
    generated_summary: Optional[str] = None
    model_usage: Optional[ModelUsage] = None
    transcript_cursor: Optional[datetime] = Field(
        default=None,
        description="Latest transcript update seen by the last processing attempt",
    )
    duration_ms: Optional[int] = Field(default=None, ge=0)

    # Single-flight slot: holds project_id while the job is queued or running
    active_project_id: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator(
        "created_at",
        "started_at",
        "completed_at",
        "updated_at",
        "transcript_cursor",
        mode="before",
    )
    @classmethod
    def _coerce_timestamps(cls, value: Any) -> Any:
        return coerce_timestamp(value)

    @property
    def active_section(self) -> Optional[str]:
        """Heading named by ``prompt_context.activeSection``, if any."""
        context = self.prompt_context
        if not isinstance(context, dict):
            return None
        candidate = context.get("activeSection")
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        return None

    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or utcnow()
        return (now - ensure_tz_aware(self.created_at)).total_seconds()  # type: ignore[operator]


class ProcessReason(str, Enum):
    """Why a queue processing call did not complete a job."""

    empty = "empty"
    dry_run = "dry-run"
    no_transcript = "no_transcript"
    retry = "retry"
    error = "error"


class DraftQueueProcessResult(BaseModel):
    """Outcome of one ``process_one`` call."""

    processed: bool
    reason: Optional[ProcessReason] = None
    job_id: Optional[str] = None


class LatestTranscriptInfo(BaseModel):
    session_id: str
    updated_at: datetime
    finalized_at: Optional[datetime] = None
    item_count: int = 0


class DraftQueueState(BaseModel):
    """Queue view for one project."""

    active_job: Optional[DraftJob] = None
    jobs: List[DraftJob] = Field(default_factory=list)
    latest_transcript: Optional[LatestTranscriptInfo] = None
