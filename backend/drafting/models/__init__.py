"""Drafting models package.

Pydantic v2 schemas for persisted records and API request bodies.
"""

from .api_responses import (
    EnqueueDraftRequest,
    FullEditsRequest,
    OutlineRequest,
    ProcessQueueRequest,
    SectionEditRequest,
    SummaryRequest,
    VerifyTranscriptsRequest,
)
from .context import (
    Blueprint,
    Note,
    NoteType,
    Project,
    Session,
    SessionMessage,
    Todo,
    TodoStatus,
    VoiceGuardrails,
)
from .document import (
    Document,
    DocumentSection,
    OutlineAction,
    OutlineOperation,
    OutlineResult,
    SectionInput,
    SectionStatus,
    SummaryResult,
    Workspace,
    WorkspaceProgress,
    heading_key,
)
from .draft_job import (
    MAX_JOB_ATTEMPTS,
    DraftJob,
    DraftJobStatus,
    DraftQueueProcessResult,
    DraftQueueState,
    LatestTranscriptInfo,
    ModelUsage,
    ProcessReason,
)
from .transcript import (
    TranscriptIntegrityReport,
    TranscriptIssue,
    TranscriptItem,
    TranscriptItemInput,
    TranscriptRecord,
)

__all__ = [
    # Requests
    "EnqueueDraftRequest",
    "FullEditsRequest",
    "OutlineRequest",
    "ProcessQueueRequest",
    "SectionEditRequest",
    "SummaryRequest",
    "VerifyTranscriptsRequest",
    # Project context
    "Blueprint",
    "Note",
    "NoteType",
    "Project",
    "Session",
    "SessionMessage",
    "Todo",
    "TodoStatus",
    "VoiceGuardrails",
    # Documents
    "Document",
    "DocumentSection",
    "OutlineAction",
    "OutlineOperation",
    "OutlineResult",
    "SectionInput",
    "SectionStatus",
    "SummaryResult",
    "Workspace",
    "WorkspaceProgress",
    "heading_key",
    # Draft jobs
    "MAX_JOB_ATTEMPTS",
    "DraftJob",
    "DraftJobStatus",
    "DraftQueueProcessResult",
    "DraftQueueState",
    "LatestTranscriptInfo",
    "ModelUsage",
    "ProcessReason",
    # Transcripts
    "TranscriptIntegrityReport",
    "TranscriptIssue",
    "TranscriptItem",
    "TranscriptItemInput",
    "TranscriptRecord",
]
