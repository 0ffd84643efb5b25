"""API request models.

Responses use the ``{data, error}`` envelope with the domain models as
``data``. Pydantic v2. Extra fields are forbidden to prevent drift.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .document import OutlineOperation, SectionInput, SectionStatus


class EnqueueDraftRequest(BaseModel):
    """Request body for queueing a drafting update."""
    model_config = ConfigDict(extra="forbid")

    session_id: str = Field(min_length=1)
    summary: Optional[str] = None
    urgency: Optional[str] = None
    message_pointers: List[str] = Field(default_factory=list)
    transcript_anchors: List[str] = Field(default_factory=list)
    prompt_context: Optional[Any] = Field(
        default=None,
        description="Opaque JSON; `activeSection` scopes the update to one section",
    )


class ProcessQueueRequest(BaseModel):
    """Batch trigger body."""
    model_config = ConfigDict(extra="forbid")

    limit: int = Field(default=3, ge=1, le=10)
    dry_run: bool = False


class VerifyTranscriptsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: Optional[str] = None
    limit: int = Field(default=25, ge=1)


class FullEditsRequest(BaseModel):
    """Replace the whole draft and reconcile sections."""
    model_config = ConfigDict(extra="forbid")

    markdown: str
    sections: List[SectionInput] = Field(default_factory=list)
    summary: Optional[str] = None


class SectionEditRequest(BaseModel):
    """Rewrite the body of one existing section."""
    model_config = ConfigDict(extra="forbid")

    section_heading: str = Field(min_length=1)
    section_markdown: str
    status: Optional[SectionStatus] = None
    summary: Optional[str] = None


class OutlineRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    operations: List[OutlineOperation] = Field(min_length=1)


class SummaryRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    summary: str = Field(min_length=1)
