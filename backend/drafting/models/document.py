"""Document and section models.

One document per project. Sections are identified by their heading
(case-insensitive); ``order`` is kept contiguous ``0..n-1`` and ``version``
increments on every content change.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .timestamps import coerce_timestamp, utcnow


class SectionStatus(str, Enum):
    """Drafting status of a section (and of the document as a whole)."""

    drafting = "drafting"
    needs_detail = "needs_detail"
    complete = "complete"


SECTION_STATUS_LABELS = {
    SectionStatus.drafting: "Drafting",
    SectionStatus.needs_detail: "Needs detail",
    SectionStatus.complete: "Complete",
}


def heading_key(heading: str) -> str:
    """Identity key for a section heading."""
    return heading.strip().lower()


class Document(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str
    latest_draft_markdown: str = ""
    summary: Optional[str] = None
    status: SectionStatus = SectionStatus.drafting
    locked_sections: List[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _coerce_updated_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)

    @property
    def word_count(self) -> int:
        return len(self.latest_draft_markdown.split())


class DocumentSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    document_id: str
    heading: str
    content: str = ""
    order: int = Field(default=0, ge=0)
    status: SectionStatus = SectionStatus.drafting
    version: int = Field(default=1, ge=1)
    locked: bool = False
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _coerce_updated_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)

    @property
    def key(self) -> str:
        return heading_key(self.heading)


class SectionInput(BaseModel):
    """Section as supplied by the model or a full-document edit."""

    heading: str
    content: str = ""
    status: Optional[SectionStatus] = None
    order: Optional[int] = None


class OutlineAction(str, Enum):
    add = "add"
    rename = "rename"
    reorder = "reorder"
    remove = "remove"


class OutlineOperation(BaseModel):
    """One structural change to the outline, keyed by heading."""

    action: OutlineAction
    heading: str
    new_heading: Optional[str] = None
    position: Optional[int] = Field(default=None, ge=0)
    status: Optional[SectionStatus] = None


class SectionStatusSummary(BaseModel):
    section_id: str
    heading: str
    status: SectionStatus
    order: int


class WorkspaceProgress(BaseModel):
    word_count: int = 0
    section_statuses: List[SectionStatusSummary] = Field(default_factory=list)


class Workspace(BaseModel):
    """Document plus its sections sorted by order."""

    document: Optional[Document] = None
    sections: List[DocumentSection] = Field(default_factory=list)
    progress: WorkspaceProgress = Field(default_factory=WorkspaceProgress)


class OutlineResult(Workspace):
    operations: int = 0


class SummaryResult(BaseModel):
    generated: bool
    summary: Optional[str] = None
    reason: Optional[str] = None
