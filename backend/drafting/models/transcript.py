"""Transcript models.

A transcript record holds the conversational event log of one
(project, session) pair. Items arrive out of order from the realtime client
and link to their predecessor through ``previous_item_id``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .timestamps import coerce_timestamp, utcnow


class TranscriptItem(BaseModel):
    """One fragment of the conversational event log."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(description="Item identifier, unique within a record")
    previous_item_id: Optional[str] = Field(
        default=None,
        description="Identifier of the causal predecessor (None for chain heads)",
    )
    role: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    message_id: Optional[str] = Field(
        default=None,
        description="Persisted session message this item was transcribed into",
    )
    message_key: Optional[str] = Field(
        default=None,
        description="External tag used to look the item up from messages",
    )
    text: Optional[str] = None
    payload: Optional[Any] = Field(
        default=None,
        description="Sanitized JSON payload as received from the realtime client",
    )

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        return utcnow() if value is None else coerce_timestamp(value)


class TranscriptRecord(BaseModel):
    """Ordered transcript of one (project, session) pair."""

    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str
    session_id: str
    items: List[TranscriptItem] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=utcnow)
    finalized_at: Optional[datetime] = None

    @field_validator("updated_at", "finalized_at", mode="before")
    @classmethod
    def _coerce_timestamps(cls, value: Any) -> Any:
        return coerce_timestamp(value)

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None


class TranscriptIssue(BaseModel):
    """Integrity anomalies found in one transcript record."""

    project_id: str
    session_id: str
    issues: List[str] = Field(default_factory=list)


class TranscriptIntegrityReport(BaseModel):
    """Result of an integrity audit over transcript records."""

    checked: int = Field(default=0, ge=0, description="Number of records inspected")
    anomalies: List[TranscriptIssue] = Field(default_factory=list)

    @property
    def issue_count(self) -> int:
        return sum(len(entry.issues) for entry in self.anomalies)

    @property
    def ok(self) -> bool:
        return not self.anomalies


class TranscriptItemInput(BaseModel):
    """Transcript fragment as posted by the realtime client."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    previous_item_id: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    created_at: Optional[datetime] = Field(
        default=None,
        description="Client timestamp; defaults to ingest time",
    )
    message_id: Optional[str] = None
    message_key: Optional[str] = None
    text: Optional[str] = None
    payload: Optional[Any] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)
