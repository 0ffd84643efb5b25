"""Project context owned by external collaborators.

Projects, blueprints, sessions, messages, notes and todos are created by the
intake and realtime-session surfaces. The drafting pipeline only reads them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .timestamps import coerce_timestamp, utcnow


class Project(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    owner_id: Optional[str] = None
    title: str
    content_type: str = "article"
    goal: Optional[str] = None
    status: str = "active"
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _coerce_updated_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)


class VoiceGuardrails(BaseModel):
    tone: Optional[str] = None
    structure: Optional[str] = None
    content: Optional[str] = None


class Blueprint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str
    status: str = "draft"
    desired_outcome: Optional[str] = None
    target_audience: Optional[str] = None
    materials_inventory: Optional[str] = None
    communication_preferences: Optional[str] = None
    voice_guardrails: Optional[VoiceGuardrails] = None


class Session(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str
    realtime_session_id: Optional[str] = None
    status: str = "active"


class SessionMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    session_id: str
    speaker: str
    transcript: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    tags: List[str] = Field(default_factory=list)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        return coerce_timestamp(value)


class NoteType(str, Enum):
    fact = "fact"
    story = "story"
    style = "style"
    voice = "voice"
    todo = "todo"
    summary = "summary"


class Note(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str
    session_id: Optional[str] = None
    note_type: NoteType
    content: str
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)


class TodoStatus(str, Enum):
    open = "open"
    in_review = "in_review"
    resolved = "resolved"


class Todo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str
    label: str
    status: TodoStatus = TodoStatus.open
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> Any:
        return coerce_timestamp(value)
