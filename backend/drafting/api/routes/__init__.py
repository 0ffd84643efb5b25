"""API routes package."""

from . import documents, draft_queue, health, transcripts

__all__ = ["documents", "draft_queue", "health", "transcripts"]
