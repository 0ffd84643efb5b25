"""Transcript store: merge-on-ingest and causal ordering of session fragments.

Realtime clients post transcript fragments out of order and sometimes more
than once. Each fragment names its predecessor through ``previous_item_id``;
the store merges fragments by item id and keeps every record in chain order.

Ordering walks chains from their heads (items whose predecessor is missing or
unknown). When several items claim the same predecessor, the first one in the
current sequence continues the chain and the others are emitted after all
chains, in their original order. This keeps reordering idempotent and never
drops an item, even with duplicate ids or cycles.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from drafting.models.timestamps import ensure_tz_aware, utcnow
from drafting.models.transcript import (
    TranscriptIntegrityReport,
    TranscriptIssue,
    TranscriptItem,
    TranscriptItemInput,
    TranscriptRecord,
)

from .storage import (
    PROJECTS,
    TRANSCRIPTS,
    DuplicateKeyError,
    Storage,
    from_doc,
    new_id,
    to_doc,
)

logger = logging.getLogger(__name__)

# Optimistic write attempts before giving up on a contended record
MAX_WRITE_ATTEMPTS = 5

DEFAULT_AUDIT_LIMIT = 25

_DROP = object()


def reconstruct_order(items: list[TranscriptItem]) -> list[TranscriptItem]:
    """Return items in causal chain order.

    Idempotent, and every input item appears exactly once in the output.
    """
    if len(items) <= 1:
        return list(items)

    known_ids = {item.id for item in items}
    successor: dict[str, int] = {}
    for index, item in enumerate(items):
        if item.previous_item_id:
            successor.setdefault(item.previous_item_id, index)

    visited: set[int] = set()
    ordered: list[TranscriptItem] = []

    for index, item in enumerate(items):
        is_head = not item.previous_item_id or item.previous_item_id not in known_ids
        if not is_head or index in visited:
            continue
        current: Optional[int] = index
        while current is not None and current not in visited:
            visited.add(current)
            ordered.append(items[current])
            current = successor.get(items[current].id)

    # Branch losers and cycle members
    for index, item in enumerate(items):
        if index not in visited:
            visited.add(index)
            ordered.append(item)

    return ordered


def merge_transcript_item(
    existing: TranscriptItem, incoming: TranscriptItem
) -> TranscriptItem:
    """Merge a re-delivered fragment into the stored item with the same id.

    Incoming non-null fields win. ``created_at`` keeps the earlier value and
    ``message_key`` falls back to the stored key, then the stored id.
    """
    merged = existing.model_dump()
    for field, value in incoming.model_dump(exclude={"created_at"}).items():
        if value is not None:
            merged[field] = value
    merged["created_at"] = min(
        ensure_tz_aware(existing.created_at), ensure_tz_aware(incoming.created_at)
    )
    merged["message_key"] = (
        incoming.message_key or existing.message_key or existing.id
    )
    return TranscriptItem.model_validate(merged)


def extract_transcript_text(value: Any) -> Optional[str]:
    """Pull displayable text out of a realtime payload."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = [extract_transcript_text(entry) for entry in value]
        return " ".join(part for part in parts if part) or None
    if isinstance(value, dict):
        for key in ("text", "transcript", "value"):
            if isinstance(value.get(key), str):
                return value[key]
        if "content" in value:
            return extract_transcript_text(value["content"])
    return None


def sanitize_payload(value: Any) -> Any:
    """Reduce a payload to JSON-safe values.

    Bytes become lists of ints; values with no JSON form are dropped.
    """
    result = _sanitize(value)
    return None if result is _DROP else result


def _sanitize(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return list(bytes(value))
    if isinstance(value, (list, tuple)):
        return [entry for entry in map(_sanitize, value) if entry is not _DROP]
    if isinstance(value, dict):
        sanitized = {}
        for key, inner in value.items():
            normalized = _sanitize(inner)
            if normalized is not _DROP:
                sanitized[str(key)] = normalized
        return sanitized
    return _DROP


def _normalize_incoming(item: TranscriptItemInput) -> TranscriptItem:
    if item.text and item.text.strip():
        text: Optional[str] = item.text.strip()
    else:
        text = extract_transcript_text(item.payload)
    return TranscriptItem(
        id=item.id,
        previous_item_id=item.previous_item_id,
        role=item.role,
        status=item.status,
        type=item.type,
        created_at=item.created_at or utcnow(),
        message_id=item.message_id,
        message_key=item.message_key,
        text=text,
        payload=sanitize_payload(item.payload),
    )


def _regressions(items: Iterable[TranscriptItem]) -> list[str]:
    issues = []
    last: Optional[datetime] = None
    for item in items:
        if not item.id.strip():
            continue
        created_at = ensure_tz_aware(item.created_at)
        if last is not None and created_at < last:
            issues.append(f"createdAt regression at {item.id}")
        last = created_at
    return issues


def check_record(record: TranscriptRecord) -> list[str]:
    """Return the integrity issues of one record (empty when healthy)."""
    items = reconstruct_order(record.items)
    issues: list[str] = []
    seen: set[str] = set()
    for item in items:
        if not item.id.strip():
            issues.append("missing item id")
            continue
        if item.id in seen:
            issues.append(f"duplicate item id {item.id}")
        seen.add(item.id)
    issues.extend(_regressions(items))
    for item in items:
        if item.previous_item_id and item.previous_item_id not in seen:
            issues.append(
                f"missing previousItemId {item.previous_item_id} referenced by {item.id}"
            )
    return issues


def verify_integrity(records: Iterable[TranscriptRecord]) -> TranscriptIntegrityReport:
    """Audit transcript records without mutating them."""
    report = TranscriptIntegrityReport()
    for record in records:
        report.checked += 1
        issues = check_record(record)
        if issues:
            report.anomalies.append(
                TranscriptIssue(
                    project_id=record.project_id,
                    session_id=record.session_id,
                    issues=issues,
                )
            )
    return report


class TranscriptStore:
    """Per-session transcript records kept in causal order."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def get_record(
        self, project_id: str, session_id: str
    ) -> Optional[TranscriptRecord]:
        doc = await self.storage.find_one(
            TRANSCRIPTS, {"project_id": project_id, "session_id": session_id}
        )
        return from_doc(TranscriptRecord, doc) if doc else None

    async def ingest(
        self, project_id: str, session_id: str, item: TranscriptItemInput
    ) -> TranscriptRecord:
        """Merge one fragment into the (project, session) record."""
        incoming = _normalize_incoming(item)

        for _ in range(MAX_WRITE_ATTEMPTS):
            now = utcnow()
            doc = await self.storage.find_one(
                TRANSCRIPTS, {"project_id": project_id, "session_id": session_id}
            )
            if doc is None:
                record = TranscriptRecord(
                    id=new_id(),
                    project_id=project_id,
                    session_id=session_id,
                    items=[incoming],
                    updated_at=now,
                )
                try:
                    await self.storage.insert(
                        TRANSCRIPTS, {**to_doc(record), "revision": 1}
                    )
                except DuplicateKeyError:
                    # Another fragment created the record first; merge into it
                    continue
                logger.debug(
                    f"Created transcript record for project {project_id} session {session_id}"
                )
                return record

            record = from_doc(TranscriptRecord, doc)
            items = list(record.items)
            for index, existing in enumerate(items):
                if existing.id == incoming.id:
                    items[index] = merge_transcript_item(existing, incoming)
                    break
            else:
                items.append(incoming)

            ordered = reconstruct_order(items)
            revision = doc.get("revision", 0)
            updated = await self.storage.conditional_patch(
                TRANSCRIPTS,
                record.id,
                {"revision": revision} if revision else {},
                {
                    "items": [to_doc_item(entry) for entry in ordered],
                    "updated_at": now,
                    "revision": revision + 1,
                },
            )
            if updated is not None:
                return from_doc(TranscriptRecord, updated)

        raise RuntimeError(
            f"Transcript record for project {project_id} session {session_id} "
            f"is too contended to ingest item {incoming.id}"
        )

    async def finalize(self, project_id: str, session_id: str) -> TranscriptRecord:
        """Reorder and close the record, creating an empty one if needed."""
        now = utcnow()
        doc = await self.storage.find_one(
            TRANSCRIPTS, {"project_id": project_id, "session_id": session_id}
        )
        if doc is None:
            record = TranscriptRecord(
                id=new_id(),
                project_id=project_id,
                session_id=session_id,
                items=[],
                updated_at=now,
                finalized_at=now,
            )
            try:
                await self.storage.insert(TRANSCRIPTS, {**to_doc(record), "revision": 1})
                return record
            except DuplicateKeyError:
                doc = await self.storage.find_one(
                    TRANSCRIPTS, {"project_id": project_id, "session_id": session_id}
                )
                if doc is None:
                    raise

        record = from_doc(TranscriptRecord, doc)
        ordered = reconstruct_order(record.items)
        updated = await self.storage.patch(
            TRANSCRIPTS,
            record.id,
            {
                "items": [to_doc_item(entry) for entry in ordered],
                "updated_at": now,
                "finalized_at": now,
                "revision": doc.get("revision", 0) + 1,
            },
        )
        logger.info(
            f"Finalized transcript for project {project_id} session {session_id} "
            f"({len(ordered)} items)"
        )
        return from_doc(TranscriptRecord, updated or {**doc, "finalized_at": now})

    async def get_for_project(self, project_id: str) -> list[TranscriptRecord]:
        """All records of a project, most recently updated first, in chain order."""
        docs = await self.storage.query(
            TRANSCRIPTS, {"project_id": project_id}, sort="updated_at", descending=True
        )
        records = []
        for doc in docs:
            record = from_doc(TranscriptRecord, doc)
            record.items = reconstruct_order(record.items)
            records.append(record)
        return records

    async def audit(
        self, project_id: Optional[str] = None, limit: int = DEFAULT_AUDIT_LIMIT
    ) -> TranscriptIntegrityReport:
        """Run ``verify_integrity`` over one project or the most recent ones."""
        if project_id:
            project = await self.storage.get(PROJECTS, project_id)
            project_ids = [project_id] if project else []
        else:
            projects = await self.storage.query(
                PROJECTS, sort="updated_at", descending=True, limit=max(1, limit)
            )
            project_ids = [doc["_id"] for doc in projects]

        records: list[TranscriptRecord] = []
        for pid in project_ids:
            records.extend(await self.get_for_project(pid))

        report = verify_integrity(records)
        if report.anomalies:
            logger.warning(
                f"Transcript integrity anomalies detected in {len(report.anomalies)} "
                f"of {report.checked} records",
                extra={"anomalies": [entry.model_dump() for entry in report.anomalies]},
            )
        else:
            logger.info(f"Transcript integrity check passed ({report.checked} records)")
        return report


def to_doc_item(item: TranscriptItem) -> dict[str, Any]:
    """Storage form of a transcript item (unset fields omitted)."""
    return item.model_dump(exclude_none=True)
