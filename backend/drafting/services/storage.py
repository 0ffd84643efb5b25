"""Storage backends for the drafting pipeline.

Supports two backends:
1. MongoDB (durable) - default
2. In-memory (fallback) - for testing or local runs without MongoDB

Every service receives a ``Storage`` and only talks to it through
``get/insert/patch/delete`` plus indexed queries. Two primitives carry the
concurrency contract:

- ``conditional_patch`` applies a patch only if the stored document still
  matches an expected state (atomic compare-and-set). Claiming a job uses it.
- Unique keys reject a second document holding the same key values.
  ``draft_jobs.active_project_id`` is unique, so at most one job per project
  can hold the active slot.

Conventions: documents carry a string ``_id``; a ``None`` value means "field
absent" (inserts drop it, patches unset it), so sparse unique keys ignore
documents that released them.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, TypeVar
from uuid import uuid4

from pydantic import BaseModel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection names
PROJECTS = "projects"
BLUEPRINTS = "project_blueprints"
SESSIONS = "sessions"
MESSAGES = "messages"
NOTES = "notes"
TODOS = "todos"
TRANSCRIPTS = "project_transcripts"
DRAFT_JOBS = "draft_jobs"
DOCUMENTS = "documents"
DOCUMENT_SECTIONS = "document_sections"

# Unique keys per collection (documents missing any key field are exempt)
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    TRANSCRIPTS: [("project_id", "session_id")],
    DRAFT_JOBS: [("active_project_id",)],
    DOCUMENTS: [("project_id",)],
}

# Secondary indexes used by the services' queries
QUERY_INDEXES: dict[str, list[tuple[str, ...]]] = {
    BLUEPRINTS: [("project_id",)],
    MESSAGES: [("session_id",)],
    NOTES: [("project_id",)],
    TODOS: [("project_id",)],
    TRANSCRIPTS: [("project_id",)],
    DRAFT_JOBS: [("project_id",), ("status", "created_at")],
    DOCUMENT_SECTIONS: [("document_id", "order")],
}


class DuplicateKeyError(Exception):
    """Raised when a write would violate a unique key."""

    def __init__(self, table: str, key: tuple[str, ...]):
        self.table = table
        self.key = key
        super().__init__(f"Duplicate key {key} in {table}")


def new_id() -> str:
    """Generate a document identifier."""
    return uuid4().hex


def to_doc(model: BaseModel) -> dict[str, Any]:
    """Convert a model to a storage document (``id`` becomes ``_id``)."""
    doc = model.model_dump(exclude={"id"})
    doc["_id"] = model.id  # type: ignore[attr-defined]
    return _plain(doc)


def from_doc(model_cls: type[ModelT], doc: dict[str, Any]) -> ModelT:
    """Convert a storage document to a model (``_id`` becomes ``id``)."""
    return model_cls.model_validate({**doc, "id": str(doc["_id"])})


def _plain(value: Any) -> Any:
    """Reduce enums to their values so both backends store plain data."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _strip_none(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


def _matches(doc: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """Evaluate equality and ``$in`` filters against a document."""
    for key, expected in (filters or {}).items():
        actual = doc.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            if actual not in expected["$in"]:
                return False
        elif actual != expected:
            return False
    return True


class Storage(ABC):
    """Transactional storage interface used by every drafting service."""

    async def ensure_indexes(self) -> None:
        """Called on application startup. Override to create indexes."""
        pass

    @abstractmethod
    async def get(self, table: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Get a document by ID."""

    @abstractmethod
    async def insert(self, table: str, doc: dict[str, Any]) -> str:
        """Insert a document and return its ID.

        Raises:
            DuplicateKeyError: If a unique key is already taken.
        """

    @abstractmethod
    async def patch(
        self, table: str, doc_id: str, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Set (or unset, for ``None`` values) fields and return the document."""

    @abstractmethod
    async def conditional_patch(
        self,
        table: str,
        doc_id: str,
        expected: dict[str, Any],
        fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        """Patch only if the document still matches ``expected``.

        Returns:
            The updated document, or None if the document is gone or no
            longer matches (another caller won).
        """

    @abstractmethod
    async def delete(self, table: str, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        sort: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """List documents matching equality / ``$in`` filters."""

    async def find_one(
        self, table: str, filters: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Return the first document matching ``filters``."""
        docs = await self.query(table, filters, limit=1)
        return docs[0] if docs else None


class InMemoryStorage(Storage):
    """In-memory storage guarded by a single asyncio lock.

    Every operation runs under the lock, which makes ``conditional_patch``
    and unique-key checks atomic within one event loop. Data is lost on
    restart.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def _check_unique(self, table: str, doc: dict[str, Any]) -> None:
        for key in UNIQUE_KEYS.get(table, []):
            if any(doc.get(field) is None for field in key):
                continue
            for other_id, other in self._table(table).items():
                if other_id == doc["_id"]:
                    continue
                if all(other.get(field) == doc.get(field) for field in key):
                    raise DuplicateKeyError(table, key)

    async def get(self, table: str, doc_id: str) -> Optional[dict[str, Any]]:
        async with self._lock:
            doc = self._table(table).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def insert(self, table: str, doc: dict[str, Any]) -> str:
        stored = _strip_none(_plain(copy.deepcopy(doc)))
        stored.setdefault("_id", new_id())
        async with self._lock:
            self._check_unique(table, stored)
            self._table(table)[stored["_id"]] = stored
        return stored["_id"]

    def _apply_patch(
        self, table: str, doc: dict[str, Any], fields: dict[str, Any]
    ) -> dict[str, Any]:
        updated = copy.deepcopy(doc)
        for key, value in fields.items():
            if value is None:
                updated.pop(key, None)
            else:
                updated[key] = _plain(copy.deepcopy(value))
        self._check_unique(table, updated)
        self._table(table)[updated["_id"]] = updated
        return copy.deepcopy(updated)

    async def patch(
        self, table: str, doc_id: str, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        async with self._lock:
            doc = self._table(table).get(doc_id)
            if doc is None:
                return None
            return self._apply_patch(table, doc, fields)

    async def conditional_patch(
        self,
        table: str,
        doc_id: str,
        expected: dict[str, Any],
        fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        async with self._lock:
            doc = self._table(table).get(doc_id)
            if doc is None or not _matches(doc, expected):
                return None
            return self._apply_patch(table, doc, fields)

    async def delete(self, table: str, doc_id: str) -> bool:
        async with self._lock:
            return self._table(table).pop(doc_id, None) is not None

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        sort: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        async with self._lock:
            docs = [
                copy.deepcopy(doc)
                for doc in self._table(table).values()
                if _matches(doc, filters)
            ]
        if sort:
            # Stable sort keeps insertion order for ties
            present = [doc for doc in docs if doc.get(sort) is not None]
            missing = [doc for doc in docs if doc.get(sort) is None]
            present.sort(key=lambda doc: doc[sort], reverse=descending)
            docs = present + missing
        if limit is not None:
            docs = docs[:limit]
        return docs


class MongoStorage(Storage):
    """MongoDB-backed storage.

    ``conditional_patch`` maps onto ``find_one_and_update`` with the expected
    state folded into the filter, so the compare-and-set happens server-side.
    """

    def __init__(self) -> None:
        self._index_created = False

    async def _get_collection(self, table: str):
        """Get the MongoDB collection."""
        from drafting.db.mongo import get_database
        db = await get_database()
        return db[table]

    async def ensure_indexes(self) -> None:
        """Create unique and query indexes if not exists."""
        if self._index_created:
            return

        try:
            for table, keys in UNIQUE_KEYS.items():
                collection = await self._get_collection(table)
                for key in keys:
                    await collection.create_index(
                        [(field, 1) for field in key],
                        unique=True,
                        sparse=True,
                    )
            for table, keys in QUERY_INDEXES.items():
                collection = await self._get_collection(table)
                for key in keys:
                    await collection.create_index([(field, 1) for field in key])
            self._index_created = True
            logger.info("MongoDB drafting indexes created")
        except Exception as e:
            logger.warning(f"Failed to create MongoDB drafting indexes: {e}")

    @staticmethod
    def _update_document(fields: dict[str, Any]) -> dict[str, Any]:
        to_set = {k: _plain(v) for k, v in fields.items() if v is not None and k != "_id"}
        to_unset = {k: "" for k, v in fields.items() if v is None}
        update: dict[str, Any] = {}
        if to_set:
            update["$set"] = to_set
        if to_unset:
            update["$unset"] = to_unset
        return update

    async def get(self, table: str, doc_id: str) -> Optional[dict[str, Any]]:
        collection = await self._get_collection(table)
        return await collection.find_one({"_id": doc_id})

    async def insert(self, table: str, doc: dict[str, Any]) -> str:
        from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

        await self.ensure_indexes()
        stored = _strip_none(_plain(doc))
        stored.setdefault("_id", new_id())
        collection = await self._get_collection(table)
        try:
            await collection.insert_one(stored)
        except MongoDuplicateKeyError as e:
            raise DuplicateKeyError(table, tuple((e.details or {}).get("keyValue") or ())) from e
        return stored["_id"]

    async def patch(
        self, table: str, doc_id: str, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        return await self.conditional_patch(table, doc_id, {}, fields)

    async def conditional_patch(
        self,
        table: str,
        doc_id: str,
        expected: dict[str, Any],
        fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        from pymongo import ReturnDocument
        from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

        collection = await self._get_collection(table)
        update = self._update_document(fields)
        query = {"_id": doc_id, **_plain(expected)}
        if not update:
            return await collection.find_one(query)
        try:
            return await collection.find_one_and_update(
                query,
                update,
                return_document=ReturnDocument.AFTER,
            )
        except MongoDuplicateKeyError as e:
            raise DuplicateKeyError(table, tuple((e.details or {}).get("keyValue") or ())) from e

    async def delete(self, table: str, doc_id: str) -> bool:
        collection = await self._get_collection(table)
        result = await collection.delete_one({"_id": doc_id})
        return result.deleted_count > 0

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        sort: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        collection = await self._get_collection(table)
        cursor = collection.find(_plain(filters or {}))
        if sort:
            cursor = cursor.sort(sort, -1 if descending else 1)
        if limit is not None:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=limit)


# Module-level singleton instance
_default_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """Get the default storage singleton.

    Uses MongoDB unless ``STORAGE_BACKEND=memory``.
    """
    global _default_storage
    if _default_storage is None:
        use_mongo = os.getenv("STORAGE_BACKEND", "mongo").lower() == "mongo"
        if use_mongo:
            _default_storage = MongoStorage()
            logger.info("Using MongoDB drafting storage")
        else:
            _default_storage = InMemoryStorage()
            logger.info("Using in-memory drafting storage")
    return _default_storage


def set_storage(storage: Optional[Storage]) -> None:
    """Set the storage instance (for testing)."""
    global _default_storage
    _default_storage = storage
