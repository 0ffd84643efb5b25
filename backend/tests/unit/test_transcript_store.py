"""Unit tests for the transcript store.

Tests cover:
- Causal ordering (idempotence, completeness, branches and cycles)
- Fragment merging without losing fields
- Text extraction and payload sanitization at ingest
- Ingest/finalize lifecycle and concurrent ingest
- Integrity audit
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest

from drafting.models import TranscriptItem, TranscriptItemInput, TranscriptRecord
from drafting.services.storage import PROJECTS, TRANSCRIPTS
from drafting.services.transcript_store import (
    TranscriptStore,
    check_record,
    extract_transcript_text,
    merge_transcript_item,
    reconstruct_order,
    sanitize_payload,
    verify_integrity,
)

BASE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def item(item_id: str, previous: str | None = None, seconds: int = 0, **kwargs) -> TranscriptItem:
    return TranscriptItem(
        id=item_id,
        previous_item_id=previous,
        created_at=BASE + timedelta(seconds=seconds),
        **kwargs,
    )


def ids(items):
    return [entry.id for entry in items]


class TestReconstructOrder:
    """Tests for chain ordering."""

    def test_orders_shuffled_chain(self):
        chain = [item("a"), item("b", "a"), item("c", "b"), item("d", "c")]
        shuffled = [chain[2], chain[0], chain[3], chain[1]]
        assert ids(reconstruct_order(shuffled)) == ["a", "b", "c", "d"]

    def test_unknown_predecessor_starts_a_chain(self):
        items = [item("x", "gone"), item("y", "x")]
        assert ids(reconstruct_order(items)) == ["x", "y"]

    def test_branch_loser_kept_after_chains(self):
        items = [item("a"), item("b", "a"), item("c", "a")]
        assert ids(reconstruct_order(items)) == ["a", "b", "c"]

    def test_cycle_members_not_dropped(self):
        items = [item("a", "b"), item("b", "a"), item("c")]
        result = reconstruct_order(items)
        assert sorted(ids(result)) == ["a", "b", "c"]
        assert ids(result)[0] == "c"

    def test_empty_and_single(self):
        assert reconstruct_order([]) == []
        single = [item("a", "missing")]
        assert ids(reconstruct_order(single)) == ["a"]

    def test_idempotent_and_complete_for_random_sets(self):
        rng = random.Random(7)
        for _ in range(200):
            size = rng.randint(0, 12)
            pool = [f"i{n}" for n in range(size)]
            items = [
                item(
                    pool[index],
                    rng.choice(pool + [None, "ghost"]) if pool else None,
                )
                for index in range(size)
            ]
            once = reconstruct_order(items)
            twice = reconstruct_order(once)
            assert ids(twice) == ids(once)
            assert sorted(map(id, once)) == sorted(map(id, items))


class TestMergeTranscriptItem:
    """Tests for fragment merging."""

    def test_incoming_non_null_fields_win(self):
        existing = item("a", role="user", text="old")
        incoming = item("a", text="new", seconds=5)
        merged = merge_transcript_item(existing, incoming)
        assert merged.text == "new"
        assert merged.role == "user"

    def test_never_loses_existing_field(self):
        existing = item("a", role="user", status="completed", message_id="m1", text="hello")
        merged = merge_transcript_item(existing, item("a"))
        for field in ("role", "status", "message_id", "text"):
            assert getattr(merged, field) == getattr(existing, field)

    def test_keeps_earliest_created_at(self):
        merged = merge_transcript_item(item("a", seconds=10), item("a", seconds=2))
        assert merged.created_at == BASE + timedelta(seconds=2)

    def test_message_key_falls_back_to_id(self):
        assert merge_transcript_item(item("a"), item("a")).message_key == "a"
        assert merge_transcript_item(item("a", message_key="k"), item("a")).message_key == "k"


class TestPayloadHelpers:
    """Tests for text extraction and payload sanitization."""

    def test_extract_text_from_nested_payload(self):
        assert extract_transcript_text({"content": [{"transcript": "hi"}, {"text": "there"}]}) == "hi there"
        assert extract_transcript_text({"value": "v"}) == "v"
        assert extract_transcript_text({"other": 1}) is None
        assert extract_transcript_text(None) is None

    def test_sanitize_bytes_and_unsupported(self):
        payload = {"audio": b"\x01\x02", "when": object(), "nested": [1, "a", {2, 3}], 5: True}
        assert sanitize_payload(payload) == {"audio": [1, 2], "nested": [1, "a"], "5": True}

    def test_sanitize_unsupported_root(self):
        assert sanitize_payload(object()) is None


class TestTranscriptStore:
    """Tests for ingest, finalize and project reads."""

    @pytest.mark.asyncio
    async def test_ingest_creates_record(self, storage):
        store = TranscriptStore(storage)
        record = await store.ingest("p1", "s1", TranscriptItemInput(id="a", role="user", text="  hello  "))
        assert record.project_id == "p1"
        assert record.items[0].text == "hello"
        assert record.items[0].message_key is None

    @pytest.mark.asyncio
    async def test_ingest_extracts_text_from_payload(self, storage):
        store = TranscriptStore(storage)
        record = await store.ingest(
            "p1", "s1", TranscriptItemInput(id="a", payload={"content": [{"transcript": "spoken"}]})
        )
        assert record.items[0].text == "spoken"

    @pytest.mark.asyncio
    async def test_ingest_merges_and_orders(self, storage):
        store = TranscriptStore(storage)
        await store.ingest("p1", "s1", TranscriptItemInput(id="b", previous_item_id="a", created_at=2000))
        await store.ingest("p1", "s1", TranscriptItemInput(id="a", created_at=1000, role="user"))
        record = await store.ingest("p1", "s1", TranscriptItemInput(id="a", text="first words"))

        assert ids(record.items) == ["a", "b"]
        assert record.items[0].role == "user"
        assert record.items[0].text == "first words"
        assert record.items[0].created_at == datetime.fromtimestamp(1, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_concurrent_ingest_keeps_every_item(self, storage):
        store = TranscriptStore(storage)
        await asyncio.gather(
            *[
                store.ingest("p1", "s1", TranscriptItemInput(id=f"i{n}", text=f"line {n}"))
                for n in range(6)
            ]
        )
        record = await store.get_record("p1", "s1")
        assert sorted(ids(record.items)) == [f"i{n}" for n in range(6)]
        assert len(await storage.query(TRANSCRIPTS, {"project_id": "p1"})) == 1

    @pytest.mark.asyncio
    async def test_finalize_existing_record(self, storage):
        store = TranscriptStore(storage)
        await store.ingest("p1", "s1", TranscriptItemInput(id="b", previous_item_id="a"))
        await store.ingest("p1", "s1", TranscriptItemInput(id="a"))
        record = await store.finalize("p1", "s1")
        assert record.is_finalized
        assert ids(record.items) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_finalize_creates_empty_record(self, storage):
        record = await TranscriptStore(storage).finalize("p1", "s-new")
        assert record.is_finalized
        assert record.items == []

    @pytest.mark.asyncio
    async def test_get_for_project_most_recent_first(self, storage):
        store = TranscriptStore(storage)
        older = await store.ingest("p1", "s1", TranscriptItemInput(id="a"))
        await store.ingest("p1", "s2", TranscriptItemInput(id="b"))
        await storage.patch(TRANSCRIPTS, older.id, {"updated_at": BASE})
        await store.ingest("p2", "s3", TranscriptItemInput(id="c"))
        records = await store.get_for_project("p1")
        assert [record.session_id for record in records] == ["s2", "s1"]


class TestIntegrity:
    """Tests for the integrity audit."""

    def _record(self, items):
        return TranscriptRecord(id="r", project_id="p1", session_id="s1", items=items)

    def test_healthy_record(self):
        assert check_record(self._record([item("a"), item("b", "a", seconds=1)])) == []

    def test_detects_anomalies(self):
        issues = check_record(
            self._record([item("a", seconds=5), item("b", "a", seconds=1), item("b", "a", seconds=6), item("c", "zz", seconds=7)])
        )
        assert "duplicate item id b" in issues
        assert "createdAt regression at b" in issues
        assert "missing previousItemId zz referenced by c" in issues

    def test_verify_integrity_report(self):
        report = verify_integrity([self._record([item("a")]), self._record([item("x", "missing")])])
        assert report.checked == 2
        assert not report.ok
        assert report.issue_count == 1

    @pytest.mark.asyncio
    async def test_audit_single_project(self, storage):
        await storage.insert(PROJECTS, {"_id": "p1", "title": "T"})
        store = TranscriptStore(storage)
        await store.ingest("p1", "s1", TranscriptItemInput(id="a", previous_item_id="ghost"))
        report = await store.audit(project_id="p1")
        assert report.checked == 1
        assert report.anomalies[0].issues == ["missing previousItemId ghost referenced by a"]

    @pytest.mark.asyncio
    async def test_audit_unknown_project_checks_nothing(self, storage):
        report = await TranscriptStore(storage).audit(project_id="nope")
        assert report.checked == 0
        assert report.ok
