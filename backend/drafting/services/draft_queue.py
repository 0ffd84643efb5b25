"""Background drafting queue.

One logical queue shared by every project. Any caller (HTTP trigger, worker
script, tests) drives it through ``process_one``/``process_batch``; several
batches may run at once.

Concurrency contract:
- ``claim_next`` is a conditional transition on ``(status, attempt_count)``,
  so exactly one caller wins a given job.
- A job holds ``active_project_id`` while it is queued or running. The field
  is unique, so a project never has two active jobs and enqueue coalesces
  into the existing one instead.

Retry policy: a failed attempt re-queues the job (error kept for
diagnostics) until ``MAX_JOB_ATTEMPTS``; the last failure is terminal and
sends exactly one alert. A job claimed before its transcript has any text is
re-queued without consuming an attempt.
"""

from __future__ import annotations

import logging
import os
import time
from datetime import timedelta
from typing import Any, List, Optional

from drafting.models.context import Blueprint, Note, Project, SessionMessage, Todo
from drafting.models.draft_job import (
    MAX_JOB_ATTEMPTS,
    TERMINAL_JOB_STATUSES,
    DraftJob,
    DraftJobStatus,
    DraftQueueProcessResult,
    DraftQueueState,
    LatestTranscriptInfo,
    ModelUsage,
    ProcessReason,
)
from drafting.models.timestamps import ensure_tz_aware, utcnow
from drafting.models.transcript import TranscriptItem, TranscriptRecord

from .document_service import DocumentService
from .errors import JobNotFoundError, ProjectNotFoundError
from .progress import ProgressReporter, SectionProgress
from .prompt_assembler import assemble_drafting_prompt
from .storage import (
    BLUEPRINTS,
    DRAFT_JOBS,
    MESSAGES,
    NOTES,
    PROJECTS,
    TODOS,
    DuplicateKeyError,
    Storage,
    from_doc,
    new_id,
    to_doc,
)
from .telemetry import DraftJobAlert, DraftJobMetric, DraftTelemetry, TokenCounts
from .transcript_store import TranscriptStore, extract_transcript_text

logger = logging.getLogger(__name__)

# Requests with the same normalized summary inside this window are duplicates
DUPLICATE_WINDOW_SECONDS = 90

DEFAULT_BATCH_LIMIT = 3
MAX_BATCH_LIMIT = 10

NOTE_CONTEXT_LIMIT = 40
RECENT_JOBS_LIMIT = 5

# Claims retried against a fresh queue snapshot before giving up
MAX_CLAIM_ROUNDS = 5

STALE_JOB_ERROR = "Job exceeded the running time limit and was recovered"


def normalize_summary(summary: Optional[str]) -> str:
    return (summary or "").strip().lower()


def _clean_text(value: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _clean_list(values: Optional[List[str]]) -> List[str]:
    return [value for value in (values or []) if isinstance(value, str) and value.strip()]


def clamp_batch_limit(limit: Optional[int]) -> int:
    return max(1, min(limit if limit is not None else DEFAULT_BATCH_LIMIT, MAX_BATCH_LIMIT))


def stale_after_seconds_from_env() -> Optional[float]:
    """``DRAFT_JOB_STALE_AFTER_SECONDS`` as a positive float, else None (disabled)."""
    raw = os.getenv("DRAFT_JOB_STALE_AFTER_SECONDS")
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid DRAFT_JOB_STALE_AFTER_SECONDS={raw!r}")
        return None
    return value if value > 0 else None


def build_message_map(messages: List[SessionMessage]) -> dict[str, SessionMessage]:
    """Index session messages by id and by each of their tags."""
    message_map: dict[str, SessionMessage] = {}
    for message in messages:
        message_map[message.id] = message
        for tag in message.tags:
            message_map[tag] = message
    return message_map


def resolve_transcript_items(
    records: List[TranscriptRecord], message_map: dict[str, SessionMessage]
) -> List[TranscriptItem]:
    """Flatten records and fill missing text from payloads or linked messages."""
    resolved = []
    for record in records:
        for item in record.items:
            text = item.text or extract_transcript_text(item.payload)
            if not text:
                linked = message_map.get(item.message_id or "") or message_map.get(
                    item.message_key or ""
                )
                text = linked.transcript if linked else None
            resolved.append(
                item.model_copy(
                    update={"text": text, "message_key": item.message_key or item.id}
                )
            )
    return resolved


class DraftQueue:
    """Enqueue, claim and process drafting jobs."""

    def __init__(
        self,
        storage: Storage,
        llm_client=None,
        documents: Optional[DocumentService] = None,
        transcripts: Optional[TranscriptStore] = None,
        telemetry: Optional[DraftTelemetry] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        self.storage = storage
        self._llm_client = llm_client
        self.documents = documents or DocumentService(storage, llm_client)
        self.transcripts = transcripts or TranscriptStore(storage)
        self.telemetry = telemetry or DraftTelemetry()
        self.progress = progress or ProgressReporter(storage)

    @property
    def llm_client(self):
        if self._llm_client is None:
            from drafting.llm.client import get_client
            self._llm_client = get_client()
        return self._llm_client

    # ------------------------------------------------------------------
    # Job records
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> DraftJob:
        doc = await self.storage.get(DRAFT_JOBS, job_id)
        if doc is None:
            raise JobNotFoundError(job_id)
        return from_doc(DraftJob, doc)

    async def get_active_job(self, project_id: str) -> Optional[DraftJob]:
        doc = await self.storage.find_one(DRAFT_JOBS, {"active_project_id": project_id})
        return from_doc(DraftJob, doc) if doc else None

    async def enqueue(
        self,
        project_id: str,
        session_id: str,
        summary: Optional[str] = None,
        urgency: Optional[str] = None,
        message_pointers: Optional[List[str]] = None,
        transcript_anchors: Optional[List[str]] = None,
        prompt_context: Any = None,
    ) -> DraftJob:
        """Queue a drafting request, coalescing into the project's active job.

        Precedence: merge into the active job; else return a job created in
        the last 90 seconds with the same normalized summary (patched only
        when the urgency changes); else insert a new queued job.
        """
        now = utcnow()
        summary_text = _clean_text(summary)
        urgency_text = _clean_text(urgency)
        pointers = _clean_list(message_pointers)
        anchors = _clean_list(transcript_anchors)

        active = await self.get_active_job(project_id)
        if active is not None:
            return await self._merge_into_active(
                active, summary_text, urgency_text, pointers, anchors, prompt_context, now
            )

        normalized = normalize_summary(summary_text)
        if normalized:
            recent = await self.storage.query(
                DRAFT_JOBS, {"project_id": project_id}, sort="created_at", descending=True
            )
            for doc in recent:
                job = from_doc(DraftJob, doc)
                if job.age_seconds(now) > DUPLICATE_WINDOW_SECONDS:
                    break
                if normalize_summary(job.summary) != normalized:
                    continue
                if not urgency_text or urgency_text == (job.urgency or "").strip():
                    logger.info(f"Duplicate draft request for project {project_id} -> job {job.id}")
                    return job
                updated = await self.storage.patch(
                    DRAFT_JOBS,
                    job.id,
                    {
                        "urgency": urgency_text,
                        "message_pointers": pointers or job.message_pointers,
                        "transcript_anchors": anchors or job.transcript_anchors,
                        "prompt_context": (
                            prompt_context if prompt_context is not None else job.prompt_context
                        ),
                        "updated_at": now,
                    },
                )
                logger.info(f"Escalated urgency of job {job.id} to {urgency_text!r}")
                return from_doc(DraftJob, updated) if updated else job

        job = DraftJob(
            id=new_id(),
            project_id=project_id,
            session_id=session_id,
            status=DraftJobStatus.queued,
            attempt_count=0,
            summary=summary_text,
            urgency=urgency_text,
            message_pointers=pointers,
            transcript_anchors=anchors,
            prompt_context=prompt_context,
            active_project_id=project_id,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.storage.insert(DRAFT_JOBS, to_doc(job))
        except DuplicateKeyError:
            # Another request took the active slot first
            active = await self.get_active_job(project_id)
            if active is None:
                raise
            return await self._merge_into_active(
                active, summary_text, urgency_text, pointers, anchors, prompt_context, now
            )

        logger.info(f"Queued draft job {job.id} for project {project_id}")
        return job

    async def _merge_into_active(
        self,
        active: DraftJob,
        summary: Optional[str],
        urgency: Optional[str],
        pointers: List[str],
        anchors: List[str],
        prompt_context: Any,
        now,
    ) -> DraftJob:
        updated = await self.storage.patch(
            DRAFT_JOBS,
            active.id,
            {
                "summary": summary if summary is not None else active.summary,
                "urgency": urgency if urgency is not None else active.urgency,
                "message_pointers": pointers or active.message_pointers,
                "transcript_anchors": anchors or active.transcript_anchors,
                "prompt_context": (
                    prompt_context if prompt_context is not None else active.prompt_context
                ),
                "updated_at": now,
            },
        )
        logger.info(f"Coalesced draft request into active job {active.id}")
        return from_doc(DraftJob, updated) if updated else active

    async def claim_next(self) -> Optional[DraftJob]:
        """Move the oldest queued job to running, or return None if none is queued."""
        for _ in range(MAX_CLAIM_ROUNDS):
            queued = await self.storage.query(
                DRAFT_JOBS, {"status": DraftJobStatus.queued}, sort="created_at"
            )
            if not queued:
                return None

            for doc in queued:
                attempt_count = doc.get("attempt_count", 0)
                now = utcnow()
                claimed = await self.storage.conditional_patch(
                    DRAFT_JOBS,
                    doc["_id"],
                    {"status": DraftJobStatus.queued, "attempt_count": attempt_count},
                    {
                        "status": DraftJobStatus.running,
                        "started_at": now,
                        "updated_at": now,
                        "error": None,
                        "attempt_count": attempt_count + 1,
                    },
                )
                if claimed is not None:
                    job = from_doc(DraftJob, claimed)
                    logger.info(f"Claimed draft job {job.id} (attempt {job.attempt_count})")
                    return job
                # Lost the race for this job; try the next one

        return None

    async def update_job_status(
        self,
        job_id: str,
        status: DraftJobStatus,
        summary: Optional[str] = None,
        error: Optional[str] = None,
        generated_summary: Optional[str] = None,
        duration_ms: Optional[int] = None,
        model_usage: Optional[ModelUsage] = None,
        attempt_count: Optional[int] = None,
        transcript_cursor=None,
    ) -> DraftJob:
        """Generic status patch.

        ``complete``/``error`` stamp ``completed_at`` and release the project's
        active slot. ``queued`` clears the run timestamps and duration, and
        clears ``error`` unless one is supplied.

        Raises:
            JobNotFoundError: Unknown job id.
            DuplicateKeyError: Re-activating a job while the project already
                has an active one.
        """
        job = await self.get_job(job_id)
        now = utcnow()
        fields: dict[str, Any] = {"status": status, "updated_at": now, "error": error}

        if summary is not None:
            fields["summary"] = summary
        if generated_summary is not None:
            fields["generated_summary"] = generated_summary
        if duration_ms is not None:
            fields["duration_ms"] = duration_ms
        if attempt_count is not None:
            fields["attempt_count"] = attempt_count
        if model_usage is not None:
            fields["model_usage"] = model_usage.model_dump(exclude_none=True)
        if transcript_cursor is not None:
            fields["transcript_cursor"] = transcript_cursor

        if status in TERMINAL_JOB_STATUSES:
            fields["completed_at"] = now
            fields["active_project_id"] = None
        else:
            fields["active_project_id"] = job.project_id

        if status == DraftJobStatus.queued:
            fields["started_at"] = None
            fields["completed_at"] = None
            fields["duration_ms"] = None

        updated = await self.storage.patch(DRAFT_JOBS, job_id, fields)
        if updated is None:
            raise JobNotFoundError(job_id)
        return from_doc(DraftJob, updated)

    async def get_queue_state(self, project_id: str) -> DraftQueueState:
        docs = await self.storage.query(
            DRAFT_JOBS, {"project_id": project_id}, sort="created_at", descending=True
        )
        jobs = [from_doc(DraftJob, doc) for doc in docs]
        active = next((job for job in jobs if job.is_active()), None)

        records = await self.transcripts.get_for_project(project_id)
        latest = records[0] if records else None

        return DraftQueueState(
            active_job=active,
            jobs=jobs[:RECENT_JOBS_LIMIT],
            latest_transcript=(
                LatestTranscriptInfo(
                    session_id=latest.session_id,
                    updated_at=latest.updated_at,
                    finalized_at=latest.finalized_at,
                    item_count=len(latest.items),
                )
                if latest
                else None
            ),
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _load_context(self, job: DraftJob) -> dict[str, Any]:
        project_doc = await self.storage.get(PROJECTS, job.project_id)
        blueprint_doc = await self.storage.find_one(BLUEPRINTS, {"project_id": job.project_id})
        note_docs = await self.storage.query(
            NOTES,
            {"project_id": job.project_id},
            sort="created_at",
            descending=True,
            limit=NOTE_CONTEXT_LIMIT,
        )
        todo_docs = await self.storage.query(
            TODOS, {"project_id": job.project_id}, sort="created_at"
        )
        message_docs = await self.storage.query(
            MESSAGES, {"session_id": job.session_id}, sort="timestamp"
        )
        return {
            "workspace": await self.documents.get_workspace(job.project_id),
            "project": from_doc(Project, project_doc) if project_doc else None,
            "blueprint": from_doc(Blueprint, blueprint_doc) if blueprint_doc else None,
            "records": await self.transcripts.get_for_project(job.project_id),
            "notes": [from_doc(Note, doc) for doc in note_docs],
            "todos": [from_doc(Todo, doc) for doc in todo_docs],
            "messages": [from_doc(SessionMessage, doc) for doc in message_docs],
        }

    def _log_stage(self, job_id: str, stage: str, started: float, **extra: Any) -> None:
        logger.info(
            f"Draft job {job_id} stage {stage}",
            extra={
                "job_id": job_id,
                "stage": stage,
                "duration_ms": int((time.time() - started) * 1000),
                **extra,
            },
        )

    async def process_one(self, dry_run: bool = False) -> DraftQueueProcessResult:
        """Claim and process the oldest queued job."""
        claimed = await self.claim_next()
        if claimed is None:
            return DraftQueueProcessResult(processed=False, reason=ProcessReason.empty)

        job_id = claimed.id
        project_id = claimed.project_id
        attempt_count = claimed.attempt_count

        if dry_run:
            await self.update_job_status(
                job_id,
                DraftJobStatus.queued,
                attempt_count=max(attempt_count - 1, 0),
            )
            return DraftQueueProcessResult(
                processed=False, reason=ProcessReason.dry_run, job_id=job_id
            )

        started_at = time.time()
        prompt_tokens: Optional[int] = None
        transcript_cursor = None

        try:
            await self._report_progress(
                job_id,
                DraftJobStatus.running,
                summary=claimed.summary,
                attempt_count=attempt_count,
            )
            await self._publish_metric(
                DraftJobMetric(
                    job_id=job_id,
                    project_id=project_id,
                    session_id=claimed.session_id,
                    status="running",
                    attempts=attempt_count,
                )
            )

            fetch_start = time.time()
            context = await self._load_context(claimed)
            records: List[TranscriptRecord] = context["records"]
            transcript_cursor = max(
                (record.updated_at for record in records), default=None
            )
            self._log_stage(
                job_id,
                "context_loaded",
                fetch_start,
                notes=len(context["notes"]),
                todos=len(context["todos"]),
                transcript_records=len(records),
                attempt_count=attempt_count,
            )

            project: Optional[Project] = context["project"]
            if project is None:
                raise ProjectNotFoundError(project_id)

            message_map = build_message_map(context["messages"])
            transcript_items = resolve_transcript_items(records, message_map)

            if not any((item.text or "").strip() for item in transcript_items):
                self._log_stage(
                    job_id,
                    "skipped_no_transcript",
                    time.time(),
                    transcript_items=len(transcript_items),
                )
                restored = max(attempt_count - 1, 0)
                await self.update_job_status(
                    job_id,
                    DraftJobStatus.queued,
                    attempt_count=restored,
                    transcript_cursor=claimed.transcript_cursor,
                )
                await self._report_progress(
                    job_id,
                    DraftJobStatus.queued,
                    summary=claimed.summary,
                    attempt_count=restored,
                )
                return DraftQueueProcessResult(
                    processed=False, reason=ProcessReason.no_transcript, job_id=job_id
                )

            referenced = [
                message_map[pointer]
                for pointer in claimed.message_pointers
                if pointer in message_map
            ]
            workspace = context["workspace"]

            prompt_start = time.time()
            prompt = assemble_drafting_prompt(
                project=project,
                blueprint=context["blueprint"],
                document=workspace.document,
                sections=workspace.sections,
                notes=context["notes"],
                todos=context["todos"],
                ordered_transcript=transcript_items,
                job=claimed,
                referenced_messages=referenced,
            )
            prompt_tokens = prompt.estimated_tokens
            self._log_stage(
                job_id,
                "prompt_ready",
                prompt_start,
                prompt_tokens=prompt_tokens,
                transcript_items=len(transcript_items),
            )

            model_start = time.time()
            result = await self.llm_client.draft(prompt.system_prompt, prompt.user_prompt)
            self._log_stage(
                job_id,
                "model_completed",
                model_start,
                usage=result.usage.model_dump() if result.usage else None,
            )

            existing_summary = workspace.document.summary if workspace.document else None
            active_section = claimed.active_section
            if active_section:
                if len(result.sections) != 1:
                    logger.warning(
                        f'Expected 1 section for active section "{active_section}", '
                        f"got {len(result.sections)}. Using first section only."
                    )
                if not result.sections:
                    raise ValueError(
                        f'Model did not return any sections for active section "{active_section}"'
                    )
                await self.documents.apply_section_edit(
                    project_id,
                    active_section,
                    result.markdown.strip(),
                    status=result.sections[0].status,
                    summary=result.summary or existing_summary,
                )
            else:
                await self.documents.apply_full_edits(
                    project_id,
                    result.markdown,
                    result.sections,
                    summary=result.summary or existing_summary,
                )

            duration_ms = int((time.time() - started_at) * 1000)
            await self.update_job_status(
                job_id,
                DraftJobStatus.complete,
                summary=claimed.summary,
                generated_summary=result.summary,
                duration_ms=duration_ms,
                model_usage=result.usage,
                attempt_count=attempt_count,
                transcript_cursor=transcript_cursor,
            )
        except Exception as e:
            return await self._handle_failure(
                claimed, e, started_at, prompt_tokens, transcript_cursor
            )

        # The job is terminal from here on; nothing below may send it back to the queue
        logger.info(
            f"Draft job {job_id} completed in {duration_ms}ms "
            f"(attempt {attempt_count}, ~{prompt_tokens} prompt tokens)"
        )
        await self._report_progress(
            job_id,
            DraftJobStatus.complete,
            summary=result.summary or claimed.summary,
            sections=[
                SectionProgress(
                    heading=section.heading,
                    status=section.status.value if section.status else None,
                    order=section.order,
                )
                for section in result.sections
            ],
            attempt_count=attempt_count,
        )
        usage = result.usage
        await self._publish_metric(
            DraftJobMetric(
                job_id=job_id,
                project_id=project_id,
                session_id=claimed.session_id,
                status="complete",
                duration_ms=duration_ms,
                attempts=attempt_count,
                prompt_tokens=prompt_tokens,
                tokens=(
                    TokenCounts(
                        input=usage.input_tokens,
                        output=usage.output_tokens,
                        total=usage.total_tokens,
                    )
                    if usage
                    else None
                ),
            )
        )
        return DraftQueueProcessResult(processed=True, job_id=job_id)

    # Progress, metrics and alerts are side channels: a broken sink is logged
    # and never changes the outcome of a job.

    async def _report_progress(self, job_id: str, status: DraftJobStatus, **fields) -> None:
        try:
            await self.progress.report(job_id, status, **fields)
        except Exception as e:
            logger.error(f"Progress report ({status.value}) for draft job {job_id} failed: {e}")

    async def _publish_metric(self, metric: DraftJobMetric) -> None:
        try:
            await self.telemetry.publish_metrics(metric)
        except Exception as e:
            logger.error(f"Metric ({metric.status}) for draft job {metric.job_id} failed: {e}")

    async def _send_alert(self, alert: DraftJobAlert) -> None:
        try:
            await self.telemetry.send_alert(alert)
        except Exception as e:
            logger.error(f"Alert for draft job {alert.job_id} failed: {e}")

    async def _handle_failure(
        self,
        job: DraftJob,
        error: Exception,
        started_at: float,
        prompt_tokens: Optional[int],
        transcript_cursor,
    ) -> DraftQueueProcessResult:
        duration_ms = int((time.time() - started_at) * 1000)
        should_retry = job.attempt_count < MAX_JOB_ATTEMPTS
        message = str(error) or f"Unexpected error: {type(error).__name__}"

        logger.error(
            f"Draft job {job.id} failed on attempt {job.attempt_count}: {message}",
            exc_info=True,
            extra={"job_id": job.id, "attempt_count": job.attempt_count},
        )

        await self.update_job_status(
            job.id,
            DraftJobStatus.queued if should_retry else DraftJobStatus.error,
            error=message,
            duration_ms=duration_ms,
            attempt_count=job.attempt_count,
            transcript_cursor=transcript_cursor,
        )
        await self._report_progress(
            job.id,
            DraftJobStatus.error,
            summary=job.summary,
            error=message,
            attempt_count=job.attempt_count,
        )
        await self._publish_metric(
            DraftJobMetric(
                job_id=job.id,
                project_id=job.project_id,
                session_id=job.session_id,
                status="error",
                duration_ms=duration_ms,
                attempts=job.attempt_count,
                prompt_tokens=prompt_tokens,
            )
        )

        if not should_retry:
            await self._send_alert(
                DraftJobAlert(
                    job_id=job.id,
                    project_id=job.project_id,
                    session_id=job.session_id,
                    message=message,
                    severity="error",
                    summary=job.summary,
                )
            )

        return DraftQueueProcessResult(
            processed=False,
            reason=ProcessReason.retry if should_retry else ProcessReason.error,
            job_id=job.id,
        )

    async def process_batch(
        self, limit: Optional[int] = None, dry_run: bool = False
    ) -> List[DraftQueueProcessResult]:
        """Run ``process_one`` up to ``limit`` times (clamped to 1..10, default 3).

        Stops at the first result that did not process a job.
        """
        stale_after = stale_after_seconds_from_env()
        if stale_after is not None:
            await self.recover_stale_jobs(stale_after)

        results: List[DraftQueueProcessResult] = []
        for _ in range(clamp_batch_limit(limit)):
            result = await self.process_one(dry_run=dry_run)
            results.append(result)
            if not result.processed:
                break
        return results

    async def recover_stale_jobs(self, stale_after_seconds: float) -> List[DraftJob]:
        """Return running jobs older than the threshold to the queue.

        A recovered job counts its stuck run as a failed attempt: it is
        re-queued below the attempt ceiling and marked ``error`` (with an
        alert) once the ceiling is reached.
        """
        cutoff = utcnow() - timedelta(seconds=stale_after_seconds)
        running = await self.storage.query(DRAFT_JOBS, {"status": DraftJobStatus.running})
        recovered: List[DraftJob] = []

        for doc in running:
            job = from_doc(DraftJob, doc)
            if job.started_at is None or ensure_tz_aware(job.started_at) > cutoff:
                continue

            terminal = job.attempt_count >= MAX_JOB_ATTEMPTS
            now = utcnow()
            fields: dict[str, Any] = {
                "status": DraftJobStatus.error if terminal else DraftJobStatus.queued,
                "error": STALE_JOB_ERROR,
                "updated_at": now,
            }
            if terminal:
                fields["completed_at"] = now
                fields["active_project_id"] = None
            else:
                fields["started_at"] = None

            updated = await self.storage.conditional_patch(
                DRAFT_JOBS,
                job.id,
                {"status": DraftJobStatus.running, "attempt_count": job.attempt_count},
                fields,
            )
            if updated is None:
                continue

            recovered_job = from_doc(DraftJob, updated)
            recovered.append(recovered_job)
            logger.warning(
                f"Recovered stale draft job {job.id} -> {recovered_job.status.value}",
                extra={"job_id": job.id, "attempt_count": job.attempt_count},
            )
            if terminal:
                await self._send_alert(
                    DraftJobAlert(
                        job_id=job.id,
                        project_id=job.project_id,
                        session_id=job.session_id,
                        message=STALE_JOB_ERROR,
                        severity="error",
                        summary=job.summary,
                    )
                )

        return recovered


_default_queue: Optional[DraftQueue] = None


def get_draft_queue() -> DraftQueue:
    """Get the default queue singleton bound to the default storage."""
    global _default_queue
    if _default_queue is None:
        from .storage import get_storage
        _default_queue = DraftQueue(get_storage())
    return _default_queue


def set_draft_queue(queue: Optional[DraftQueue]) -> None:
    """Set the queue instance (for testing)."""
    global _default_queue
    _default_queue = queue
