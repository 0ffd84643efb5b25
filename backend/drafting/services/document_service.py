"""Document merge engine.

Applies drafting output to the persisted document, either as a full
reconciliation of every section or as a surgical edit of one section, and
owns structural outline changes.

Sections are identified by heading (case-insensitive). When two stored
sections share a heading, the first one by ``order`` is the match; the
others are treated as strays. Only ``manage_outline`` renames or moves
sections.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

from drafting.models.document import (
    Document,
    DocumentSection,
    OutlineAction,
    OutlineOperation,
    OutlineResult,
    SectionInput,
    SectionStatus,
    SectionStatusSummary,
    SummaryResult,
    Workspace,
    WorkspaceProgress,
    heading_key,
)
from drafting.models.timestamps import utcnow

from .errors import DocumentNotFoundError, SectionNotFoundError
from .storage import (
    DOCUMENT_SECTIONS,
    DOCUMENTS,
    DuplicateKeyError,
    Storage,
    from_doc,
    new_id,
    to_doc,
)

logger = logging.getLogger(__name__)

SUMMARY_EXCERPT_CHARS = 6000

_HEADING_LINE = re.compile(r"^(#{1,6}\s+.+)$", re.MULTILINE)
_HEADING_TEXT = re.compile(r"^#{1,6}\s+(.+)$")


def resolve_document_status(sections: Iterable[SectionInput]) -> SectionStatus:
    """complete iff every section is complete, else needs_detail if any is, else drafting."""
    statuses = [section.status or SectionStatus.drafting for section in sections]
    if not statuses:
        return SectionStatus.drafting
    if all(status == SectionStatus.complete for status in statuses):
        return SectionStatus.complete
    if any(status == SectionStatus.needs_detail for status in statuses):
        return SectionStatus.needs_detail
    return SectionStatus.drafting


def normalize_sections(sections: List[SectionInput]) -> List[SectionInput]:
    """Trim headings, default statuses, drop repeated headings, order 0..n-1.

    Missing status is ``needs_detail`` for empty content, else ``drafting``.
    Explicit ``order`` values rank sections; ties keep input order.
    """
    ranked = sorted(
        enumerate(sections),
        key=lambda pair: (pair[1].order if pair[1].order is not None else pair[0], pair[0]),
    )
    normalized: List[SectionInput] = []
    seen: set[str] = set()
    for _, section in ranked:
        heading = section.heading.strip()
        key = heading_key(heading)
        if not key or key in seen:
            logger.warning(f"Skipping blank or repeated section heading {heading!r}")
            continue
        seen.add(key)
        status = section.status or (
            SectionStatus.needs_detail if not section.content.strip() else SectionStatus.drafting
        )
        normalized.append(
            SectionInput(
                heading=heading,
                content=section.content,
                status=status,
                order=len(normalized),
            )
        )
    return normalized


def split_markdown_sections(markdown: str) -> tuple[str, list[tuple[str, str]]]:
    """Split Markdown into a preamble and ``(heading line, body)`` pairs."""
    parts = _HEADING_LINE.split(markdown)
    preamble = parts[0]
    blocks = [(parts[i], parts[i + 1] if i + 1 < len(parts) else "") for i in range(1, len(parts), 2)]
    return preamble, blocks


def _heading_text(line: str) -> Optional[str]:
    match = _HEADING_TEXT.match(line.strip())
    return match.group(1).strip() if match else None


def _split_leading_heading(section_markdown: str) -> tuple[Optional[str], str]:
    """Separate a leading heading line from the body of a section edit."""
    text = section_markdown.strip()
    first_line, _, rest = text.partition("\n")
    if _heading_text(first_line) is not None:
        return first_line.strip(), rest.strip()
    return None, text


def replace_section_markdown(
    markdown: str, heading: str, body: str
) -> str:
    """Rewrite the body under ``heading`` in raw Markdown.

    Other blocks keep their text; if the heading is absent from the raw
    Markdown the section is appended at the end.
    """
    target = heading_key(heading)
    preamble, blocks = split_markdown_sections(markdown)

    parts: list[str] = []
    if preamble.strip():
        parts.append(preamble.strip())

    found = False
    for heading_line, block_body in blocks:
        text = _heading_text(heading_line)
        if not found and text is not None and heading_key(text) == target:
            parts.append(f"{heading_line.strip()}\n\n{body}".rstrip())
            found = True
        else:
            # Only line terminators are trimmed; the join restores the blank line
            parts.append(f"{heading_line}{block_body}".rstrip("\n"))

    if not found:
        logger.warning(
            f'Section "{heading}" missing from raw markdown; appending the edit at the end'
        )
        parts.append(f"# {heading}\n\n{body}".rstrip())

    return "\n\n".join(parts).strip()


def build_outline_markdown(sections: List[DocumentSection]) -> str:
    return "\n\n".join(f"# {section.heading}\n\n{section.content}" for section in sections)


class DocumentService:
    """Reads and mutates a project's document and its sections."""

    def __init__(self, storage: Storage, llm_client=None):
        self.storage = storage
        self._llm_client = llm_client

    @property
    def llm_client(self):
        if self._llm_client is None:
            from drafting.llm.client import get_client
            self._llm_client = get_client()
        return self._llm_client

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, project_id: str) -> Optional[Document]:
        doc = await self.storage.find_one(DOCUMENTS, {"project_id": project_id})
        return from_doc(Document, doc) if doc else None

    async def list_sections(self, document_id: str) -> List[DocumentSection]:
        """Sections sorted by order."""
        docs = await self.storage.query(DOCUMENT_SECTIONS, {"document_id": document_id})
        sections = [from_doc(DocumentSection, doc) for doc in docs]
        return sorted(sections, key=lambda section: section.order)

    async def get_workspace(self, project_id: str) -> Workspace:
        document = await self.get_document(project_id)
        if document is None:
            return Workspace()
        sections = await self.list_sections(document.id)
        return Workspace(
            document=document,
            sections=sections,
            progress=WorkspaceProgress(
                word_count=document.word_count,
                section_statuses=[
                    SectionStatusSummary(
                        section_id=section.id,
                        heading=section.heading,
                        status=section.status,
                        order=section.order,
                    )
                    for section in sections
                ],
            ),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _ensure_document(
        self, project_id: str, summary: Optional[str] = None
    ) -> Document:
        """Return the project's document, creating an empty one if needed."""
        existing = await self.get_document(project_id)
        if existing is not None:
            return existing

        document = Document(id=new_id(), project_id=project_id, summary=summary)
        try:
            await self.storage.insert(DOCUMENTS, to_doc(document))
        except DuplicateKeyError:
            # Created concurrently
            existing = await self.get_document(project_id)
            if existing is None:
                raise
            return existing
        logger.info(f"Created document for project {project_id}")
        return document

    async def apply_full_edits(
        self,
        project_id: str,
        markdown: str,
        sections: List[SectionInput],
        summary: Optional[str] = None,
    ) -> Workspace:
        """Replace the draft and reconcile every section by heading.

        Matches are patched (``version += 1``), new headings inserted at
        version 1, and stored sections missing from the input deleted.
        """
        now = utcnow()
        normalized = normalize_sections(sections)
        document = await self._ensure_document(project_id, summary)

        await self.storage.patch(
            DOCUMENTS,
            document.id,
            {
                "latest_draft_markdown": markdown,
                "summary": summary if summary is not None else document.summary,
                "status": resolve_document_status(normalized),
                "updated_at": now,
            },
        )

        existing_by_key: dict[str, DocumentSection] = {}
        strays: list[DocumentSection] = []
        for section in await self.list_sections(document.id):
            if section.key in existing_by_key:
                strays.append(section)
            else:
                existing_by_key[section.key] = section

        seen: set[str] = set()
        for section in normalized:
            key = heading_key(section.heading)
            seen.add(key)
            existing = existing_by_key.get(key)
            if existing is not None:
                await self.storage.patch(
                    DOCUMENT_SECTIONS,
                    existing.id,
                    {
                        "content": section.content,
                        "order": section.order,
                        "status": section.status,
                        "version": existing.version + 1,
                        "updated_at": now,
                    },
                )
            else:
                created = DocumentSection(
                    id=new_id(),
                    document_id=document.id,
                    heading=section.heading,
                    content=section.content,
                    order=section.order or 0,
                    status=section.status or SectionStatus.drafting,
                    version=1,
                    updated_at=now,
                )
                await self.storage.insert(DOCUMENT_SECTIONS, to_doc(created))

        removed = strays + [s for key, s in existing_by_key.items() if key not in seen]
        for section in removed:
            await self.storage.delete(DOCUMENT_SECTIONS, section.id)

        logger.info(
            f"Applied full edits to project {project_id}: "
            f"{len(normalized)} sections, {len(removed)} removed"
        )
        return await self.get_workspace(project_id)

    async def apply_section_edit(
        self,
        project_id: str,
        section_heading: str,
        section_markdown: str,
        status: Optional[SectionStatus] = None,
        summary: Optional[str] = None,
    ) -> Workspace:
        """Replace one section's content, leaving every other section untouched.

        Raises:
            DocumentNotFoundError: The project has no document yet.
            SectionNotFoundError: No section matches ``section_heading``.
        """
        now = utcnow()
        target_heading = section_heading.strip()

        document = await self.get_document(project_id)
        if document is None:
            raise DocumentNotFoundError(project_id)

        target = next(
            (
                section
                for section in await self.list_sections(document.id)
                if section.key == heading_key(target_heading)
            ),
            None,
        )
        if target is None:
            raise SectionNotFoundError(target_heading)

        # Headings are immutable; a heading line in the edit is replaced by the stored one
        _, body = _split_leading_heading(section_markdown)
        updated_markdown = replace_section_markdown(
            document.latest_draft_markdown, target.heading, body
        )

        await self.storage.patch(
            DOCUMENTS,
            document.id,
            {
                "latest_draft_markdown": updated_markdown,
                "summary": summary if summary is not None else document.summary,
                "updated_at": now,
            },
        )
        await self.storage.patch(
            DOCUMENT_SECTIONS,
            target.id,
            {
                "content": body,
                "status": status or target.status,
                "version": target.version + 1,
                "updated_at": now,
            },
        )

        logger.info(
            f'Applied section edit to "{target.heading}" in project {project_id} '
            f"(v{target.version + 1})"
        )
        return await self.get_workspace(project_id)

    async def manage_outline(
        self, project_id: str, operations: List[OutlineOperation]
    ) -> OutlineResult:
        """Apply add/rename/reorder/remove operations, then reindex and rebuild Markdown.

        Every operation is idempotent: unknown headings are skipped with a
        warning and renames onto an existing heading are ignored.
        """
        now = utcnow()
        document = await self._ensure_document(project_id)
        sections = await self.list_sections(document.id)
        by_key: dict[str, DocumentSection] = {}
        for section in sections:
            by_key.setdefault(section.key, section)

        def move(section: DocumentSection, position: int) -> None:
            sections.remove(section)
            sections.insert(position, section)

        for op in operations:
            key = heading_key(op.heading)
            existing = by_key.get(key)

            if op.action == OutlineAction.add:
                if existing is not None:
                    if op.status and op.status != existing.status:
                        existing.status = op.status
                        await self.storage.patch(
                            DOCUMENT_SECTIONS,
                            existing.id,
                            {"status": op.status, "updated_at": now},
                        )
                    if op.position is not None and sections.index(existing) != op.position:
                        move(existing, op.position)
                    continue
                position = op.position if op.position is not None else len(sections)
                created = DocumentSection(
                    id=new_id(),
                    document_id=document.id,
                    heading=op.heading.strip(),
                    content="",
                    order=min(position, len(sections)),
                    status=op.status or SectionStatus.needs_detail,
                    version=1,
                    updated_at=now,
                )
                await self.storage.insert(DOCUMENT_SECTIONS, to_doc(created))
                sections.insert(position, created)
                by_key[key] = created

            elif op.action == OutlineAction.rename:
                if existing is None:
                    logger.warning(f'Outline rename: section "{op.heading}" not found, skipping')
                    continue
                new_heading = (op.new_heading or "").strip()
                if not new_heading:
                    logger.warning(f'Outline rename: new heading missing for "{op.heading}", skipping')
                    continue
                new_key = heading_key(new_heading)
                if new_key != key and new_key in by_key:
                    logger.warning(f'Outline rename: "{new_heading}" already exists, skipping')
                    continue
                existing.heading = new_heading
                existing.version += 1
                await self.storage.patch(
                    DOCUMENT_SECTIONS,
                    existing.id,
                    {"heading": new_heading, "version": existing.version, "updated_at": now},
                )
                del by_key[key]
                by_key[new_key] = existing

            elif op.action == OutlineAction.reorder:
                if existing is None:
                    logger.warning(f'Outline reorder: section "{op.heading}" not found, skipping')
                    continue
                if op.position is None:
                    logger.warning(f'Outline reorder: position missing for "{op.heading}", skipping')
                    continue
                if sections.index(existing) != op.position:
                    move(existing, op.position)

            elif op.action == OutlineAction.remove:
                if existing is None:
                    logger.warning(f'Outline remove: section "{op.heading}" not found, skipping')
                    continue
                await self.storage.delete(DOCUMENT_SECTIONS, existing.id)
                sections.remove(existing)
                del by_key[key]

        for index, section in enumerate(sections):
            if section.order != index:
                section.order = index
                await self.storage.patch(
                    DOCUMENT_SECTIONS, section.id, {"order": index, "updated_at": now}
                )

        await self.storage.patch(
            DOCUMENTS,
            document.id,
            {"latest_draft_markdown": build_outline_markdown(sections), "updated_at": now},
        )

        logger.info(f"Applied {len(operations)} outline operations to project {project_id}")
        workspace = await self.get_workspace(project_id)
        return OutlineResult(**workspace.model_dump(), operations=len(operations))

    async def set_summary(self, project_id: str, summary: str) -> Document:
        """Store a trimmed summary, creating the document if needed."""
        trimmed = summary.strip()
        document = await self._ensure_document(project_id, trimmed)
        updated = await self.storage.patch(
            DOCUMENTS, document.id, {"summary": trimmed, "updated_at": utcnow()}
        )
        return from_doc(Document, updated) if updated else document

    async def reset_draft(self, project_id: str) -> Workspace:
        """Clear the draft, summary and status, and delete every section."""
        document = await self.get_document(project_id)
        if document is None:
            return Workspace()

        await self.storage.patch(
            DOCUMENTS,
            document.id,
            {
                "latest_draft_markdown": "",
                "summary": None,
                "status": SectionStatus.drafting,
                "updated_at": utcnow(),
            },
        )
        sections = await self.list_sections(document.id)
        for section in sections:
            await self.storage.delete(DOCUMENT_SECTIONS, section.id)

        logger.info(f"Reset draft for project {project_id} ({len(sections)} sections removed)")
        return await self.get_workspace(project_id)

    async def generate_draft_summary(self, project_id: str) -> SummaryResult:
        """Summarize the draft with the summary model unless a summary exists."""
        document = await self.get_document(project_id)
        existing = (document.summary or "").strip() if document else ""
        if existing:
            return SummaryResult(generated=False, summary=existing)

        markdown = (document.latest_draft_markdown if document else "").strip()
        if not markdown:
            return SummaryResult(generated=False, summary=None, reason="empty_draft")

        excerpt = (
            f"{markdown[:SUMMARY_EXCERPT_CHARS]}\n..."
            if len(markdown) > SUMMARY_EXCERPT_CHARS
            else markdown
        )
        summary = await self.llm_client.summarize(excerpt)
        stored = await self.set_summary(project_id, summary)
        logger.info(f"Generated draft summary for project {project_id}")
        return SummaryResult(generated=True, summary=stored.summary)
