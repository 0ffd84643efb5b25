"""Decoding of drafting model output.

Providers hand back structured output in several shapes: an already-parsed
object, a JSON string, a chat-style message with content parts, or a full
Responses API envelope. Each shape has its own decoder; decoders are tried in
priority order and return ``None`` for "not this shape". Nothing untyped
leaves this module.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field

from drafting.llm.errors import MalformedModelOutputError
from drafting.llm.models import LLMResponse
from drafting.models.document import SectionInput, SectionStatus
from drafting.models.draft_job import ModelUsage

logger = logging.getLogger(__name__)


class DraftingModelResponse(BaseModel):
    """Validated drafting output."""

    markdown: str
    sections: List[SectionInput] = Field(default_factory=list)
    summary: Optional[str] = None
    usage: Optional[ModelUsage] = None


Decoder = Callable[[Any], Optional[DraftingModelResponse]]


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def coerce_model_section(section: Any, index: int) -> SectionInput:
    """Best-effort section: default heading, status and order by position."""
    if not isinstance(section, dict):
        return SectionInput(
            heading=f"Section {index + 1}",
            content="",
            status=SectionStatus.drafting,
            order=index,
        )

    heading = section["heading"].strip() if _non_empty(section.get("heading")) else f"Section {index + 1}"
    content = section["content"] if _non_empty(section.get("content")) else ""

    status: Optional[SectionStatus] = None
    raw_status = section.get("status")
    if _non_empty(raw_status):
        try:
            status = SectionStatus(raw_status.strip())
        except ValueError:
            status = SectionStatus.drafting

    order = section.get("order")
    if isinstance(order, bool) or not isinstance(order, (int, float)) or not math.isfinite(order):
        order = index

    return SectionInput(heading=heading, content=content, status=status, order=int(order))


# ==============================================================================
# Decoders
# ==============================================================================


def decode_object(payload: Any) -> Optional[DraftingModelResponse]:
    """``{"markdown": ..., "sections": [...], "summary": ...}``"""
    if not isinstance(payload, dict) or not _non_empty(payload.get("markdown")):
        return None
    sections = payload.get("sections")
    return DraftingModelResponse(
        markdown=payload["markdown"].strip(),
        sections=[
            coerce_model_section(section, index)
            for index, section in enumerate(sections if isinstance(sections, list) else [])
        ],
        summary=payload["summary"].strip() if _non_empty(payload.get("summary")) else None,
    )


def _parse_json(value: Any) -> Any:
    if not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except ValueError:
        return None


def decode_json_text(payload: Any) -> Optional[DraftingModelResponse]:
    """A JSON document serialized as a string."""
    return decode_object(_parse_json(payload))


def _decode_part(part: Any) -> Optional[DraftingModelResponse]:
    if isinstance(part, str):
        return decode_json_text(part)
    if not isinstance(part, dict):
        return None
    for candidate in (part.get("json"), part.get("data")):
        decoded = decode_object(candidate)
        if decoded:
            return decoded
    schema_output = part.get("json_schema")
    if isinstance(schema_output, dict):
        decoded = decode_object(schema_output.get("output"))
        if decoded:
            return decoded
    return decode_json_text(part.get("text"))


def decode_message_content(payload: Any) -> Optional[DraftingModelResponse]:
    """Chat-style message: ``{"content": str | [parts]}``."""
    if not isinstance(payload, dict) or "content" not in payload:
        return None
    content = payload["content"]
    if isinstance(content, str):
        return decode_json_text(content)
    if isinstance(content, list):
        for part in content:
            decoded = _decode_part(part)
            if decoded:
                return decoded
    return None


def decode_responses_envelope(payload: Any) -> Optional[DraftingModelResponse]:
    """Responses API body: ``{"output": [{"content": [...]}], "output_text": ...}``."""
    if not isinstance(payload, dict):
        return None
    outputs = payload.get("output") or payload.get("outputs")
    for item in outputs if isinstance(outputs, list) else []:
        decoded = decode_message_content(item) or _decode_part(item)
        if decoded:
            return decoded
    return decode_json_text(payload.get("output_text"))


DECODERS: List[Decoder] = [
    decode_object,
    decode_json_text,
    decode_message_content,
    decode_responses_envelope,
]


def decode_payload(payload: Any) -> Optional[DraftingModelResponse]:
    """Try every decoder in priority order."""
    for decoder in DECODERS:
        decoded = decoder(payload)
        if decoded is not None:
            return decoded
    return None


def decode_drafting_response(response: LLMResponse) -> DraftingModelResponse:
    """Decode a provider response into a ``DraftingModelResponse``.

    Raises:
        MalformedModelOutputError: No decoder recognised the output.
    """
    for payload in (response.structured, response.text, response.raw):
        if payload is None:
            continue
        decoded = decode_payload(payload)
        if decoded is not None:
            decoded.usage = ModelUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.total_tokens,
            )
            return decoded

    logger.warning(
        "Drafting model payload missing required fields",
        extra={"provider": response.provider, "request_id": response.request_id},
    )
    raise MalformedModelOutputError(
        "Drafting model payload missing required fields",
        provider=response.provider,
        request_id=response.request_id,
    )
