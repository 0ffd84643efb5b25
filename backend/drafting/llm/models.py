"""Vendor-neutral request and response models for model calls."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class LLMRequest(BaseModel):
    """One system/user exchange, optionally constrained to a JSON schema."""

    model: str
    system_prompt: str
    user_prompt: str
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_output_tokens: int | None = None
    response_schema: dict[str, Any] | None = Field(
        default=None,
        description="JSON schema the response must follow (None for plain text)",
    )
    schema_name: str = "response"
    reasoning_effort: Literal["minimal", "low", "medium", "high"] | None = None


class Usage(BaseModel):
    """Token usage statistics."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


class LLMResponse(BaseModel):
    """Vendor-neutral model response."""

    text: str | None
    structured: dict[str, Any] | None = Field(
        default=None,
        description="Parsed structured output when the provider returns it directly",
    )
    usage: Usage = Field(default_factory=Usage)
    model: str
    provider: str
    latency_ms: int
    request_id: str | None = None
    raw: dict[str, Any] | None = None
