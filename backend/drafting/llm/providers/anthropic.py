"""Anthropic provider.

The Messages API has no native JSON-schema mode, so structured requests force
a single ``respond_with_json`` tool whose input schema is the response schema.
"""

import json
import os
import time
from typing import Any

from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
)

from ..errors import AuthenticationError, ProviderError, TimeoutError
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider

STRUCTURED_TOOL_NAME = "respond_with_json"
DEFAULT_MAX_TOKENS = 8192


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider (fallback for drafting calls)."""

    label = "Anthropic"
    content_filter_markers = ("safety", "harmful")

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 60.0,
        default_model: str | None = None,
    ):
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._timeout = timeout
        self._default_model = default_model or os.environ.get(
            "ANTHROPIC_DRAFTING_MODEL", "claude-sonnet-4-5-20250929"
        )
        self._client: AsyncAnthropic | None = None

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy-initialized Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "Anthropic API key not configured. Set ANTHROPIC_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncAnthropic(api_key=self._api_key, timeout=self._timeout)
        return self._client

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        start_time = time.perf_counter()
        anthropic_request = self._build_request(request)

        try:
            response = await self.client.messages.create(**anthropic_request)
        except APITimeoutError as e:
            raise TimeoutError(
                f"Anthropic request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to Anthropic: {e}",
                provider=self.name,
            ) from e
        except APIStatusError as e:
            raise self._translate_error(e) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        # OpenAI model names mean nothing here
        model = request.model if request.model.startswith("claude") else self._default_model
        anthropic_request: dict[str, Any] = {
            "model": model,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
            "max_tokens": request.max_output_tokens or DEFAULT_MAX_TOKENS,
        }

        # Anthropic accepts 0-1
        if request.temperature is not None:
            anthropic_request["temperature"] = min(request.temperature, 1.0)

        if request.response_schema is not None:
            anthropic_request["tools"] = [
                {
                    "name": STRUCTURED_TOOL_NAME,
                    "description": "Respond with structured JSON data matching the required schema.",
                    "input_schema": request.response_schema,
                }
            ]
            anthropic_request["tool_choice"] = {"type": "tool", "name": STRUCTURED_TOOL_NAME}

        return anthropic_request

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        text_parts = []
        structured = None
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use" and block.name == STRUCTURED_TOOL_NAME:
                structured = dict(block.input)
                text_parts.append(json.dumps(block.input))

        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        return LLMResponse(
            text="\n".join(text_parts) if text_parts else None,
            structured=structured,
            usage=Usage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            model=response.model,
            provider=self.name,
            latency_ms=latency_ms,
            request_id=response.id,
            raw=response.model_dump() if hasattr(response, "model_dump") else None,
        )
