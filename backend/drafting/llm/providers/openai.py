"""OpenAI provider.

Uses the Responses API. Structured output goes through ``text.format`` with a
strict JSON schema; gpt-5 family models get minimal reasoning effort.
"""

import os
import re
import time
from typing import Any

from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError

from ..errors import AuthenticationError, ProviderError, TimeoutError
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider

_REASONING_MODEL = re.compile(r"^gpt-5(\b|[.\-]|$)")


def supports_reasoning_controls(model: str | None) -> bool:
    """gpt-5 family models accept ``reasoning.effort``."""
    return bool(model) and bool(_REASONING_MODEL.match(model))


class OpenAIProvider(LLMProvider):
    """OpenAI Responses API provider."""

    label = "OpenAI"
    content_filter_markers = ("content_filter", "safety")

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 60.0,
        default_model: str | None = None,
    ):
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._timeout = timeout
        self._default_model = default_model or os.environ.get(
            "OPENAI_DRAFTING_MODEL", "gpt-5-nano"
        )
        self._client: AsyncOpenAI | None = None

    @property
    def name(self) -> str:
        return "openai"

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "OpenAI API key not configured. Set OPENAI_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        start_time = time.perf_counter()
        openai_request = self._build_request(request)

        try:
            response = await self.client.responses.create(**openai_request)
        except APITimeoutError as e:
            raise TimeoutError(
                f"OpenAI request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to OpenAI: {e}",
                provider=self.name,
            ) from e
        except APIStatusError as e:
            raise self._translate_error(e) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        """Convert LLMRequest to a Responses API call."""
        model = request.model or self._default_model
        openai_request: dict[str, Any] = {
            "model": model,
            "input": [
                {
                    "role": "system",
                    "content": [{"type": "input_text", "text": request.system_prompt}],
                },
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": request.user_prompt}],
                },
            ],
        }

        if request.response_schema is not None:
            openai_request["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": request.schema_name,
                    "strict": True,
                    "schema": request.response_schema,
                }
            }

        if request.reasoning_effort and supports_reasoning_controls(model):
            openai_request["reasoning"] = {"effort": request.reasoning_effort}

        # Reasoning models reject anything but the default temperature
        if request.temperature is not None and request.temperature != 1:
            openai_request["temperature"] = request.temperature

        if request.max_output_tokens:
            openai_request["max_output_tokens"] = request.max_output_tokens

        return openai_request

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        usage = getattr(response, "usage", None)
        return LLMResponse(
            text=getattr(response, "output_text", None) or None,
            usage=Usage(
                input_tokens=getattr(usage, "input_tokens", None),
                output_tokens=getattr(usage, "output_tokens", None),
                total_tokens=getattr(usage, "total_tokens", None),
            ),
            model=getattr(response, "model", None) or "",
            provider=self.name,
            latency_ms=latency_ms,
            request_id=getattr(response, "id", None),
            raw=response.model_dump() if hasattr(response, "model_dump") else None,
        )
