"""High-level model client with transport retry and provider fallback.

Transport retry re-issues the network call only: a fixed base delay doubling
on each attempt (0.5s, 1s, ...), three attempts by default. Malformed
structured output counts as a retryable transport failure. Job-level retry
lives in the draft queue and is independent from this.
"""

import asyncio
import logging
import os
import uuid
from typing import Any, Callable, TypeVar

from .errors import (
    LLMError,
    MalformedModelOutputError,
    NON_RETRYABLE_ERRORS,
    RateLimitError,
    RETRYABLE_ERRORS,
)
from .models import LLMRequest, LLMResponse
from .providers.anthropic import AnthropicProvider
from .providers.base import LLMProvider
from .providers.openai import OpenAIProvider
from .schemas import DRAFTING_RESPONSE_SCHEMA, DRAFTING_SCHEMA_NAME

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUMMARY_SYSTEM_PROMPT = (
    "You are an editor producing factual summaries of long-form drafts. Summaries must "
    "only restate content already present and avoid commentary, instructions, or speculation."
)


def build_summary_user_prompt(excerpt: str) -> str:
    return (
        "Summarize the draft below in plain prose (2-3 sentences). Focus only on what the "
        "draft currently says and do not add analysis, recommendations, or next steps."
        f'\n\nDraft:\n"""\n{excerpt}\n"""'
    )


class LLMClient:
    """Model client used by the drafting pipeline.

    Configuration (env vars):
    - LLM_DEFAULT_PROVIDER: Primary provider (default: "openai")
    - LLM_TIMEOUT_SECONDS: Request timeout (default: 60)
    - LLM_MAX_ATTEMPTS: Attempts per provider (default: 3)
    - OPENAI_DRAFTING_MODEL / OPENAI_SUMMARY_MODEL: Model names (default: gpt-5-nano)
    """

    DEFAULT_PROVIDER = "openai"
    DEFAULT_TIMEOUT = 60.0
    DEFAULT_MAX_ATTEMPTS = 3
    DEFAULT_BASE_DELAY = 0.5
    DEFAULT_MAX_DELAY = 30.0
    DEFAULT_MODEL = "gpt-5-nano"

    def __init__(
        self,
        default_provider: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        providers: dict[str, LLMProvider] | None = None,
    ):
        self._default_provider = (
            default_provider
            or os.environ.get("LLM_DEFAULT_PROVIDER", self.DEFAULT_PROVIDER)
        )
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("LLM_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )
        self._max_attempts = max(
            1,
            max_attempts
            if max_attempts is not None
            else int(os.environ.get("LLM_MAX_ATTEMPTS", self.DEFAULT_MAX_ATTEMPTS)),
        )
        self._base_delay = self.DEFAULT_BASE_DELAY if base_delay is None else base_delay

        self._providers: dict[str, LLMProvider] = providers or {
            "openai": OpenAIProvider(timeout=self._timeout),
            "anthropic": AnthropicProvider(timeout=self._timeout),
        }
        self._fallback_order = [self._default_provider] + [
            name for name in self._providers if name != self._default_provider
        ]

        self.drafting_model = os.environ.get("OPENAI_DRAFTING_MODEL", self.DEFAULT_MODEL)
        self.summary_model = os.environ.get("OPENAI_SUMMARY_MODEL", self.DEFAULT_MODEL)

    def get_provider(self, name: str) -> LLMProvider:
        """Get a provider by name.

        Raises:
            ValueError: If provider name is not recognized.
        """
        if name not in self._providers:
            raise ValueError(f"Unknown provider: {name}. Available: {list(self._providers.keys())}")
        return self._providers[name]

    def is_provider_available(self, name: str) -> bool:
        return name in self._providers and self._providers[name].is_configured()

    async def draft(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
        temperature: float | None = None,
    ):
        """Request a structured draft and decode it.

        Returns:
            ``DraftingModelResponse`` with usage attached.

        Raises:
            LLMError: When every attempt on every available provider failed.
        """
        from drafting.services.model_output import decode_drafting_response

        request = LLMRequest(
            model=(model or "").strip() or self.drafting_model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=temperature,
            response_schema=DRAFTING_RESPONSE_SCHEMA,
            schema_name=DRAFTING_SCHEMA_NAME,
            reasoning_effort="minimal",
        )
        return await self.generate(request, decode=decode_drafting_response)

    async def summarize(self, excerpt: str, model: str | None = None) -> str:
        """Plain-prose summary of a draft excerpt."""
        request = LLMRequest(
            model=model or self.summary_model,
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            user_prompt=build_summary_user_prompt(excerpt),
            reasoning_effort="minimal",
        )
        return await self.generate(request, decode=_require_text)

    async def generate(
        self,
        request: LLMRequest,
        decode: Callable[[LLMResponse], T] | None = None,
        provider: str | None = None,
        fallback: bool = True,
        correlation_id: str | None = None,
    ) -> Any:
        """Send a request with retry and provider fallback.

        ``decode`` runs inside the retry loop, so a decoding failure raising a
        retryable error re-issues the call.
        """
        correlation_id = correlation_id or str(uuid.uuid4())

        if provider:
            providers_to_try = [provider]
            if fallback:
                providers_to_try.extend(p for p in self._fallback_order if p != provider)
        else:
            providers_to_try = self._fallback_order if fallback else self._fallback_order[:1]

        last_error: LLMError | None = None

        for provider_name in providers_to_try:
            if not self.is_provider_available(provider_name):
                logger.debug(
                    "Provider %s not available, skipping",
                    provider_name,
                    extra={"correlation_id": correlation_id},
                )
                continue

            try:
                return await self._generate_with_retry(
                    request, provider_name, correlation_id, decode
                )
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    "Provider %s exhausted retries: %s. Trying fallback.",
                    provider_name,
                    str(e),
                    extra={
                        "correlation_id": correlation_id,
                        "provider": provider_name,
                        "error_type": type(e).__name__,
                    },
                )
            except NON_RETRYABLE_ERRORS as e:
                logger.error(
                    "Provider %s failed with non-retryable error: %s",
                    provider_name,
                    str(e),
                    extra={
                        "correlation_id": correlation_id,
                        "provider": provider_name,
                        "error_type": type(e).__name__,
                    },
                )
                raise

        if last_error:
            raise last_error

        raise LLMError(
            "No model providers configured (set OPENAI_API_KEY or ANTHROPIC_API_KEY)",
            correlation_id=correlation_id,
        )

    async def _generate_with_retry(
        self,
        request: LLMRequest,
        provider_name: str,
        correlation_id: str,
        decode: Callable[[LLMResponse], T] | None,
    ) -> Any:
        provider = self.get_provider(provider_name)
        last_error: LLMError | None = None

        for attempt in range(self._max_attempts):
            try:
                response = await provider.generate(request)
                result = decode(response) if decode else response

                logger.info(
                    "LLM request succeeded",
                    extra={
                        "correlation_id": correlation_id,
                        "provider": response.provider,
                        "model": response.model,
                        "latency_ms": response.latency_ms,
                        "input_tokens": response.usage.input_tokens,
                        "output_tokens": response.usage.output_tokens,
                        "attempt": attempt + 1,
                    },
                )
                return result

            except RETRYABLE_ERRORS as e:
                last_error = e
                e.correlation_id = correlation_id
                logger.warning(
                    "Retryable error on attempt %d/%d: %s",
                    attempt + 1,
                    self._max_attempts,
                    str(e),
                    extra={
                        "correlation_id": correlation_id,
                        "provider": provider_name,
                        "attempt": attempt + 1,
                        "error_type": type(e).__name__,
                    },
                )
                if attempt + 1 < self._max_attempts:
                    await asyncio.sleep(self._calculate_backoff(attempt, e))

        if last_error:
            raise last_error

        raise LLMError(
            f"Provider {provider_name} failed after {self._max_attempts} attempts",
            provider=provider_name,
            correlation_id=correlation_id,
        )

    def _calculate_backoff(self, attempt: int, error: Exception) -> float:
        """Base delay doubled per attempt (0-indexed), or the server's retry-after."""
        if isinstance(error, RateLimitError) and error.retry_after:
            return min(error.retry_after, self.DEFAULT_MAX_DELAY)
        return min(self._base_delay * (2 ** attempt), self.DEFAULT_MAX_DELAY)


def _require_text(response: LLMResponse) -> str:
    text = (response.text or "").strip()
    if not text:
        raise MalformedModelOutputError(
            "Draft summary response did not include text content",
            provider=response.provider,
            request_id=response.request_id,
        )
    return text


_default_client: LLMClient | None = None


def get_client() -> LLMClient:
    """Get the default LLM client singleton."""
    global _default_client
    if _default_client is None:
        _default_client = LLMClient()
    return _default_client


def set_client(client: LLMClient | None) -> None:
    """Set the client instance (for testing)."""
    global _default_client
    _default_client = client
