"""Provider interface and the status-code mapping shared by the SDK adapters."""

from abc import ABC, abstractmethod

from ..errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
)
from ..models import LLMRequest, LLMResponse


class LLMProvider(ABC):
    """Interface every provider implements."""

    # Human-readable vendor name used in error messages
    label: str = ""
    # Lower-cased substrings of a 400 message that mean the safety system refused
    content_filter_markers: tuple[str, ...] = ("safety",)

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier: 'openai', 'anthropic'."""
        ...

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send one request and return the response.

        Raises:
            LLMError: A subclass from ``drafting.llm.errors``; its ``retryable``
                flag decides whether the client tries again.
        """
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials for this provider are available."""
        ...

    @staticmethod
    def retry_after_seconds(error: object) -> float | None:
        """Read a ``retry-after`` header off an SDK status error."""
        response = getattr(error, "response", None)
        if response is None:
            return None
        value = response.headers.get("retry-after")
        if not value:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def _translate_error(self, error: object) -> LLMError:
        """Map an SDK ``APIStatusError`` onto the LLM error hierarchy."""
        status_code = error.status_code
        message = str(getattr(error, "message", error))
        tags = {"provider": self.name, "request_id": getattr(error, "request_id", None)}

        if status_code in (401, 403):
            return AuthenticationError(f"{self.label} rejected credentials ({status_code}): {message}", **tags)
        if status_code == 404:
            return ModelNotFoundError(f"Model not found: {message}", **tags)
        if status_code == 429:
            return RateLimitError(
                f"{self.label} rate limit exceeded: {message}",
                retry_after=self.retry_after_seconds(error),
                **tags,
            )
        if status_code == 400:
            if any(marker in message.lower() for marker in self.content_filter_markers):
                return ContentFilterError(f"Content blocked by {self.label} safety filters: {message}", **tags)
            return InvalidRequestError(f"Invalid request to {self.label}: {message}", **tags)
        if status_code >= 500:
            return ProviderError(f"{self.label} server error ({status_code}): {message}", **tags)
        return LLMError(f"{self.label} error ({status_code}): {message}", **tags)
