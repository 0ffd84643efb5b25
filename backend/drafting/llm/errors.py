"""Errors raised by the model-call layer.

Providers translate SDK exceptions into these classes. ``retryable`` tells the
client whether another transport attempt can help; a draft job that still
fails after the client gives up is retried at the queue level instead.
"""


class LLMError(Exception):
    """A model call failed."""

    retryable = False

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.request_id = request_id
        # Set by the client so one logical call can be traced across attempts
        self.correlation_id = correlation_id

    def __str__(self) -> str:
        text = super().__str__()
        tags = [f"{key}={value}" for key, value in (("provider", self.provider), ("request_id", self.request_id)) if value]
        return " ".join([text, *tags])


class AuthenticationError(LLMError):
    """Missing or rejected API key."""


class RateLimitError(LLMError):
    retryable = True

    def __init__(self, message: str, retry_after: float | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class TimeoutError(LLMError):
    """The call exceeded ``LLM_TIMEOUT_SECONDS``."""

    retryable = True


class InvalidRequestError(LLMError):
    """The provider rejected the request itself (schema, token limit, parameter)."""


class ContentFilterError(LLMError):
    """Blocked by the provider's safety system."""


class ProviderError(LLMError):
    """Server-side failure or dropped connection."""

    retryable = True


class ModelNotFoundError(LLMError):
    pass


class MalformedModelOutputError(LLMError):
    """The reply could not be decoded into a draft (no ``markdown``, empty summary)."""

    retryable = True


RETRYABLE_ERRORS = tuple(
    cls for cls in (RateLimitError, TimeoutError, ProviderError, MalformedModelOutputError) if cls.retryable
)
NON_RETRYABLE_ERRORS = (AuthenticationError, InvalidRequestError, ContentFilterError, ModelNotFoundError)
