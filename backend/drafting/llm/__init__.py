"""Model-call layer: vendor-neutral requests, provider fallback and retry."""

from .client import LLMClient, get_client, set_client
from .errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    LLMError,
    MalformedModelOutputError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    TimeoutError,
)
from .models import LLMRequest, LLMResponse, Usage
from .schemas import DRAFTING_RESPONSE_SCHEMA, DRAFTING_SCHEMA_NAME

__all__ = [
    "LLMClient",
    "get_client",
    "set_client",
    "LLMRequest",
    "LLMResponse",
    "Usage",
    "LLMError",
    "AuthenticationError",
    "RateLimitError",
    "TimeoutError",
    "InvalidRequestError",
    "ContentFilterError",
    "ProviderError",
    "ModelNotFoundError",
    "MalformedModelOutputError",
    "DRAFTING_RESPONSE_SCHEMA",
    "DRAFTING_SCHEMA_NAME",
]
