"""Unit tests for OpenAI provider.

Tests cover:
- Responses API request building (schema, reasoning, temperature)
- Response parsing
- Error handling and mapping
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError

from drafting.llm.errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    TimeoutError,
)
from drafting.llm.models import LLMRequest
from drafting.llm.providers.openai import OpenAIProvider, supports_reasoning_controls
from drafting.llm.schemas import DRAFTING_RESPONSE_SCHEMA, DRAFTING_SCHEMA_NAME

OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")


class FakeAPIStatusError(Exception):
    """Fake API error carrying the attributes the provider reads."""

    def __init__(self, status_code: int, message: str, response=None, request_id=None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.response = response
        self.request_id = request_id


def drafting_request(**kwargs) -> LLMRequest:
    defaults = {
        "model": "gpt-5-nano",
        "system_prompt": "sys",
        "user_prompt": "user",
        "response_schema": DRAFTING_RESPONSE_SCHEMA,
        "schema_name": DRAFTING_SCHEMA_NAME,
        "reasoning_effort": "minimal",
    }
    defaults.update(kwargs)
    return LLMRequest(**defaults)


class TestOpenAIProviderInit:
    def test_provider_name(self):
        assert OpenAIProvider(api_key="test-key").name == "openai"

    def test_default_model(self, monkeypatch):
        monkeypatch.delenv("OPENAI_DRAFTING_MODEL", raising=False)
        assert OpenAIProvider(api_key="test-key")._default_model == "gpt-5-nano"

    def test_unconfigured_client_raises(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIProvider()
        assert not provider.is_configured()
        with pytest.raises(AuthenticationError):
            provider.client


class TestReasoningControls:
    @pytest.mark.parametrize("model", ["gpt-5", "gpt-5-nano", "gpt-5.1"])
    def test_gpt5_family(self, model):
        assert supports_reasoning_controls(model)

    @pytest.mark.parametrize("model", ["gpt-4o", "gpt-50", "", None])
    def test_other_models(self, model):
        assert not supports_reasoning_controls(model)


class TestOpenAIRequestBuilding:
    def test_structured_request(self):
        built = OpenAIProvider(api_key="test-key")._build_request(drafting_request())

        assert built["model"] == "gpt-5-nano"
        assert [message["role"] for message in built["input"]] == ["system", "user"]
        assert built["input"][1]["content"] == [{"type": "input_text", "text": "user"}]
        assert built["text"]["format"] == {
            "type": "json_schema",
            "name": DRAFTING_SCHEMA_NAME,
            "strict": True,
            "schema": DRAFTING_RESPONSE_SCHEMA,
        }
        assert built["reasoning"] == {"effort": "minimal"}
        assert "temperature" not in built

    def test_plain_request_on_older_model(self):
        built = OpenAIProvider(api_key="test-key")._build_request(
            drafting_request(model="gpt-4o", response_schema=None, temperature=0.3, max_output_tokens=500)
        )
        assert "text" not in built
        assert "reasoning" not in built
        assert built["temperature"] == 0.3
        assert built["max_output_tokens"] == 500


class TestOpenAIResponseParsing:
    def test_parse_response(self):
        response = SimpleNamespace(
            output_text='{"markdown": "# A"}',
            usage=SimpleNamespace(input_tokens=12, output_tokens=4, total_tokens=16),
            model="gpt-5-nano-2025",
            id="resp_1",
        )
        parsed = OpenAIProvider(api_key="test-key")._parse_response(response, latency_ms=42)

        assert parsed.text == '{"markdown": "# A"}'
        assert parsed.usage.total_tokens == 16
        assert parsed.request_id == "resp_1"
        assert parsed.provider == "openai"
        assert parsed.latency_ms == 42
        assert parsed.raw is None

    def test_parse_empty_output(self):
        response = SimpleNamespace(output_text="", usage=None, model="m", id=None)
        parsed = OpenAIProvider(api_key="test-key")._parse_response(response, latency_ms=1)
        assert parsed.text is None
        assert parsed.usage.input_tokens is None


class TestOpenAIGenerate:
    @pytest.mark.asyncio
    async def test_generate_calls_responses_api(self):
        provider = OpenAIProvider(api_key="test-key")
        provider._client = MagicMock()
        provider._client.responses.create = AsyncMock(
            return_value=SimpleNamespace(output_text="hi", usage=None, model="gpt-5-nano", id="r1")
        )

        response = await provider.generate(drafting_request())

        assert response.text == "hi"
        kwargs = provider._client.responses.create.await_args.kwargs
        assert kwargs["model"] == "gpt-5-nano"

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout_error(self):
        provider = OpenAIProvider(api_key="test-key", timeout=5)
        provider._client = MagicMock()
        provider._client.responses.create = AsyncMock(side_effect=APITimeoutError(request=OPENAI_REQUEST))

        with pytest.raises(TimeoutError, match="5"):
            await provider.generate(drafting_request())

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_provider_error(self):
        provider = OpenAIProvider(api_key="test-key")
        provider._client = MagicMock()
        provider._client.responses.create = AsyncMock(
            side_effect=APIConnectionError(message="reset", request=OPENAI_REQUEST)
        )

        with pytest.raises(ProviderError):
            await provider.generate(drafting_request())


class TestOpenAIErrorTranslation:
    """Status codes map onto the LLM error hierarchy."""

    @pytest.mark.parametrize(
        "status_code,message,expected",
        [
            (401, "Invalid API key", AuthenticationError),
            (403, "Access denied", AuthenticationError),
            (404, "No such model", ModelNotFoundError),
            (400, "Unsupported parameter", InvalidRequestError),
            (400, "Blocked by content_filter", ContentFilterError),
            (500, "Internal error", ProviderError),
            (503, "Unavailable", ProviderError),
            (409, "Conflict", LLMError),
        ],
    )
    def test_status_mapping(self, status_code, message, expected):
        error = FakeAPIStatusError(status_code=status_code, message=message, request_id="req-9")
        translated = OpenAIProvider(api_key="test-key")._translate_error(error)
        assert type(translated) is expected
        assert translated.provider == "openai"
        assert translated.request_id == "req-9"

    def test_rate_limit_reads_retry_after(self):
        response = MagicMock()
        response.headers = {"retry-after": "30"}
        error = FakeAPIStatusError(status_code=429, message="Slow down", response=response)

        translated = OpenAIProvider(api_key="test-key")._translate_error(error)

        assert isinstance(translated, RateLimitError)
        assert translated.retry_after == 30.0

    def test_rate_limit_without_header(self):
        error = FakeAPIStatusError(status_code=429, message="Slow down")
        assert OpenAIProvider(api_key="test-key")._translate_error(error).retry_after is None
