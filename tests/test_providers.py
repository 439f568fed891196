"""Tests for the provider adapters: LiteLLM calls are patched with AsyncMock."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import litellm
import pytest

from errors import (
    APIError,
    AuthenticationError,
    ModelNotFoundError,
    ParseError,
    ProviderUnavailableError,
    RateLimitError,
)
from providers.anthropic import AnthropicProvider
from providers.base import map_provider_error, sanitize_error
from providers.google import GoogleProvider
from providers.kimi import KimiProvider
from providers.ollama import OllamaProvider
from providers.openai import OpenAIProvider
from providers.openrouter import OpenRouterProvider
from schemas import AnalysisResult, ProviderType

ANALYSIS_JSON = json.dumps({"issues": ["Too vague"], "suggestions": ["Add context"], "score": 42})
OPTIMIZED_JSON = json.dumps({"text": "Explain X to a beginner in 3 bullet points.", "improvements": ["Audience"], "reasoning": "r"})


@pytest.fixture
def mock_transport(monkeypatch):
    """Route every httpx.AsyncClient through a MockTransport with the given handler."""
    real_client = httpx.AsyncClient

    def _install(handler):
        transport = httpx.MockTransport(handler)
        monkeypatch.setattr(httpx, "AsyncClient", lambda **kw: real_client(transport=transport, **kw))
    return _install


# ── Error mapping ───────────────────────────────────────────────────

class TestMapProviderError:
    def test_authentication(self):
        exc = litellm.exceptions.AuthenticationError(message="bad key", llm_provider="openai", model="gpt-4o")
        assert isinstance(map_provider_error(exc, "openai"), AuthenticationError)

    def test_rate_limit_with_retry_after(self):
        exc = litellm.exceptions.RateLimitError(message="slow down", llm_provider="openai", model="gpt-4o")
        exc.litellm_response_headers = {"retry-after": "12"}
        mapped = map_provider_error(exc, "openai")
        assert isinstance(mapped, RateLimitError)
        assert mapped.retry_after == 12
        assert mapped.provider == "openai"

    def test_not_found(self):
        exc = litellm.exceptions.NotFoundError(message="no such model", llm_provider="openai", model="gpt-9")
        assert isinstance(map_provider_error(exc, "openai"), ModelNotFoundError)

    def test_connection_and_timeout(self):
        conn = litellm.exceptions.APIConnectionError(message="refused", llm_provider="openai", model="gpt-4o")
        timeout = litellm.exceptions.Timeout(message="timed out", model="gpt-4o", llm_provider="openai")
        assert isinstance(map_provider_error(conn, "openai"), ProviderUnavailableError)
        assert isinstance(map_provider_error(timeout, "openai"), ProviderUnavailableError)
        assert isinstance(map_provider_error(httpx.ConnectTimeout("t"), "openai"), ProviderUnavailableError)

    def test_http_status_errors(self):
        request = httpx.Request("GET", "https://api.example.com/models")
        for status, expected in [(401, AuthenticationError), (429, RateLimitError),
                                 (404, ModelNotFoundError), (503, ProviderUnavailableError)]:
            exc = httpx.HTTPStatusError("err", request=request, response=httpx.Response(status, request=request))
            assert isinstance(map_provider_error(exc, "kimi"), expected)

    def test_unknown_becomes_api_error_and_is_sanitized(self):
        mapped = map_provider_error(RuntimeError("boom with sk-abcdefgh12345678"), "openai")
        assert isinstance(mapped, APIError)
        assert mapped.status_code == 500
        assert "12345678" not in mapped.message


class TestSanitizeError:
    def test_strips_known_key(self):
        assert "my-long-secret" not in sanitize_error("failed for my-long-secret", "my-long-secret")

    def test_strips_bearer(self):
        assert sanitize_error("Authorization: Bearer abc.def-ghi") == "Authorization: Bearer ***"

    def test_strips_google_key(self):
        assert "AIzaSyABCDEFG" not in sanitize_error("key=AIzaSyABCDEFGHIJ")


# ── Analyze / optimize / preview ────────────────────────────────────

class TestAnalyze:
    @pytest.mark.asyncio
    async def test_openai_request_shape(self, completion):
        mock = AsyncMock(return_value=completion(ANALYSIS_JSON))
        with patch("litellm.acompletion", mock):
            result = await OpenAIProvider(api_key="sk-test", request_timeout=12).analyze_prompt("Tell me about X")

        assert result == AnalysisResult(issues=["Too vague"], suggestions=["Add context"], score=42, provider="openai")
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["timeout"] == 12
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][1] == {"role": "user", "content": "Tell me about X"}

    @pytest.mark.asyncio
    async def test_anthropic_fenced_response(self, completion):
        fenced = f"```json\n{ANALYSIS_JSON}\n```"
        mock = AsyncMock(return_value=completion(fenced))
        with patch("litellm.acompletion", mock):
            result = await AnthropicProvider(api_key="sk-ant-test").analyze_prompt("Tell me about X", "claude-3-opus-20240229")

        assert result.score == 42
        assert result.provider == ProviderType.ANTHROPIC
        assert mock.call_args.kwargs["model"] == "anthropic/claude-3-opus-20240229"
        assert "response_format" not in mock.call_args.kwargs

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_network(self):
        mock = AsyncMock()
        with patch("litellm.acompletion", mock):
            with pytest.raises(AuthenticationError, match="API key is missing"):
                await GoogleProvider().analyze_prompt("Tell me about X")
        mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_backend_error_is_mapped(self):
        exc = litellm.exceptions.RateLimitError(message="slow down", llm_provider="openai", model="gpt-4o")
        with patch("litellm.acompletion", AsyncMock(side_effect=exc)):
            with pytest.raises(RateLimitError) as exc_info:
                await OpenAIProvider(api_key="sk-test").analyze_prompt("Tell me about X")
        assert exc_info.value.__cause__ is exc

    @pytest.mark.asyncio
    async def test_unparseable_output(self, completion):
        with patch("litellm.acompletion", AsyncMock(return_value=completion("Sorry, I can't do that."))):
            with pytest.raises(ParseError) as exc_info:
                await KimiProvider(api_key="sk-kimi").analyze_prompt("Tell me about X")
        assert exc_info.value.raw_response == "Sorry, I can't do that."

    @pytest.mark.asyncio
    async def test_wrong_shape_is_parse_error(self, completion):
        with patch("litellm.acompletion", AsyncMock(return_value=completion('{"score": "excellent"}'))):
            with pytest.raises(ParseError, match="unexpected shape"):
                await OpenAIProvider(api_key="sk-test").analyze_prompt("Tell me about X")


class TestOptimize:
    @pytest.mark.asyncio
    async def test_optimize_sends_analysis(self, completion):
        analysis = AnalysisResult(issues=["Too vague"], score=42, provider="openrouter")
        mock = AsyncMock(return_value=completion(OPTIMIZED_JSON))
        with patch("litellm.acompletion", mock):
            result = await OpenRouterProvider(api_key="sk-or-test").optimize_prompt("Tell me about X", analysis)

        assert result.text.startswith("Explain X")
        assert result.improvements == ["Audience"]
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openrouter/meta-llama/llama-3.1-8b-instruct"
        assert "Too vague" in kwargs["messages"][1]["content"]
        assert kwargs["messages"][1]["content"].startswith("Original Prompt: Tell me about X")

    @pytest.mark.asyncio
    async def test_optimize_without_text(self, completion):
        analysis = AnalysisResult(score=42, provider="openai")
        with patch("litellm.acompletion", AsyncMock(return_value=completion('{"improvements": []}'))):
            with pytest.raises(ParseError):
                await OpenAIProvider(api_key="sk-test").optimize_prompt("Tell me about X", analysis)


class TestPreview:
    @pytest.mark.asyncio
    async def test_plain_text(self, completion):
        mock = AsyncMock(return_value=completion("Here is a poem."))
        with patch("litellm.acompletion", mock):
            assert await AnthropicProvider(api_key="sk-ant").generate_preview("Write a poem") == "Here is a poem."
        assert mock.call_args.kwargs["messages"] == [{"role": "user", "content": "Write a poem"}]
        assert "response_format" not in mock.call_args.kwargs


# ── Per-backend configuration ───────────────────────────────────────

class TestBackendConfig:
    @pytest.mark.asyncio
    async def test_kimi_uses_moonshot_base(self, completion):
        mock = AsyncMock(return_value=completion("ok"))
        with patch("litellm.acompletion", mock):
            await KimiProvider(api_key="sk-kimi").generate_preview("hello there")
        assert mock.call_args.kwargs["model"] == "openai/moonshot-v1-128k"
        assert mock.call_args.kwargs["api_base"] == "https://api.moonshot.cn/v1"

    @pytest.mark.asyncio
    async def test_openai_endpoint_override(self, completion):
        mock = AsyncMock(return_value=completion("ok"))
        with patch("litellm.acompletion", mock):
            await OpenAIProvider(api_key="sk", endpoint="https://proxy.local/v1").generate_preview("hello there")
        assert mock.call_args.kwargs["api_base"] == "https://proxy.local/v1"

    @pytest.mark.asyncio
    async def test_google_prefix(self, completion):
        mock = AsyncMock(return_value=completion("ok"))
        with patch("litellm.acompletion", mock):
            await GoogleProvider(api_key="AIza-test").generate_preview("hello there")
        assert mock.call_args.kwargs["model"] == "gemini/gemini-1.5-flash-latest"
        assert mock.call_args.kwargs["max_tokens"] == 8192

    def test_models_are_per_instance(self):
        a, b = OllamaProvider(), OllamaProvider()
        a.models.clear()
        assert len(b.models) == 2

    @pytest.mark.parametrize("cls", [AnthropicProvider, OpenAIProvider, GoogleProvider, KimiProvider, OpenRouterProvider])
    def test_default_model_is_listed(self, cls):
        assert cls.default_model in {m.id for m in cls.default_models}
        assert cls.metadata.requires_api_key is True
        assert cls(api_key=None).is_available() is False
        assert cls(api_key="k").is_available() is True


# ── Health checks ───────────────────────────────────────────────────

class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_no_key_reports_unavailable_without_calls(self):
        mock = AsyncMock()
        with patch("litellm.acompletion", mock):
            health = await AnthropicProvider().health_check()
        assert health.available is False
        assert health.error == "API key missing"
        mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_completion_probe(self, completion):
        mock = AsyncMock(return_value=completion("H"))
        with patch("litellm.acompletion", mock):
            health = await AnthropicProvider(api_key="sk-ant", health_check_timeout=3).health_check()
        assert health.available is True
        assert health.latency is not None
        assert health.models_count == 3
        assert mock.call_args.kwargs["max_tokens"] == 1
        assert mock.call_args.kwargs["timeout"] == 3

    @pytest.mark.asyncio
    async def test_probe_failure_never_raises(self):
        exc = litellm.exceptions.AuthenticationError(message="bad key", llm_provider="anthropic", model="x")
        with patch("litellm.acompletion", AsyncMock(side_effect=exc)):
            health = await AnthropicProvider(api_key="sk-bad").health_check()
        assert health.available is False
        assert health.error

    @pytest.mark.asyncio
    async def test_openai_lists_models(self, mock_transport):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"data": []})

        mock_transport(handler)
        health = await OpenAIProvider(api_key="sk-test").health_check()

        assert health.available is True
        assert seen == {"url": "https://api.openai.com/v1/models", "auth": "Bearer sk-test"}

    @pytest.mark.asyncio
    async def test_openai_rejected_key(self, mock_transport):
        mock_transport(lambda request: httpx.Response(401, json={"error": "invalid key"}))
        health = await OpenAIProvider(api_key="sk-bad").health_check()
        assert health.available is False


# ── Ollama ──────────────────────────────────────────────────────────

class TestOllama:
    def test_available_without_key(self):
        assert OllamaProvider().is_available() is True

    def test_unavailable_on_vercel(self, monkeypatch):
        monkeypatch.setenv("VERCEL", "1")
        assert OllamaProvider().is_available() is False

    @pytest.mark.asyncio
    async def test_vercel_health(self, monkeypatch):
        monkeypatch.setenv("VERCEL", "1")
        health = await OllamaProvider().health_check()
        assert health.available is False

    @pytest.mark.asyncio
    async def test_health_discovers_models(self, mock_transport):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"models": [
                {"name": "qwen2.5:7b", "size": 4_700_000_000},
                {"name": "phi3", "size": 2_300_000_000},
            ]})

        mock_transport(handler)
        provider = OllamaProvider(endpoint="http://gpu-box:11434/")
        health = await provider.health_check()

        assert seen["url"] == "http://gpu-box:11434/api/tags"
        assert health.available is True
        assert health.models_count == 2
        assert [m.id for m in provider.models] == ["qwen2.5:7b", "phi3"]
        assert provider.models[0].description == "Size: 4.4GB"
        assert provider.models[0].tier == "free"

    @pytest.mark.asyncio
    async def test_unreachable(self, mock_transport):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        mock_transport(handler)
        provider = OllamaProvider()
        health = await provider.health_check()

        assert health.available is False
        assert health.error == "Ollama is not running or not reachable"
        assert [m.id for m in provider.models] == ["llama3.2", "mistral"]

    @pytest.mark.asyncio
    async def test_completion_uses_endpoint_and_json_mode(self, completion):
        mock = AsyncMock(return_value=completion(ANALYSIS_JSON))
        with patch("litellm.acompletion", mock):
            result = await OllamaProvider(endpoint="http://gpu-box:11434").analyze_prompt("Tell me about X")
        assert result.provider == ProviderType.OLLAMA
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "ollama_chat/llama3.2"
        assert kwargs["api_base"] == "http://gpu-box:11434"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "api_key" not in kwargs

    def test_model_not_found_mapping(self):
        mapped = OllamaProvider().map_error(Exception("model 'llama9' not found, try pulling it first"))
        assert isinstance(mapped, ModelNotFoundError)

    def test_connection_refused_mapping(self):
        mapped = OllamaProvider().map_error(Exception("[Errno 111] Connection refused"))
        assert isinstance(mapped, ProviderUnavailableError)
        assert mapped.message == "Ollama is not running or not reachable"
