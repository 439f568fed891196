"""Shared adapter base: LiteLLM calls, structured output and error mapping.

Subclasses only declare what differs per backend (metadata, capabilities,
static models, LiteLLM prefix, API base) and override the health probe where
the backend offers something cheaper than a one-token completion.
"""

from __future__ import annotations

import logging
import re
import time
from typing import ClassVar, Optional

import httpx
import litellm
from pydantic import ValidationError

from errors import (
    APIError,
    AuthenticationError,
    EasyPromptError,
    ModelNotFoundError,
    ParseError,
    ProviderUnavailableError,
    RateLimitError,
)
from providers.parsing import parse_structured_output
from providers.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    OPTIMIZATION_SYSTEM_PROMPT,
    build_optimization_message,
)
from schemas import (
    AnalysisResult,
    HealthStatus,
    Model,
    OptimizedPrompt,
    ProviderCapabilities,
    ProviderMetadata,
)

# We surface failures immediately instead of letting LiteLLM retry behind our timeouts
litellm.num_retries = 0
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_HEALTH_CHECK_TIMEOUT = 5.0
DEFAULT_TEMPERATURE = 0.7


def sanitize_error(error_msg: str, api_key: Optional[str] = None) -> str:
    """Remove API keys and sensitive tokens from error messages."""
    msg = error_msg

    if api_key and len(api_key) > 8:
        msg = msg.replace(api_key, "***")

    msg = re.sub(r'(sk-[a-zA-Z0-9]{8})[a-zA-Z0-9-]+', r'\1***', msg)
    msg = re.sub(r'(sk-ant-[a-zA-Z0-9]{4})[a-zA-Z0-9_-]+', r'\1***', msg)
    msg = re.sub(r'(sk-or-[a-zA-Z0-9]{4})[a-zA-Z0-9_-]+', r'\1***', msg)
    msg = re.sub(r'(AIza[a-zA-Z0-9]{4})[a-zA-Z0-9_-]+', r'\1***', msg)
    msg = re.sub(r'Bearer\s+[a-zA-Z0-9._-]+', 'Bearer ***', msg)

    return msg


def _retry_after(exc: Exception) -> Optional[int]:
    """Seconds from a Retry-After header on the error's response, if any."""
    headers = getattr(exc, "litellm_response_headers", None)
    if headers is None:
        response = getattr(exc, "response", None)
        headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return None


def _status_code(exc: Exception) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def map_provider_error(exc: Exception, provider: str, *, api_key: Optional[str] = None) -> EasyPromptError:
    """Translate a LiteLLM/httpx exception into the shared taxonomy."""
    if isinstance(exc, EasyPromptError):
        return exc

    message = sanitize_error(str(exc)[:500], api_key) or type(exc).__name__

    if isinstance(exc, (litellm.exceptions.AuthenticationError, litellm.exceptions.PermissionDeniedError)):
        return AuthenticationError(message, provider=provider)
    if isinstance(exc, litellm.exceptions.RateLimitError):
        return RateLimitError(message, provider=provider, retry_after=_retry_after(exc))
    if isinstance(exc, litellm.exceptions.NotFoundError):
        return ModelNotFoundError(message, provider=provider)
    if isinstance(exc, (
        litellm.exceptions.Timeout,
        litellm.exceptions.APIConnectionError,
        litellm.exceptions.ServiceUnavailableError,
        httpx.TimeoutException,
        httpx.TransportError,
    )):
        return ProviderUnavailableError(message, provider=provider)

    status = _status_code(exc)
    if status in (401, 403):
        return AuthenticationError(message, provider=provider)
    if status == 429:
        return RateLimitError(message, provider=provider, retry_after=_retry_after(exc))
    if status == 404:
        return ModelNotFoundError(message, provider=provider)
    if status in (502, 503, 504):
        return ProviderUnavailableError(message, provider=provider)
    return APIError(message, provider=provider, status_code=status or 500)


def _message_text(response) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        content = None
    return content or ""


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


class BaseProvider:
    """Uniform contract over one AI backend.

    Instances are cheap values built per request with that request's
    credentials; never share one across users.
    """

    metadata: ClassVar[ProviderMetadata]
    capabilities: ClassVar[ProviderCapabilities]
    default_models: ClassVar[tuple[Model, ...]] = ()
    default_model: ClassVar[str]
    litellm_prefix: ClassVar[str]
    api_base: ClassVar[Optional[str]] = None
    # Ask the backend for a JSON object response (response_format / format=json)
    json_mode: ClassVar[bool] = False

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        health_check_timeout: float = DEFAULT_HEALTH_CHECK_TIMEOUT,
    ):
        self.api_key = api_key or None
        self.endpoint = endpoint or None
        self.request_timeout = request_timeout
        self.health_check_timeout = health_check_timeout
        self.models: list[Model] = [m.model_copy() for m in self.default_models]

    @property
    def name(self) -> str:
        return self.metadata.name.value

    def is_available(self) -> bool:
        """True when there are enough credentials to attempt a call."""
        if self.metadata.requires_api_key:
            return bool(self.api_key)
        return True

    def get_model(self, model_id: Optional[str] = None) -> str:
        return model_id or self.default_model

    def map_error(self, exc: Exception) -> EasyPromptError:
        return map_provider_error(exc, self.name, api_key=self.api_key)

    # --- LiteLLM plumbing ---

    def _api_base(self) -> Optional[str]:
        return self.api_base

    def _require_credentials(self) -> None:
        if self.metadata.requires_api_key and not self.api_key:
            raise AuthenticationError("API key is missing", provider=self.name)

    def _completion_kwargs(
        self,
        model_id: str,
        messages: list[dict],
        *,
        json_output: bool = False,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        kwargs = {
            "model": f"{self.litellm_prefix}/{model_id}",
            "messages": messages,
            "max_tokens": max_tokens or self.capabilities.max_tokens,
            "temperature": DEFAULT_TEMPERATURE,
            "timeout": timeout or self.request_timeout,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        api_base = self._api_base()
        if api_base:
            kwargs["api_base"] = api_base
        if json_output and self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def _complete(self, messages: list[dict], model_id: str, **options) -> str:
        """Run one chat completion and return the assistant text."""
        self._require_credentials()
        kwargs = self._completion_kwargs(model_id, messages, **options)
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            mapped = self.map_error(e)
            logger.debug("Completion failed: provider=%s model=%s error=%s", self.name, model_id, mapped.code)
            raise mapped from e
        return _message_text(response)

    # --- Public contract ---

    async def analyze_prompt(self, prompt: str, model_id: Optional[str] = None) -> AnalysisResult:
        model = self.get_model(model_id)
        content = await self._complete(
            [
                {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model,
            json_output=True,
        )
        data = parse_structured_output(content, provider=self.name)
        data["provider"] = self.name
        try:
            return AnalysisResult.model_validate(data)
        except ValidationError as e:
            raise ParseError(
                f"Analysis response has an unexpected shape ({e.error_count()} error(s))",
                provider=self.name, raw_response=content,
            ) from e

    async def optimize_prompt(
        self, prompt: str, analysis: AnalysisResult, model_id: Optional[str] = None
    ) -> OptimizedPrompt:
        model = self.get_model(model_id)
        content = await self._complete(
            [
                {"role": "system", "content": OPTIMIZATION_SYSTEM_PROMPT},
                {"role": "user", "content": build_optimization_message(prompt, analysis.model_dump(mode="json"))},
            ],
            model,
            json_output=True,
        )
        data = parse_structured_output(content, provider=self.name)
        try:
            return OptimizedPrompt.model_validate(data)
        except ValidationError as e:
            raise ParseError(
                f"Optimization response has an unexpected shape ({e.error_count()} error(s))",
                provider=self.name, raw_response=content,
            ) from e

    async def generate_preview(self, prompt: str, model_id: Optional[str] = None) -> str:
        """Plain completion, used for side-by-side comparison."""
        return await self._complete([{"role": "user", "content": prompt}], self.get_model(model_id))

    async def health_check(self) -> HealthStatus:
        """Probe the backend. Never raises; failures come back as available=False."""
        if not self.is_available():
            error = "API key missing" if self.metadata.requires_api_key else "Not available in this environment"
            return HealthStatus(available=False, error=error)

        start = time.perf_counter()
        try:
            await self._probe()
        except Exception as e:
            mapped = self.map_error(e)
            logger.info("Health check failed: provider=%s error=%s", self.name, mapped.message)
            return HealthStatus(available=False, latency=_elapsed_ms(start), error=mapped.message)

        return HealthStatus(available=True, latency=_elapsed_ms(start), models_count=len(self.models))

    async def _probe(self) -> None:
        """Cheapest live call proving the credentials work: a one-token completion."""
        await self._complete(
            [{"role": "user", "content": "Hi"}],
            self.default_model,
            max_tokens=1,
            timeout=self.health_check_timeout,
        )


class OpenAICompatibleProvider(BaseProvider):
    """Backends speaking the OpenAI REST dialect; health check lists models."""

    def _api_base(self) -> Optional[str]:
        return self.endpoint or self.api_base

    async def _probe(self) -> None:
        self._require_credentials()
        url = f"{self._api_base().rstrip('/')}/models"
        async with httpx.AsyncClient(timeout=self.health_check_timeout) as client:
            resp = await client.get(url, headers={"Authorization": f"Bearer {self.api_key}"})
            resp.raise_for_status()
