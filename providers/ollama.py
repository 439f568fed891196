"""Ollama adapter for locally hosted open-source models.

Needs no API key, only a reachable endpoint. The health check doubles as
model discovery: it lists the locally pulled models from ``/api/tags`` and
replaces the static defaults with them.
"""

import logging
import os
from typing import Optional

import httpx

from errors import EasyPromptError, ModelNotFoundError, ProviderUnavailableError
from providers.base import BaseProvider, map_provider_error
from schemas import Model, ProviderCapabilities, ProviderMetadata, ProviderType

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://127.0.0.1:11434"


def _format_size(size_bytes) -> str:
    try:
        return f"Size: {float(size_bytes) / 1024 ** 3:.1f}GB"
    except (TypeError, ValueError):
        return "Size: unknown"


class OllamaProvider(BaseProvider):
    metadata = ProviderMetadata(
        name=ProviderType.OLLAMA,
        display_name="Ollama (Local)",
        category="open-source",
        location="local",
        requires_api_key=False,
        is_openai_compatible=False,
        supports_model_discovery=True,
        description="100% local, private, and free AI models",
        documentation="https://ollama.ai/docs",
        default_endpoint=DEFAULT_ENDPOINT,
    )
    capabilities = ProviderCapabilities(
        streaming=True, function_calling=False, vision=True, embeddings=True, max_tokens=4096,
    )
    default_models = (
        Model(
            id="llama3.2", name="Llama 3.2", tier="free", provider=ProviderType.OLLAMA,
            open_source=True, description="Meta Llama 3.2 - Efficient and capable",
        ),
        Model(
            id="mistral", name="Mistral 7B", tier="free", provider=ProviderType.OLLAMA,
            open_source=True, description="Mistral AI 7B model",
        ),
    )
    default_model = "llama3.2"
    litellm_prefix = "ollama_chat"
    json_mode = True

    def is_available(self) -> bool:
        # Serverless deployments cannot reach a local daemon
        return os.environ.get("VERCEL") != "1"

    def _api_base(self) -> Optional[str]:
        return (self.endpoint or DEFAULT_ENDPOINT).rstrip("/")

    def map_error(self, exc: Exception) -> EasyPromptError:
        text = str(exc)
        lowered = text.lower()
        if "model" in lowered and "not found" in lowered:
            return ModelNotFoundError(f"Selected model not found: {text[:200]}", provider=self.name)
        if isinstance(exc, httpx.ConnectError) or "connection refused" in lowered or "econnrefused" in lowered:
            return ProviderUnavailableError("Ollama is not running or not reachable", provider=self.name)
        return map_provider_error(exc, self.name)

    async def _probe(self) -> None:
        async with httpx.AsyncClient(timeout=self.health_check_timeout) as client:
            resp = await client.get(f"{self._api_base()}/api/tags")
            resp.raise_for_status()
            data = resp.json()

        self.models = [
            Model(
                id=m["name"],
                name=m["name"],
                tier="free",
                provider=ProviderType.OLLAMA,
                open_source=True,
                description=_format_size(m.get("size")),
            )
            for m in data.get("models", [])
            if m.get("name")
        ]
        logger.debug("Discovered %d Ollama models at %s", len(self.models), self._api_base())
