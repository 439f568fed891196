"""Kimi (Moonshot AI) adapter, reached through its OpenAI-compatible API."""

from providers.base import OpenAICompatibleProvider
from schemas import Model, ModelPricing, ProviderCapabilities, ProviderMetadata, ProviderType


class KimiProvider(OpenAICompatibleProvider):
    metadata = ProviderMetadata(
        name=ProviderType.KIMI,
        display_name="Kimi AI",
        category="commercial",
        location="cloud",
        requires_api_key=True,
        is_openai_compatible=True,
        supports_model_discovery=False,
        description="Moonshot AI's Kimi with extended context capabilities",
        documentation="https://platform.moonshot.cn/docs",
    )
    capabilities = ProviderCapabilities(
        streaming=True, function_calling=True, vision=False, embeddings=False, max_tokens=4096,
    )
    default_models = (
        Model(
            id="moonshot-v1-128k", name="Moonshot v1 128K", tier="standard",
            provider=ProviderType.KIMI, description="Extended 128K context",
            context_window=128_000, pricing=ModelPricing(input=0.5, output=2.0),
        ),
        Model(
            id="moonshot-v1-32k", name="Moonshot v1 32K", tier="fast",
            provider=ProviderType.KIMI, description="32K context",
            context_window=32_000, pricing=ModelPricing(input=0.3, output=1.0),
        ),
        Model(
            id="moonshot-v1-8k", name="Moonshot v1 8K", tier="fast",
            provider=ProviderType.KIMI, description="8K context",
            context_window=8_000,
        ),
    )
    default_model = "moonshot-v1-128k"
    # LiteLLM has no moonshot route; drive it as a generic OpenAI endpoint
    litellm_prefix = "openai"
    api_base = "https://api.moonshot.cn/v1"
