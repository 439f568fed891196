"""OpenRouter adapter: many hosted models behind one OpenAI-compatible API."""

from providers.base import BaseProvider, OpenAICompatibleProvider
from schemas import Model, ModelPricing, ProviderCapabilities, ProviderMetadata, ProviderType


class OpenRouterProvider(OpenAICompatibleProvider):
    metadata = ProviderMetadata(
        name=ProviderType.OPENROUTER,
        display_name="OpenRouter",
        category="commercial",
        location="cloud",
        requires_api_key=True,
        is_openai_compatible=True,
        supports_model_discovery=False,
        description="Access multiple AI models through one unified API",
        documentation="https://openrouter.ai/docs",
    )
    capabilities = ProviderCapabilities(
        streaming=True, function_calling=True, vision=False, embeddings=False, max_tokens=4096,
    )
    default_models = (
        Model(
            id="google/gemini-flash-1.5", name="Gemini Flash 1.5", tier="fast",
            provider=ProviderType.OPENROUTER, context_window=1_000_000,
            pricing=ModelPricing(input=0.075, output=0.3),
        ),
        Model(
            id="anthropic/claude-3-haiku", name="Claude 3 Haiku", tier="fast",
            provider=ProviderType.OPENROUTER, context_window=200_000,
            pricing=ModelPricing(input=0.25, output=1.25),
        ),
        Model(
            id="meta-llama/llama-3.1-8b-instruct", name="Llama 3.1 8B Instruct", tier="fast",
            provider=ProviderType.OPENROUTER, context_window=131_072,
            pricing=ModelPricing(input=0.06, output=0.06), open_source=True,
        ),
        Model(
            id="anthropic/claude-3.5-sonnet", name="Claude 3.5 Sonnet", tier="standard",
            provider=ProviderType.OPENROUTER, context_window=200_000,
            pricing=ModelPricing(input=3.0, output=15.0),
        ),
        Model(
            id="openai/gpt-4o", name="GPT-4o", tier="standard",
            provider=ProviderType.OPENROUTER, context_window=128_000,
            pricing=ModelPricing(input=2.5, output=10.0),
        ),
    )
    default_model = "meta-llama/llama-3.1-8b-instruct"
    litellm_prefix = "openrouter"
    api_base = "https://openrouter.ai/api/v1"

    # /models is public on OpenRouter, so only a real completion proves the key
    _probe = BaseProvider._probe
