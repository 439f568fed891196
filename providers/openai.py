"""OpenAI GPT adapter."""

from providers.base import OpenAICompatibleProvider
from schemas import Model, ModelPricing, ProviderCapabilities, ProviderMetadata, ProviderType


class OpenAIProvider(OpenAICompatibleProvider):
    metadata = ProviderMetadata(
        name=ProviderType.OPENAI,
        display_name="OpenAI GPT",
        category="commercial",
        location="cloud",
        requires_api_key=True,
        is_openai_compatible=True,
        supports_model_discovery=False,
        description="Most popular AI with strong creative and coding capabilities",
        documentation="https://platform.openai.com/docs",
    )
    capabilities = ProviderCapabilities(
        streaming=True, function_calling=True, vision=True, embeddings=True, max_tokens=4096,
    )
    default_models = (
        Model(
            id="gpt-4-turbo", name="GPT-4 Turbo", tier="premium",
            provider=ProviderType.OPENAI, description="Most capable GPT-4 model",
            context_window=128_000, pricing=ModelPricing(input=10.0, output=30.0),
        ),
        Model(
            id="gpt-4o", name="GPT-4o", tier="standard",
            provider=ProviderType.OPENAI, description="Multimodal flagship model",
            context_window=128_000, pricing=ModelPricing(input=5.0, output=15.0),
        ),
        Model(
            id="gpt-3.5-turbo", name="GPT-3.5 Turbo", tier="fast",
            provider=ProviderType.OPENAI, description="Fast and inexpensive",
            context_window=16_385, pricing=ModelPricing(input=0.5, output=1.5),
        ),
    )
    default_model = "gpt-4o"
    litellm_prefix = "openai"
    api_base = "https://api.openai.com/v1"
    json_mode = True
