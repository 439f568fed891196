"""Anthropic Claude adapter."""

from providers.base import BaseProvider
from schemas import Model, ModelPricing, ProviderCapabilities, ProviderMetadata, ProviderType


class AnthropicProvider(BaseProvider):
    metadata = ProviderMetadata(
        name=ProviderType.ANTHROPIC,
        display_name="Anthropic Claude",
        category="commercial",
        location="cloud",
        requires_api_key=True,
        is_openai_compatible=False,
        supports_model_discovery=False,
        description="Most intelligent AI model with exceptional reasoning",
        documentation="https://docs.anthropic.com",
    )
    capabilities = ProviderCapabilities(
        streaming=True, function_calling=True, vision=True, embeddings=False, max_tokens=4096,
    )
    default_models = (
        Model(
            id="claude-3-5-sonnet-20241022", name="Claude 3.5 Sonnet", tier="standard",
            provider=ProviderType.ANTHROPIC, description="Balanced intelligence and speed",
            context_window=200_000, pricing=ModelPricing(input=3.0, output=15.0),
        ),
        Model(
            id="claude-3-opus-20240229", name="Claude 3 Opus", tier="premium",
            provider=ProviderType.ANTHROPIC, description="Most capable Claude model",
            context_window=200_000, pricing=ModelPricing(input=15.0, output=75.0),
        ),
        Model(
            id="claude-3-haiku-20240307", name="Claude 3 Haiku", tier="fast",
            provider=ProviderType.ANTHROPIC, description="Fastest and most affordable",
            context_window=200_000, pricing=ModelPricing(input=0.25, output=1.25),
        ),
    )
    default_model = "claude-3-haiku-20240307"
    litellm_prefix = "anthropic"
