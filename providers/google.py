"""Google Gemini adapter."""

from providers.base import BaseProvider
from schemas import Model, ModelPricing, ProviderCapabilities, ProviderMetadata, ProviderType


class GoogleProvider(BaseProvider):
    metadata = ProviderMetadata(
        name=ProviderType.GOOGLE,
        display_name="Google Gemini",
        category="commercial",
        location="cloud",
        requires_api_key=True,
        is_openai_compatible=False,
        supports_model_discovery=False,
        description="Fast, capable AI with multimodal support",
        documentation="https://ai.google.dev/docs",
    )
    capabilities = ProviderCapabilities(
        streaming=True, function_calling=True, vision=True, embeddings=True, max_tokens=8192,
    )
    default_models = (
        Model(
            id="gemini-1.5-flash-latest", name="Gemini 1.5 Flash", tier="fast",
            provider=ProviderType.GOOGLE, description="Fast multimodal model",
            context_window=1_000_000, pricing=ModelPricing(input=0.075, output=0.3),
        ),
        Model(
            id="gemini-1.5-pro-latest", name="Gemini 1.5 Pro", tier="premium",
            provider=ProviderType.GOOGLE, description="Long-context reasoning model",
            context_window=2_000_000, pricing=ModelPricing(input=3.5, output=10.5),
        ),
    )
    default_model = "gemini-1.5-flash-latest"
    litellm_prefix = "gemini"
