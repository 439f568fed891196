"""Build provider adapters from a name plus resolved credentials.

No singletons: every call constructs a fresh adapter carrying the calling
user's credentials, so instances are never shared across users.
"""

import asyncio
import logging
from typing import Optional, Union

from credentials import Credentials, resolve_credentials
from errors import ProviderUnavailableError
from providers.anthropic import AnthropicProvider
from providers.base import BaseProvider, DEFAULT_HEALTH_CHECK_TIMEOUT, DEFAULT_REQUEST_TIMEOUT
from providers.google import GoogleProvider
from providers.kimi import KimiProvider
from providers.ollama import OllamaProvider
from providers.openai import OpenAIProvider
from providers.openrouter import OpenRouterProvider
from schemas import HealthStatus, ProviderInfo, ProviderMetadata, ProviderType

logger = logging.getLogger(__name__)

# Declaration order is display order
PROVIDER_CLASSES: dict[ProviderType, type[BaseProvider]] = {
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.GOOGLE: GoogleProvider,
    ProviderType.KIMI: KimiProvider,
    ProviderType.OPENROUTER: OpenRouterProvider,
    ProviderType.OLLAMA: OllamaProvider,
}

_missing = set(ProviderType) - set(PROVIDER_CLASSES)
if _missing:
    raise RuntimeError(f"No adapter registered for: {sorted(p.value for p in _missing)}")


def parse_provider_type(name: Union[str, ProviderType]) -> ProviderType:
    try:
        return ProviderType(name)
    except ValueError:
        raise ProviderUnavailableError(f"Provider '{name}' is not supported", provider=str(name))


def get_supported_providers() -> list[ProviderType]:
    return list(PROVIDER_CLASSES)


def create_instance(
    name: Union[str, ProviderType],
    credentials: Optional[Credentials] = None,
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    health_check_timeout: float = DEFAULT_HEALTH_CHECK_TIMEOUT,
) -> BaseProvider:
    """Construct an adapter. Pure: no I/O, no credential lookup."""
    cls = PROVIDER_CLASSES[parse_provider_type(name)]
    creds = credentials or Credentials()
    return cls(
        api_key=creds.api_key,
        endpoint=creds.endpoint,
        request_timeout=request_timeout,
        health_check_timeout=health_check_timeout,
    )


def get_provider_metadata(name: Union[str, ProviderType]) -> ProviderMetadata:
    return PROVIDER_CLASSES[parse_provider_type(name)].metadata


async def get_provider(db, name, user_id: Optional[str] = None, settings=None) -> BaseProvider:
    """Resolve credentials for (provider, user) and build the adapter."""
    provider_type = parse_provider_type(name)
    credentials = await resolve_credentials(db, provider_type, user_id)
    timeouts = {}
    if settings is not None:
        timeouts = {
            "request_timeout": settings.request_timeout,
            "health_check_timeout": settings.health_check_timeout,
        }
    return create_instance(provider_type, credentials, **timeouts)


def _provider_info(provider: BaseProvider, health: HealthStatus) -> ProviderInfo:
    return ProviderInfo(
        **provider.metadata.model_dump(),
        models=provider.models,
        capabilities=provider.capabilities,
        available=provider.is_available() and health.available,
        latency=health.latency,
        error=health.error,
    )


async def _describe(db, provider_type: ProviderType, user_id, settings) -> ProviderInfo:
    try:
        provider = await get_provider(db, provider_type, user_id, settings)
        health = await provider.health_check()
    except Exception as e:
        logger.warning("Failed to load provider %s: %s", provider_type.value, e)
        provider = create_instance(provider_type)
        health = HealthStatus(available=False, error=str(e) or type(e).__name__)
    return _provider_info(provider, health)


async def get_available_providers(db, user_id: Optional[str] = None, settings=None) -> list[ProviderInfo]:
    """Describe every supported provider, health-checking them concurrently."""
    return list(await asyncio.gather(*[
        _describe(db, provider_type, user_id, settings) for provider_type in PROVIDER_CLASSES
    ]))


async def is_provider_available(db, name, user_id: Optional[str] = None, settings=None) -> bool:
    try:
        provider = await get_provider(db, name, user_id, settings)
        if not provider.is_available():
            return False
        health = await provider.health_check()
    except Exception as e:
        logger.debug("Availability check failed for %s: %s", name, e)
        return False
    return health.available
