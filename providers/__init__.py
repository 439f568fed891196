"""Provider adapters and the factory that builds them."""

from providers.base import BaseProvider
from providers.factory import (
    PROVIDER_CLASSES,
    create_instance,
    get_available_providers,
    get_provider,
    get_provider_metadata,
    get_supported_providers,
    is_provider_available,
    parse_provider_type,
)

__all__ = [
    "BaseProvider",
    "PROVIDER_CLASSES",
    "create_instance",
    "get_available_providers",
    "get_provider",
    "get_provider_metadata",
    "get_supported_providers",
    "is_provider_available",
    "parse_provider_type",
]
