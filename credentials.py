"""Per-user provider credentials: resolution with environment fallback, plus the config services.

Resolution order for ``(provider, user)``:

1. The user's stored config, when it is enabled and decrypts to a non-empty
   API key (or, for providers that need no key, a non-empty endpoint).
2. ``{PROVIDER}_API_KEY`` / ``{PROVIDER}_ENDPOINT`` from the environment.

Each stored field is decrypted on its own. A field that cannot be read
(bad ciphertext, or a missing/malformed master key) is logged and treated
as absent, so a usable API key survives a corrupt endpoint and the caller
still gets the environment defaults when nothing stored is usable.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import aiosqlite

from db import Database, api_key_secret, endpoint_secret
from errors import ConfigNotFoundError, ConfigurationError, DecryptionError, InvalidInputError
from keyvault import KeyVault, vault as default_vault
from schemas import ProviderConfigView, ProviderType

logger = logging.getLogger(__name__)

# Providers usable with only an endpoint (no API key)
_KEYLESS = {ProviderType.OLLAMA}


@dataclass(frozen=True)
class Credentials:
    api_key: Optional[str] = None
    endpoint: Optional[str] = None

    def __repr__(self) -> str:
        key = "***" if self.api_key else None
        return f"Credentials(api_key={key!r}, endpoint={self.endpoint!r})"


def env_credentials(provider: ProviderType) -> Credentials:
    prefix = ProviderType(provider).value.upper()
    return Credentials(
        api_key=os.environ.get(f"{prefix}_API_KEY") or None,
        endpoint=os.environ.get(f"{prefix}_ENDPOINT") or None,
    )


def _decrypt_field(secret, kv: KeyVault, field: str, provider: ProviderType, user_id: str) -> Optional[str]:
    """Decrypt one stored field; an unreadable field is logged and treated as absent."""
    if secret is None:
        return None
    try:
        return kv.decrypt(secret)
    except (DecryptionError, ConfigurationError) as e:
        logger.warning(
            "Stored %s unreadable, ignoring it: %s", field, e.message,
            extra={"provider": provider.value, "user_id": user_id},
        )
        return None


def _decrypt_row(row: dict, kv: KeyVault, provider: ProviderType, user_id: str) -> Credentials:
    return Credentials(
        api_key=_decrypt_field(api_key_secret(row), kv, "api key", provider, user_id),
        endpoint=_decrypt_field(endpoint_secret(row), kv, "endpoint", provider, user_id),
    )


async def resolve_credentials(
    db: Database,
    provider: ProviderType,
    user_id: Optional[str] = None,
    *,
    kv: Optional[KeyVault] = None,
) -> Credentials:
    """Credentials for one provider call. Store errors propagate; decryption errors do not."""
    provider = ProviderType(provider)
    kv = kv or default_vault

    if user_id:
        row = await db.get_provider_config(user_id, provider.value)
        if row and row["is_enabled"]:
            stored = _decrypt_row(row, kv, provider, user_id)
            if stored.api_key or (provider in _KEYLESS and stored.endpoint):
                try:
                    await db.touch_provider_config(row["id"])
                except aiosqlite.Error as e:
                    logger.warning(
                        "Could not record provider config use: %s", e,
                        extra={"provider": provider.value, "user_id": user_id},
                    )
                return stored

    return env_credentials(provider)


# --- Config services ---

def _view(row: dict) -> ProviderConfigView:
    return ProviderConfigView(
        id=row["id"],
        provider_name=row["provider_name"],
        display_name=row.get("display_name"),
        is_enabled=bool(row["is_enabled"]),
        has_api_key=bool(row.get("encrypted_api_key")),
        has_endpoint=bool(row.get("encrypted_endpoint")),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        last_used_at=row.get("last_used_at"),
    )


async def save_provider_config(
    db: Database,
    user_id: str,
    provider: ProviderType,
    *,
    api_key: Optional[str] = None,
    endpoint: Optional[str] = None,
    display_name: Optional[str] = None,
    kv: Optional[KeyVault] = None,
) -> ProviderConfigView:
    """Encrypt and upsert. Fields left as None keep their stored value."""
    if not api_key and not endpoint:
        raise InvalidInputError("Either API key or endpoint must be provided")
    kv = kv or default_vault
    provider = ProviderType(provider)

    row = await db.upsert_provider_config(
        user_id,
        provider.value,
        api_key=kv.encrypt(api_key) if api_key else None,
        endpoint=kv.encrypt(endpoint) if endpoint else None,
        display_name=display_name,
    )
    logger.info("Provider config saved", extra={"provider": provider.value, "user_id": user_id})
    return _view(row)


async def list_provider_configs(db: Database, user_id: str) -> list[ProviderConfigView]:
    return [_view(row) for row in await db.list_provider_configs(user_id)]


async def toggle_provider_config(db: Database, user_id: str, config_id: str, enabled: bool) -> ProviderConfigView:
    if not await db.set_provider_config_enabled(user_id, config_id, enabled):
        raise ConfigNotFoundError(f"Provider config {config_id} not found")
    return _view(await db.get_provider_config_by_id(user_id, config_id))


async def delete_provider_config(db: Database, user_id: str, config_id: str) -> None:
    if not await db.delete_provider_config(user_id, config_id):
        raise ConfigNotFoundError(f"Provider config {config_id} not found")
    logger.info("Provider config deleted", extra={"user_id": user_id})


async def has_configured_providers(db: Database, user_id: str) -> bool:
    """True if the user has at least one enabled stored config."""
    return any(row["is_enabled"] for row in await db.list_provider_configs(user_id))
