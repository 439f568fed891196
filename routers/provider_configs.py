"""Per-user provider configuration routes (encrypted API keys / endpoints)."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

import actions
from actions import AppContext
from auth import get_current_user
from routers.helpers import get_ctx
from schemas import ProviderConfigSave, ProviderConfigToggle, ProviderConfigView

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/provider-configs", tags=["provider-configs"])


@router.get("", response_model=list[ProviderConfigView])
async def list_configs(ctx: AppContext = Depends(get_ctx), user: Optional[dict] = Depends(get_current_user)):
    """The current user's stored configs (never any secret material)."""
    return await actions.list_provider_configs(ctx, user)


@router.post("", response_model=ProviderConfigView)
async def save_config(
    body: ProviderConfigSave,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    """Create or update the config for one provider."""
    return await actions.save_provider_config(
        ctx, user, body.provider,
        api_key=body.api_key, endpoint=body.endpoint, display_name=body.display_name,
    )


@router.patch("/{config_id}", response_model=ProviderConfigView)
async def toggle_config(
    config_id: str,
    body: ProviderConfigToggle,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    return await actions.toggle_provider_config(ctx, user, config_id, body.is_enabled)


@router.delete("/{config_id}")
async def delete_config(
    config_id: str,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    await actions.delete_provider_config(ctx, user, config_id)
    return {"status": "ok"}
