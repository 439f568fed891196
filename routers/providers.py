"""Provider listing and health routes."""

from typing import Optional

from fastapi import APIRouter, Depends

import actions
from actions import AppContext
from auth import get_current_user
from routers.helpers import get_ctx
from schemas import HealthStatus, ProviderInfo, ProviderType

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("", response_model=list[ProviderInfo])
async def list_providers(ctx: AppContext = Depends(get_ctx), user: Optional[dict] = Depends(get_current_user)):
    """Every supported provider, with live availability for the current user."""
    return await actions.get_providers(ctx, user=user)


@router.get("/{name}/health", response_model=HealthStatus)
async def provider_health(
    name: ProviderType,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    return await actions.check_health(ctx, name, user=user)
