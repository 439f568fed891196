"""Prompt routes: analyze, optimize and compare."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

import actions
from actions import AppContext
from auth import get_current_user
from errors import EasyPromptError
from routers.helpers import get_ctx
from schemas import (
    AnalysisResult,
    AnalyzeRequest,
    ComparePreviewRequest,
    CompareRequest,
    OptimizationResult,
    OptimizeRequest,
    PreviewComparison,
    ProviderType,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["prompts"])


@router.post("/analyze", response_model=AnalysisResult)
async def analyze_prompt(
    body: AnalyzeRequest,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    return await actions.analyze(ctx, body.prompt, body.provider, body.model, user=user)


@router.post("/optimize", response_model=OptimizationResult)
async def optimize_prompt(
    body: OptimizeRequest,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    return await actions.optimize(
        ctx, body.prompt, analysis=body.analysis, provider=body.provider, model_id=body.model, user=user,
    )


@router.post("/compare")
async def compare_prompts(
    body: CompareRequest,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    """Optimize with several providers; one entry per requested provider."""
    outcomes = await actions.compare(ctx, body.prompt, body.providers, user=user)
    results = {}
    for provider, outcome in outcomes.items():
        key = provider.value if isinstance(provider, ProviderType) else str(provider)
        if isinstance(outcome, EasyPromptError):
            results[key] = {"ok": False, **outcome.to_dict()}
        elif isinstance(outcome, BaseException):
            # Non-taxonomy exceptions are already converted by the action layer
            results[key] = {"ok": False, "error": "Failed to execute comparison", "code": "error"}
        else:
            results[key] = {"ok": True, "result": outcome.model_dump(mode="json")}
    return {"results": results}


@router.post("/compare/preview", response_model=list[PreviewComparison])
async def compare_previews(
    body: ComparePreviewRequest,
    ctx: AppContext = Depends(get_ctx),
    user: Optional[dict] = Depends(get_current_user),
):
    return await actions.compare_previews(ctx, body.prompt, body.providers, user=user)
