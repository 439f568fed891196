"""Orchestration actions: the operations the HTTP layer (or any other caller) invokes.

Each action validates input before any I/O, resolves a fresh adapter for the
calling user and delegates to it. Taxonomy errors from below are logged with
provider context and re-raised as copies carrying only their user-facing
message; anything unexpected becomes a generic ``APIError``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Optional, TypeVar, Union

import credentials
from db import Database
from errors import (
    UNKNOWN_ERROR,
    APIError,
    AuthenticationRequiredError,
    EasyPromptError,
    PromptEmptyError,
    PromptTooLongError,
    PromptTooShortError,
)
from providers import factory
from schemas import (
    AnalysisResult,
    HealthStatus,
    OptimizationResult,
    PreviewComparison,
    PreviewTarget,
    ProviderConfigView,
    ProviderInfo,
    ProviderType,
)
from settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AppContext:
    """What every action needs: the data store and the runtime settings."""
    db: Database
    settings: Settings


def _user_id(user: Optional[dict]) -> Optional[str]:
    return user["id"] if user else None


def validate_prompt(prompt: Optional[str], settings: Settings) -> str:
    """Reject empty, too-short and too-long prompts. Returns the prompt unchanged."""
    if not prompt or not prompt.strip():
        raise PromptEmptyError("Please enter a valid prompt")
    if len(prompt) < settings.min_prompt_length:
        raise PromptTooShortError(f"Prompt must be at least {settings.min_prompt_length} characters")
    if len(prompt) > settings.max_prompt_length:
        raise PromptTooLongError(f"Prompt must be less than {settings.max_prompt_length} characters")
    return prompt


def _provider_name(provider: Union[ProviderType, str]) -> str:
    return provider.value if isinstance(provider, ProviderType) else str(provider)


def _provider_key(provider: Union[ProviderType, str]) -> Union[ProviderType, str]:
    """The enum member for a known name; unknown names stay as given."""
    try:
        return ProviderType(provider)
    except ValueError:
        return provider


async def _guarded(action: str, provider: Union[ProviderType, str], user_id: Optional[str], call: Awaitable[T]) -> T:
    """Await ``call``, converting failures into user-safe taxonomy errors."""
    name = _provider_name(provider)
    extra = {"action": action, "provider": name, "user_id": user_id}
    try:
        return await call
    except EasyPromptError as e:
        logger.warning("%s failed: %s: %s", action, e.code, e.message, extra=extra)
        raise e.for_user() from e
    except Exception as e:
        logger.exception("%s failed unexpectedly", action, extra=extra)
        raise APIError(UNKNOWN_ERROR, provider=name) from e


# --- Prompt actions ---

async def analyze(
    ctx: AppContext,
    prompt: str,
    provider: ProviderType,
    model_id: Optional[str] = None,
    user: Optional[dict] = None,
) -> AnalysisResult:
    validate_prompt(prompt, ctx.settings)
    provider = _provider_key(provider)
    user_id = _user_id(user)

    # Unknown names fail inside the guard as ProviderUnavailableError
    async def run() -> AnalysisResult:
        adapter = await factory.get_provider(ctx.db, provider, user_id, ctx.settings)
        return await adapter.analyze_prompt(prompt, model_id)

    return await _guarded("analyze", provider, user_id, run())


async def _optimize(
    ctx: AppContext,
    prompt: str,
    analysis: Optional[AnalysisResult],
    provider: ProviderType,
    model_id: Optional[str],
    user_id: Optional[str],
) -> OptimizationResult:
    adapter = await factory.get_provider(ctx.db, provider, user_id, ctx.settings)
    if analysis is None:
        analysis = await adapter.analyze_prompt(prompt, model_id)
    optimized = await adapter.optimize_prompt(prompt, analysis, model_id)
    return OptimizationResult(
        original=prompt,
        optimized=optimized.text,
        improvements=optimized.improvements,
        analysis=analysis,
        provider=provider,
        model=adapter.get_model(model_id),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


async def optimize(
    ctx: AppContext,
    prompt: str,
    analysis: Optional[AnalysisResult] = None,
    provider: Optional[ProviderType] = None,
    model_id: Optional[str] = None,
    user: Optional[dict] = None,
) -> OptimizationResult:
    """Rewrite a prompt, analyzing it first when no analysis is supplied."""
    validate_prompt(prompt, ctx.settings)
    provider = _provider_key(provider or ctx.settings.default_provider)
    user_id = _user_id(user)
    return await _guarded(
        "optimize", provider, user_id,
        _optimize(ctx, prompt, analysis, provider, model_id, user_id),
    )


async def compare(
    ctx: AppContext,
    prompt: str,
    providers: list[Union[ProviderType, str]],
    user: Optional[dict] = None,
) -> dict[Union[ProviderType, str], OptimizationResult | BaseException]:
    """Optimize with every provider at once.

    The result has exactly the requested providers as keys; a provider that
    failed (including an unknown name) maps to its user-safe error instead
    of aborting the others.
    """
    validate_prompt(prompt, ctx.settings)
    names = list(dict.fromkeys(_provider_key(p) for p in providers))
    user_id = _user_id(user)

    outcomes = await asyncio.gather(
        *[
            _guarded("compare", name, user_id, _optimize(ctx, prompt, None, name, None, user_id))
            for name in names
        ],
        return_exceptions=True,
    )
    return dict(zip(names, outcomes))


async def _preview(
    ctx: AppContext, prompt: str, target: PreviewTarget, user_id: Optional[str]
) -> PreviewComparison:
    async def run() -> tuple[str, str]:
        adapter = await factory.get_provider(ctx.db, target.name, user_id, ctx.settings)
        return adapter.get_model(target.model), await adapter.generate_preview(prompt, target.model)

    start = time.perf_counter()
    try:
        model, output = await _guarded("preview", target.name, user_id, run())
    except EasyPromptError as e:
        return PreviewComparison(
            provider=target.name,
            model=target.model or "unknown",
            error=e.user_message,
            latency_ms=round((time.perf_counter() - start) * 1000, 1),
        )
    return PreviewComparison(
        provider=target.name,
        model=model,
        output=output,
        latency_ms=round((time.perf_counter() - start) * 1000, 1),
    )


async def compare_previews(
    ctx: AppContext,
    prompt: str,
    targets: list[PreviewTarget],
    user: Optional[dict] = None,
) -> list[PreviewComparison]:
    """Run the raw prompt on each (provider, model) pair side by side, one row per target."""
    validate_prompt(prompt, ctx.settings)
    user_id = _user_id(user)
    return list(await asyncio.gather(*[_preview(ctx, prompt, t, user_id) for t in targets]))


# --- Provider discovery ---

async def get_providers(ctx: AppContext, user: Optional[dict] = None) -> list[ProviderInfo]:
    return await factory.get_available_providers(ctx.db, _user_id(user), ctx.settings)


async def check_health(ctx: AppContext, provider: ProviderType, user: Optional[dict] = None) -> HealthStatus:
    provider = _provider_key(provider)
    user_id = _user_id(user)
    adapter = await _guarded(
        "check_health", provider, user_id,
        factory.get_provider(ctx.db, provider, user_id, ctx.settings),
    )
    return await adapter.health_check()


# --- Stored provider configs (logged-in users only) ---

def _require_user(user: Optional[dict]) -> str:
    if not user:
        raise AuthenticationRequiredError("Authentication required")
    return user["id"]


async def save_provider_config(
    ctx: AppContext,
    user: Optional[dict],
    provider: ProviderType,
    *,
    api_key: Optional[str] = None,
    endpoint: Optional[str] = None,
    display_name: Optional[str] = None,
) -> ProviderConfigView:
    user_id = _require_user(user)
    return await credentials.save_provider_config(
        ctx.db, user_id, provider, api_key=api_key, endpoint=endpoint, display_name=display_name,
    )


async def list_provider_configs(ctx: AppContext, user: Optional[dict]) -> list[ProviderConfigView]:
    return await credentials.list_provider_configs(ctx.db, _require_user(user))


async def toggle_provider_config(
    ctx: AppContext, user: Optional[dict], config_id: str, enabled: bool
) -> ProviderConfigView:
    return await credentials.toggle_provider_config(ctx.db, _require_user(user), config_id, enabled)


async def delete_provider_config(ctx: AppContext, user: Optional[dict], config_id: str) -> None:
    await credentials.delete_provider_config(ctx.db, _require_user(user), config_id)
