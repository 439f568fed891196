"""Pydantic schemas for EasyPrompt: provider descriptions, results and API bodies."""
from __future__ import annotations

from enum import Enum
from typing import Optional, List, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


# ──────────────────────── Provider identity ────────────────────────

class ProviderType(str, Enum):
    """Closed set of supported backends, in display order."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    KIMI = "kimi"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"


ProviderCategory = Literal["commercial", "open-source"]
ProviderLocation = Literal["cloud", "local"]
ModelTier = Literal["free", "fast", "standard", "premium"]


class ProviderMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: ProviderType
    display_name: str
    category: ProviderCategory
    location: ProviderLocation
    requires_api_key: bool
    is_openai_compatible: bool
    supports_model_discovery: bool
    description: str
    documentation: str
    default_endpoint: Optional[str] = None


class ModelPricing(BaseModel):
    """USD per 1M tokens."""
    input: float = Field(..., ge=0)
    output: float = Field(..., ge=0)


class Model(BaseModel):
    id: str
    name: str
    tier: ModelTier
    provider: ProviderType
    description: Optional[str] = None
    context_window: Optional[int] = Field(None, ge=1)
    pricing: Optional[ModelPricing] = None
    open_source: Optional[bool] = None


class ProviderCapabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    streaming: bool
    function_calling: bool
    vision: bool
    embeddings: bool
    max_tokens: int = Field(..., ge=1)


class HealthStatus(BaseModel):
    available: bool
    latency: Optional[float] = None  # ms
    error: Optional[str] = None
    models_count: Optional[int] = None


# ──────────────────────── Results ────────────────────────

def _coerce_str_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [v if isinstance(v, str) else str(v) for v in value]
    return value


class AnalysisResult(BaseModel):
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    score: int = 0
    provider: ProviderType

    @field_validator("issues", "suggestions", mode="before")
    @classmethod
    def _lists(cls, v):
        return _coerce_str_list(v)

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        """Models sometimes answer 7.5 or "80"; round and clamp into 0-100."""
        try:
            score = round(float(v))
        except (TypeError, ValueError):
            raise ValueError(f"score must be numeric, got {v!r}")
        return max(0, min(100, score))


class OptimizedPrompt(BaseModel):
    text: str = Field(..., min_length=1, validation_alias=AliasChoices("text", "optimized", "optimized_prompt"))
    improvements: List[str] = Field(default_factory=list)
    reasoning: str = ""

    @field_validator("improvements", mode="before")
    @classmethod
    def _lists(cls, v):
        return _coerce_str_list(v)


class OptimizationResult(BaseModel):
    original: str
    optimized: str
    improvements: List[str]
    analysis: AnalysisResult
    provider: ProviderType
    model: str
    timestamp: str


class ProviderInfo(ProviderMetadata):
    models: List[Model]
    capabilities: ProviderCapabilities
    available: bool
    latency: Optional[float] = None
    error: Optional[str] = None


class PreviewComparison(BaseModel):
    provider: ProviderType
    model: str
    output: Optional[str] = None
    error: Optional[str] = None
    latency_ms: float = 0.0


class ProviderConfigView(BaseModel):
    """Stored provider config as shown to its owner (never any secret material)."""
    id: str
    provider_name: str
    display_name: Optional[str] = None
    is_enabled: bool
    has_api_key: bool
    has_endpoint: bool
    created_at: str
    updated_at: str
    last_used_at: Optional[str] = None


# ──────────────────── Request Schemas ──────────────────────

class AnalyzeRequest(BaseModel):
    prompt: str = Field(default="", max_length=500_000)
    provider: ProviderType
    model: Optional[str] = Field(None, max_length=256)


class OptimizeRequest(BaseModel):
    prompt: str = Field(default="", max_length=500_000)
    analysis: Optional[AnalysisResult] = None
    provider: Optional[ProviderType] = None
    model: Optional[str] = Field(None, max_length=256)


class CompareRequest(BaseModel):
    prompt: str = Field(default="", max_length=500_000)
    providers: List[ProviderType] = Field(..., min_length=1)

    @field_validator("providers")
    @classmethod
    def _dedupe(cls, v):
        return list(dict.fromkeys(v))


class PreviewTarget(BaseModel):
    name: ProviderType
    model: Optional[str] = Field(None, max_length=256)


class ComparePreviewRequest(BaseModel):
    prompt: str = Field(default="", max_length=500_000)
    providers: List[PreviewTarget] = Field(..., min_length=1)


class ProviderConfigSave(BaseModel):
    provider: ProviderType
    api_key: Optional[str] = Field(None, max_length=1_000)
    endpoint: Optional[str] = Field(None, max_length=2_000)
    display_name: Optional[str] = Field(None, max_length=256)

    @field_validator("api_key", "endpoint", "display_name")
    @classmethod
    def _strip(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def check_key_or_endpoint(self):
        if not self.api_key and not self.endpoint:
            raise ValueError("Either API key or endpoint must be provided")
        return self


class ProviderConfigToggle(BaseModel):
    is_enabled: bool


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=8, max_length=256)
    name: Optional[str] = Field(None, max_length=256)

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Valid email required")
        return v


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=254)
    password: str = Field(..., max_length=256)

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return v.strip().lower()
