"""
Data Models for the SEO Content Orchestrator
============================================

Pydantic models for requests, provider configuration, per-provider outcomes
and the final generation result.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Tone(str, Enum):
    PROFESSIONAL = "professional"
    CASUAL = "casual"
    TECHNICAL = "technical"
    FRIENDLY = "friendly"


class SEOFocus(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    BALANCED = "balanced"


class ContentType(str, Enum):
    HOW_TO = "how-to"
    LISTICLE = "listicle"
    REVIEW = "review"
    COMPARISON = "comparison"
    NEWS = "news"
    OPINION = "opinion"


class ProviderKind(str, Enum):
    """Closed set of backends with an adapter implementation."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    XAI = "xai"
    COHERE = "cohere"


class ErrorKind(str, Enum):
    """Classification attached to failed outcomes and rejected candidates."""
    UNCONFIGURED = "provider_unconfigured"
    TIMEOUT = "timeout"
    AUTH_FAILED = "auth_failed"
    QUOTA_EXHAUSTED = "quota_exhausted"
    PROVIDER_ERROR = "provider_error"
    EMPTY_RESPONSE = "empty_response"
    CONTENT_TOO_SHORT = "content_too_short"


class DispatchStatus(str, Enum):
    COMPLETED = "completed"
    ALL_PROVIDERS_FAILED = "all_providers_failed"


class PreflightState(str, Enum):
    INIT = "init"
    CHECKING_PROVIDERS = "checking_providers"
    SCORED = "scored"
    READY = "ready"
    BLOCKED = "blocked"


FALLBACK_PROVIDER_NAME = "fallback"


class ContentRequest(BaseModel):
    """A single content generation request. Immutable once constructed."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    keyword: str = Field(..., min_length=1, max_length=200, description="Primary topic / keyword")
    target_url: str = Field(..., description="URL the backlink must point to")
    anchor_text: Optional[str] = Field(default=None, description="Backlink anchor text (defaults to keyword)")
    word_count: int = Field(default=1500, ge=100, le=5000, description="Desired length in words")
    tone: Tone = Field(default=Tone.PROFESSIONAL)
    seo_focus: SEOFocus = Field(default=SEOFocus.HIGH)
    content_type: ContentType = Field(default=ContentType.HOW_TO)
    industry: Optional[str] = Field(default=None, max_length=200)
    target_audience: Optional[str] = Field(default=None, max_length=200)
    user_location: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="before")
    @classmethod
    def _default_anchor_text(cls, data):
        if isinstance(data, dict):
            anchor = data.get("anchor_text")
            if anchor is None or not str(anchor).strip():
                data = {**data, "anchor_text": data.get("keyword")}
        return data

    @field_validator("keyword", "anchor_text")
    @classmethod
    def _strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        stripped = " ".join(value.split())
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("target_url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in value:
            raise ValueError(f"target_url must be an absolute http(s) URL, got {value!r}")
        return value

    @property
    def anchor(self) -> str:
        return self.anchor_text or self.keyword

    def moderation_text(self) -> str:
        """Raw request fields concatenated for the moderation gate."""
        parts = [self.keyword, self.anchor, self.target_url, self.industry, self.target_audience]
        return "\n".join(part for part in parts if part)


class ProviderDescriptor(BaseModel):
    """Static configuration of one backend, loaded at startup."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    kind: ProviderKind
    model: str = Field(..., min_length=1)
    priority_weight: float = Field(default=0.25, ge=0.0, le=1.0)
    cost_per_1k_tokens: float = Field(default=0.0, ge=0.0)
    daily_token_quota: Optional[int] = Field(default=None, gt=0, description="None means unlimited")
    supports_streaming: bool = False
    api_key: str = Field(default="", repr=False, exclude=True)
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)


class GenerationOptions(BaseModel):
    """Per-call knobs passed to an adapter."""

    model: Optional[str] = None
    max_tokens: int = Field(default=3000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    system_prompt: Optional[str] = None


class GenerationOutcome(BaseModel):
    """Result of one adapter call for one request."""

    provider: str
    success: bool
    text: str = ""
    prompt_style: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    latency_ms: float = 0.0
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(
        cls,
        provider: str,
        kind: ErrorKind,
        message: str,
        latency_ms: float = 0.0,
        prompt_style: Optional[str] = None,
    ) -> "GenerationOutcome":
        return cls(
            provider=provider,
            success=False,
            error_kind=kind,
            error_message=message,
            latency_ms=latency_ms,
            prompt_style=prompt_style,
        )


class QualityBreakdown(BaseModel):
    """Sub-scores produced by the quality scorer; ``total`` is in [0, 100]."""

    length_fit: float = 0.0
    keyword_presence: float = 0.0
    structure: float = 0.0
    link_integration: float = 0.0
    readability: float = 0.0
    total: float = 0.0
    rejection: Optional[ErrorKind] = None


class ScoredOutcome(BaseModel):
    outcome: GenerationOutcome
    quality: QualityBreakdown
    quality_score: float
    provider_weight: float = 0.0
    latency_bonus: float = 0.0
    composite_score: float = 0.0
    rank: int = 0


class GenerationMetadata(BaseModel):
    title: str
    slug: str
    meta_description: str
    keywords: List[str] = Field(default_factory=list)
    word_count: int = 0
    reading_time: int = 0
    seo_score: int = 0


class ProviderProbe(BaseModel):
    provider: str
    configured: bool
    connectable: bool = False
    has_quota: bool = False
    eligible: bool = False
    latency_ms: float = 0.0

    @property
    def qualifies(self) -> bool:
        return self.configured and self.connectable and self.has_quota and self.eligible


class PreflightReport(BaseModel):
    state: PreflightState
    ready: bool
    eligible_providers: List[str] = Field(default_factory=list)
    probes: List[ProviderProbe] = Field(default_factory=list)


class UsageSnapshot(BaseModel):
    """Read-only view of one provider's ledger record."""

    provider: str
    configured: bool
    eligible: bool
    total_tokens: int = 0
    total_cost: float = 0.0
    window_date: date
    window_tokens: int = 0
    daily_token_quota: Optional[int] = None
    consecutive_failures: int = 0
    success_count: int = 0
    failure_count: int = 0
    disabled_reason: Optional[ErrorKind] = None
    last_success_at: Optional[datetime] = None
    last_tested_at: Optional[datetime] = None


class GenerationResult(BaseModel):
    """Final artifact handed to storage / UI collaborators."""

    content: str
    provider: str
    is_fallback: bool = False
    metadata: GenerationMetadata
    total_cost: float = 0.0
    total_tokens: int = 0
    processing_time_ms: float = 0.0
    dispatch_status: Optional[DispatchStatus] = None
    outcomes: List[GenerationOutcome] = Field(default_factory=list)
    ranking: List[ScoredOutcome] = Field(default_factory=list)
    requires_review: bool = False
    preflight: Optional[PreflightReport] = None

    def provider_costs(self) -> Dict[str, float]:
        return {outcome.provider: outcome.cost for outcome in self.outcomes}
