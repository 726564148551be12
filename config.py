"""
Configuration for the SEO Content Orchestrator
==============================================

Central configuration for provider descriptors, API keys, timeouts and the
tunable scoring/selection knobs. Values are loaded from environment variables
(optionally through a .env file) once at import time.
"""

import os
from typing import Any, Dict, List, Optional

import orjson
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

import prompt_builder
from models import ProviderDescriptor

# Load environment variables from .env file
load_dotenv()


TRUTHY_ENV_VALUES = {"1", "true", "yes", "on"}


# Static provider table. Credentials and quota ceilings are merged in from the
# environment by Config.load_providers().
DEFAULT_PROVIDER_SPECS: List[Dict[str, Any]] = [
    {
        "name": "openai",
        "kind": "openai",
        "model": "gpt-4o-mini",
        "priority_weight": 0.4,
        "cost_per_1k_tokens": 0.0015,
        "daily_token_quota": 2_000_000,
        "api_key_env": "OPENAI_API_KEY",
    },
    {
        "name": "grok",
        "kind": "xai",
        "model": "grok-2-1212",
        "priority_weight": 0.35,
        "cost_per_1k_tokens": 0.002,
        "daily_token_quota": 1_000_000,
        "api_key_env": "XAI_API_KEY",
        "base_url": "https://api.x.ai/v1",
    },
    {
        "name": "cohere",
        "kind": "cohere",
        "model": "command-r",
        "priority_weight": 0.25,
        "cost_per_1k_tokens": 0.001,
        "daily_token_quota": 1_000_000,
        "api_key_env": "COHERE_API_KEY",
        "base_url": "https://api.cohere.com/v2",
    },
    {
        "name": "claude",
        "kind": "anthropic",
        "model": "claude-3-5-haiku-20241022",
        "priority_weight": 0.3,
        "cost_per_1k_tokens": 0.004,
        "daily_token_quota": 1_000_000,
        "api_key_env": "ANTHROPIC_API_KEY",
    },
    {
        "name": "gemini",
        "kind": "gemini",
        "model": "gemini-2.0-flash",
        "priority_weight": 0.3,
        "cost_per_1k_tokens": 0.0004,
        "daily_token_quota": 1_000_000,
        "api_key_env": "GEMINI_API_KEY",
    },
]

# Some deployments still export the legacy Google variable name
API_KEY_ENV_ALIASES: Dict[str, List[str]] = {
    "GEMINI_API_KEY": ["GOOGLE_API_KEY"],
    "OPENAI_API_KEY": ["OPENAI_KEY"],
}


class ScoringWeights(BaseModel):
    """Relative weight of each quality sub-metric (normalised to 100)."""

    length: float = Field(default=30.0, ge=0.0)
    keyword: float = Field(default=20.0, ge=0.0)
    structure: float = Field(default=25.0, ge=0.0)
    link: float = Field(default=15.0, ge=0.0)
    readability: float = Field(default=10.0, ge=0.0)

    # Sub-metric tuning
    keyword_saturation: int = Field(default=4, ge=1, description="Mentions needed for the full keyword weight")
    readability_threshold: float = Field(default=20.0, gt=0.0, description="Words per sentence before readability decays")
    min_content_chars: int = Field(default=100, ge=0, description="Shorter texts are degenerate and score 0")

    @model_validator(mode="after")
    def _at_least_one_weight(self) -> "ScoringWeights":
        if self.total() <= 0:
            raise ValueError("At least one scoring weight must be positive")
        return self

    def total(self) -> float:
        return self.length + self.keyword + self.structure + self.link + self.readability

    def normalized(self) -> Dict[str, float]:
        """Return the five weights rescaled so they sum to exactly 100."""
        factor = 100.0 / self.total()
        return {
            "length": self.length * factor,
            "keyword": self.keyword * factor,
            "structure": self.structure * factor,
            "link": self.link * factor,
            "readability": self.readability * factor,
        }


class SelectionSettings(BaseModel):
    """Composite-score knobs used by the selector."""

    latency_bonus_max: float = Field(default=5.0, ge=0.0, le=5.0)
    latency_fast_ms: float = Field(
        default=2000.0,
        gt=0.0,
        description="Latency at or below which the full bonus is granted",
    )


class Config(BaseModel):
    """Configuration settings for the orchestrator."""

    PROVIDERS: List[ProviderDescriptor] = Field(default_factory=list)
    SCORING: ScoringWeights = Field(default_factory=ScoringWeights)
    SELECTION: SelectionSettings = Field(default_factory=SelectionSettings)

    # Dispatch
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    DISPATCH_DEADLINE_SECONDS: float = Field(default=60.0, gt=0)
    PREFLIGHT_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    PREFLIGHT_BEFORE_GENERATE: bool = False
    MAX_CONSECUTIVE_FAILURES: int = Field(default=3, ge=1)
    ADAPTER_MAX_ATTEMPTS: int = Field(default=2, ge=1)
    RETRY_DELAY: float = Field(default=1.0, ge=0)
    DEFAULT_TEMPERATURE: float = Field(default=prompt_builder.DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    MAX_OUTPUT_TOKENS: int = Field(default=prompt_builder.MAX_OUTPUT_TOKENS, gt=0)

    # Logging
    LOG_LEVEL: str = "INFO"

    # FastAPI
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000

    def __init__(self, **data: Any):
        super().__init__(**data)
        if not data:
            self.load_from_environment()
            self.load_providers()

    def load_from_environment(self) -> None:
        """Load scalar settings from environment variables."""
        self.PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))
        self.DISPATCH_DEADLINE_SECONDS = float(os.getenv("DISPATCH_DEADLINE_SECONDS", "60"))
        self.PREFLIGHT_TIMEOUT_SECONDS = float(os.getenv("PREFLIGHT_TIMEOUT_SECONDS", "10"))
        self.PREFLIGHT_BEFORE_GENERATE = (
            os.getenv("PREFLIGHT_BEFORE_GENERATE", "false").lower() in TRUTHY_ENV_VALUES
        )
        self.MAX_CONSECUTIVE_FAILURES = max(1, int(os.getenv("MAX_CONSECUTIVE_FAILURES", "3")))
        self.ADAPTER_MAX_ATTEMPTS = max(1, int(os.getenv("ADAPTER_MAX_ATTEMPTS", "2")))
        self.RETRY_DELAY = max(0.0, float(os.getenv("RETRY_DELAY", "1.0")))
        self.DEFAULT_TEMPERATURE = float(os.getenv("DEFAULT_TEMPERATURE", str(prompt_builder.DEFAULT_TEMPERATURE)))
        self.MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", str(prompt_builder.MAX_OUTPUT_TOKENS)))

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
        self.APP_PORT = int(os.getenv("APP_PORT", "8000"))

        # Scoring weights are tunable; invalid values keep the defaults
        weight_overrides: Dict[str, float] = {}
        for field_name in ("length", "keyword", "structure", "link", "readability"):
            raw = os.getenv(f"SCORE_WEIGHT_{field_name.upper()}")
            if raw:
                try:
                    weight_overrides[field_name] = float(raw)
                except ValueError:
                    pass
        if weight_overrides:
            self.SCORING = ScoringWeights(**{**self.SCORING.model_dump(), **weight_overrides})

        latency_max = os.getenv("LATENCY_BONUS_MAX")
        if latency_max:
            self.SELECTION.latency_bonus_max = min(5.0, max(0.0, float(latency_max)))
        latency_fast = os.getenv("LATENCY_FAST_MS")
        if latency_fast:
            parsed = float(latency_fast)
            if parsed > 0:
                self.SELECTION.latency_fast_ms = parsed

    def load_providers(self) -> None:
        """Build the provider descriptor table, merging secrets from the environment."""
        specs = DEFAULT_PROVIDER_SPECS
        specs_path = os.getenv("PROVIDER_SPECS_PATH")
        if specs_path:
            with open(specs_path, "rb") as f:
                loaded = orjson.loads(f.read())
            specs = loaded.get("providers", []) if isinstance(loaded, dict) else loaded

        self.PROVIDERS = [self._descriptor_from_spec(spec) for spec in specs]

    @staticmethod
    def _descriptor_from_spec(spec: Dict[str, Any]) -> ProviderDescriptor:
        data = dict(spec)
        env_name = data.get("api_key_env") or f"{str(data['name']).upper()}_API_KEY"
        data["api_key_env"] = env_name
        data["api_key"] = resolve_api_key(env_name)

        quota_override = os.getenv(f"{str(data['name']).upper()}_DAILY_TOKEN_QUOTA")
        if quota_override:
            try:
                parsed = int(quota_override)
                data["daily_token_quota"] = parsed if parsed > 0 else None
            except ValueError:
                pass

        return ProviderDescriptor(**data)

    def get_provider(self, name: str) -> Optional[ProviderDescriptor]:
        for descriptor in self.PROVIDERS:
            if descriptor.name == name:
                return descriptor
        return None


def resolve_api_key(env_name: str) -> str:
    """Return the credential for ``env_name`` or one of its legacy aliases."""
    value = os.getenv(env_name, "")
    if value:
        return value.strip()
    for alias in API_KEY_ENV_ALIASES.get(env_name, []):
        value = os.getenv(alias, "")
        if value:
            return value.strip()
    return ""


# Global configuration instance
config = Config()
