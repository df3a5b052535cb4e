"""
Configuration Management for Fingrow Assistant

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.

COST POLICY: Only low-cost models may be configured. A disallowed model
raises CostPolicyViolation while the settings load, so a misconfigured
deployment never reaches the first user turn. The same predicate is
checked again before every provider call.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CostPolicyViolation(RuntimeError):
    """
    Raised when a configured model is outside the cost allowlist.

    This is a configuration failure, never a user-facing runtime error.
    It deliberately does not subclass ValueError so that pydantic
    lets it propagate unchanged out of validators.
    """

    def __init__(self, provider: str, model: str):
        self.provider = provider
        self.model = model
        super().__init__(
            f"COST CONTROL: model '{model}' is not allowed for provider '{provider}'. "
            f"Allowed: {describe_allowed_models(provider)}"
        )


class ProviderName(str, Enum):
    """Remote chat-completion backends."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class Tier(str, Enum):
    """User subscription tier."""
    FREE = "free"
    PREMIUM = "premium"


OPENAI_ALLOWED_MODELS = frozenset({"gpt-4o-mini", "gpt-4o-mini-2024-07-18"})
ANTHROPIC_REQUIRED_FRAGMENT = "haiku"

DEFAULT_MODELS = {
    ProviderName.ANTHROPIC: "claude-3-5-haiku-20241022",
    ProviderName.OPENAI: "gpt-4o-mini",
}


def is_model_allowed(provider: str, model: str) -> bool:
    """Cost allowlist predicate shared by settings and the provider gateway."""
    provider = ProviderName(provider)
    if provider == ProviderName.ANTHROPIC:
        return ANTHROPIC_REQUIRED_FRAGMENT in model
    return model in OPENAI_ALLOWED_MODELS


def describe_allowed_models(provider: str) -> str:
    if ProviderName(provider) == ProviderName.ANTHROPIC:
        return "models containing 'haiku'"
    return ", ".join(sorted(OPENAI_ALLOWED_MODELS))


def enforce_cost_policy(provider: str, model: str) -> None:
    """Raise CostPolicyViolation unless the model passes the allowlist."""
    if not is_model_allowed(provider, model):
        raise CostPolicyViolation(ProviderName(provider).value, model)


class TierLimits(BaseModel):
    """Usage limits for one tier."""

    messages_per_day: int = Field(ge=1)
    messages_per_hour: int = Field(ge=1)
    max_tokens_per_response: int = Field(ge=1)
    conversation_memory_turns: int = Field(ge=1)


TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(
        messages_per_day=10,
        messages_per_hour=5,
        max_tokens_per_response=500,
        conversation_memory_turns=2,
    ),
    Tier.PREMIUM: TierLimits(
        messages_per_day=50,
        messages_per_hour=20,
        max_tokens_per_response=1000,
        conversation_memory_turns=5,
    ),
}

# Effectively unlimited, used while developing against real providers
TESTING_LIMITS = TierLimits(
    messages_per_day=999999,
    messages_per_hour=999999,
    max_tokens_per_response=2000,
    conversation_memory_turns=10,
)


class ProviderSettings(BaseSettings):
    """Remote model provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    provider: ProviderName = Field(
        default=ProviderName.OPENAI,
        description="Which backend to call"
    )
    model: Optional[str] = Field(
        default=None,
        description="Model name; defaults to the cheapest model of the provider"
    )

    # Missing keys are not a startup failure; calls return invalid_key instead
    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Anthropic API key"
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key"
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Anthropic API base URL"
    )
    openai_base_url: str = Field(
        default="https://api.openai.com",
        description="OpenAI API base URL"
    )

    temperature: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for conversational calls"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for one provider call"
    )

    # Response cache
    cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="How long a cached response stays valid"
    )
    cache_max_entries: int = Field(
        default=100,
        ge=1,
        description="Cache capacity; least recently used entries are evicted"
    )

    @model_validator(mode="after")
    def apply_cost_policy(self) -> "ProviderSettings":
        """Fill in the default model and reject models outside the allowlist."""
        if not self.model:
            self.model = DEFAULT_MODELS[self.provider]
        enforce_cost_policy(self.provider, self.model)
        return self

    @property
    def api_key(self) -> Optional[str]:
        """Key for the selected provider."""
        if self.provider == ProviderName.ANTHROPIC:
            return self.anthropic_api_key
        return self.openai_api_key

    @property
    def base_url(self) -> str:
        if self.provider == ProviderName.ANTHROPIC:
            return self.anthropic_base_url
        return self.openai_base_url


class AssistantSettings(BaseSettings):
    """
    Conversation and aggregation behaviour.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="ASSISTANT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    tier: Tier = Field(
        default=Tier.FREE,
        description="Subscription tier that selects the usage limits"
    )
    testing_mode: bool = Field(
        default=False,
        description="Lift rate limits and raise token/memory ceilings"
    )

    session_ttl_hours: float = Field(
        default=24,
        gt=0,
        description="Inactivity period after which the conversation restarts"
    )
    max_tool_rounds: int = Field(
        default=3,
        ge=1,
        le=3,
        description="Tool-calling rounds allowed per turn"
    )

    base_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency all summaries are expressed in"
    )
    top_n: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Size of category/merchant breakdowns"
    )
    search_result_limit: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum rows a transaction search may describe"
    )
    max_tool_result_chars: int = Field(
        default=1500,
        ge=100,
        description="Hard cap on one tool result string"
    )
    attach_local_context: bool = Field(
        default=True,
        description="Append a local aggregate hint to the latest user message"
    )

    @property
    def limits(self) -> TierLimits:
        """Usage limits for the configured tier."""
        if self.testing_mode:
            return TESTING_LIMITS
        return TIER_LIMITS[self.tier]


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def provider(self) -> ProviderSettings:
        return ProviderSettings()

    @property
    def assistant(self) -> AssistantSettings:
        return AssistantSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks. A cost-policy violation is not reported
    here; it propagates, because it must stop the process.
    """
    results = {}

    settings = get_settings()

    try:
        provider = settings.provider
        results["provider"] = True
        results["provider_api_key"] = bool(provider.api_key)
    except CostPolicyViolation:
        raise
    except Exception as e:
        results["provider"] = False
        results["provider_error"] = str(e)

    try:
        _ = settings.assistant
        results["assistant"] = True
    except Exception as e:
        results["assistant"] = False
        results["assistant_error"] = str(e)

    return results
