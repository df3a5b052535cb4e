"""Configuration package."""

from src.config.settings import (
    AssistantSettings,
    CostPolicyViolation,
    ProviderName,
    ProviderSettings,
    Settings,
    Tier,
    TierLimits,
    enforce_cost_policy,
    get_settings,
    is_model_allowed,
    validate_all_settings,
)

__all__ = [
    "AssistantSettings",
    "CostPolicyViolation",
    "ProviderName",
    "ProviderSettings",
    "Settings",
    "Tier",
    "TierLimits",
    "enforce_cost_policy",
    "get_settings",
    "is_model_allowed",
    "validate_all_settings",
]
