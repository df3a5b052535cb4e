"""Local intent routing package."""

from src.routing.intent_router import (
    HELP_RESPONSE,
    NET_WORTH_DIRECT,
    UNSUPPORTED_RESPONSE,
    IntentRouter,
    extract_category,
    extract_merchant,
    extract_period,
    extract_symbol,
)

__all__ = [
    "HELP_RESPONSE",
    "NET_WORTH_DIRECT",
    "UNSUPPORTED_RESPONSE",
    "IntentRouter",
    "extract_category",
    "extract_merchant",
    "extract_period",
    "extract_symbol",
]
