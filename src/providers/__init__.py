"""Remote model providers."""

from src.providers.anthropic_client import AnthropicClient
from src.providers.base import (
    MalformedResponseError,
    MissingAPIKeyError,
    ProviderClient,
    ProviderClientError,
    ProviderHTTPError,
)
from src.providers.cache import ResponseCache
from src.providers.gateway import ProviderGateway, create_provider_client
from src.providers.openai_client import OpenAIClient
from src.providers.rate_limit import RateLimiter

__all__ = [
    "AnthropicClient",
    "MalformedResponseError",
    "MissingAPIKeyError",
    "OpenAIClient",
    "ProviderClient",
    "ProviderClientError",
    "ProviderGateway",
    "ProviderHTTPError",
    "RateLimiter",
    "ResponseCache",
    "create_provider_client",
]
