"""
Provider Gateway

The single path to a remote model.

Every call goes through the same checks, in this order:
1. Cost policy (raises CostPolicyViolation; never converted)
2. Rate limits (local counters; no network)
3. Response cache (only for tool-free requests unless skip_cache)
4. Dispatch through the configured ProviderClient

Everything that can go wrong after step 1 comes back as a
ProviderError. Nothing is retried.
"""

from typing import Callable, Optional

import httpx
import structlog

from src.config.settings import (
    AssistantSettings,
    ProviderName,
    ProviderSettings,
    enforce_cost_policy,
)
from src.models.provider import (
    ProviderError,
    ProviderErrorType,
    ProviderRequest,
    ProviderResult,
)
from src.providers.anthropic_client import AnthropicClient
from src.providers.base import (
    MalformedResponseError,
    MissingAPIKeyError,
    ProviderClient,
    ProviderHTTPError,
)
from src.providers.cache import ResponseCache
from src.providers.openai_client import OpenAIClient
from src.providers.rate_limit import RateLimiter


logger = structlog.get_logger(__name__)

CLIENTS: dict[ProviderName, type[ProviderClient]] = {
    ProviderName.ANTHROPIC: AnthropicClient,
    ProviderName.OPENAI: OpenAIClient,
}


def create_provider_client(
    settings: ProviderSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderClient:
    """Build the client for the configured backend."""
    client_class = CLIENTS[settings.provider]
    return client_class(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.request_timeout_seconds,
        transport=transport,
    )


class ProviderGateway:
    """Cost policy, rate limiting and caching in front of one ProviderClient."""

    def __init__(
        self,
        client: ProviderClient,
        rate_limiter: RateLimiter,
        cache: ResponseCache,
    ):
        self._client = client
        self._rate_limiter = rate_limiter
        self._cache = cache

    @classmethod
    def from_settings(
        cls,
        provider_settings: ProviderSettings,
        assistant_settings: AssistantSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> "ProviderGateway":
        return cls(
            client=create_provider_client(provider_settings, transport=transport),
            rate_limiter=RateLimiter(
                assistant_settings.limits,
                unlimited=assistant_settings.testing_mode,
                clock=clock,
            ),
            cache=ResponseCache(
                ttl_seconds=provider_settings.cache_ttl_seconds,
                max_entries=provider_settings.cache_max_entries,
                clock=clock,
            ),
        )

    @property
    def provider(self) -> ProviderName:
        return self._client.provider

    @property
    def model(self) -> str:
        return self._client.model

    async def call(self, request: ProviderRequest, skip_cache: bool = False) -> ProviderResult:
        """
        Send a request to the configured backend.

        Returns a ProviderResponse (possibly served from cache) or a
        ProviderError. Raises only CostPolicyViolation.
        """
        enforce_cost_policy(self._client.provider, self._client.model)

        limit_message = self._rate_limiter.check()
        if limit_message:
            logger.warning("provider_rate_limited", provider=self.provider.value)
            return ProviderError(type=ProviderErrorType.RATE_LIMIT, message=limit_message)

        use_cache = not skip_cache and not request.has_tools
        cache_key = request.cache_key() if use_cache else None
        if cache_key is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.info("provider_cache_hit", provider=self.provider.value)
                return cached.model_copy(update={"cached": True})

        try:
            response = await self._client.complete(request)
        except MissingAPIKeyError as e:
            return self._failure(ProviderErrorType.INVALID_KEY, str(e))
        except ProviderHTTPError as e:
            return self._http_failure(e)
        except MalformedResponseError as e:
            return self._failure(ProviderErrorType.API_ERROR, str(e))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._failure(
                ProviderErrorType.NETWORK_ERROR,
                str(e) or f"Failed to connect to {self.provider.value}",
            )

        self._rate_limiter.record()
        logger.info(
            "provider_response",
            provider=self.provider.value,
            model=self.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
            cost_usd=round(
                self._client.estimate_cost(
                    response.usage.input_tokens, response.usage.output_tokens
                ),
                6,
            ),
        )

        if cache_key is not None:
            self._cache.put(cache_key, response)
        return response

    def _http_failure(self, error: ProviderHTTPError) -> ProviderError:
        if error.status_code == 429:
            return self._failure(
                ProviderErrorType.RATE_LIMIT,
                "Too many requests. Please try again later.",
                error.status_code,
            )
        if error.status_code in (401, 403):
            return self._failure(
                ProviderErrorType.INVALID_KEY,
                f"Your {self.provider.value} API key is invalid. Please check your configuration.",
                error.status_code,
            )
        return self._failure(ProviderErrorType.API_ERROR, error.message, error.status_code)

    def _failure(
        self,
        error_type: ProviderErrorType,
        message: str,
        status_code: Optional[int] = None,
    ) -> ProviderError:
        logger.error(
            "provider_call_failed",
            provider=self.provider.value,
            error_type=error_type.value,
            status_code=status_code,
            error=message,
        )
        return ProviderError(type=error_type, message=message, status_code=status_code)

    def rate_limit_status(self) -> dict:
        return self._rate_limiter.status()

    def cache_stats(self) -> dict:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()
