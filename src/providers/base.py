"""
Provider Client Base

A ProviderClient speaks one backend's wire format. It translates a
ProviderRequest into an HTTP call and the reply back into a
ProviderResponse. Failures are raised as the exceptions below; turning
them into ProviderError results is the gateway's job.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import structlog

from src.config.settings import ProviderName
from src.models.provider import ProviderRequest, ProviderResponse


logger = structlog.get_logger(__name__)


class ProviderClientError(Exception):
    """Base exception for provider client failures."""
    pass


class MissingAPIKeyError(ProviderClientError):
    """No API key is configured for the selected backend."""
    pass


class ProviderHTTPError(ProviderClientError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")


class MalformedResponseError(ProviderClientError):
    """The backend answered 2xx but the body could not be understood."""
    pass


class ProviderClient(ABC):
    """
    Abstract chat-completion client.

    Subclasses provide the endpoint, headers, payload builder and
    response parser. The transport can be injected for tests.
    """

    provider: ProviderName
    endpoint: str

    # USD per million tokens, used for the cost estimate in the logs
    input_cost_per_million: float = 0.0
    output_cost_per_million: float = 0.0

    def __init__(
        self,
        model: str,
        api_key: Optional[str],
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    @abstractmethod
    def build_headers(self, api_key: str) -> dict[str, str]:
        pass

    @abstractmethod
    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        pass

    @abstractmethod
    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        """
        Turn a decoded body into a ProviderResponse.

        Shape errors (missing keys, wrong types, model validation) are
        reported as MalformedResponseError by complete().
        """
        pass

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        """Send one request and return the normalized response."""
        if not self._api_key:
            raise MissingAPIKeyError(f"{self.provider.value} API key is not configured")

        payload = self.build_payload(request)
        logger.debug(
            "provider_request",
            provider=self.provider.value,
            model=self.model,
            message_count=len(request.messages),
            has_tools=request.has_tools,
        )

        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(
                self.endpoint,
                json=payload,
                headers=self.build_headers(self._api_key),
            )

        if not response.is_success:
            raise ProviderHTTPError(response.status_code, self._error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response body is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedResponseError("Response body is not a JSON object")

        try:
            return self.parse_response(data)
        except MalformedResponseError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            # pydantic ValidationError is a ValueError
            raise MalformedResponseError(
                f"Unexpected {self.provider.value} response shape: {e}"
            ) from e

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1_000_000 * self.input_cost_per_million
            + output_tokens / 1_000_000 * self.output_cost_per_million
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error = response.json().get("error") or {}
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        except (ValueError, AttributeError):
            pass
        return f"HTTP {response.status_code}"
