"""
Anthropic Messages API client.

The neutral block model is the Messages API shape, so translation is
mostly a dump of the request models.
"""

from typing import Any

from pydantic import ValidationError

from src.config.settings import ProviderName
from src.models.provider import (
    ProviderRequest,
    ProviderResponse,
    TextBlock,
    ToolUseBlock,
    Usage,
)
from src.providers.base import MalformedResponseError, ProviderClient


ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient(ProviderClient):
    provider = ProviderName.ANTHROPIC
    endpoint = "/v1/messages"

    # Haiku pricing
    input_cost_per_million = 0.80
    output_cost_per_million = 4.00

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [message.model_dump(mode="json") for message in request.messages],
        }
        if request.system:
            payload["system"] = request.system
        if request.tools:
            payload["tools"] = [tool.model_dump() for tool in request.tools]
        return payload

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        raw_blocks = data.get("content")
        if not isinstance(raw_blocks, list):
            raise MalformedResponseError("Anthropic response has no content list")

        content: list[TextBlock | ToolUseBlock] = []
        try:
            for block in raw_blocks:
                kind = block.get("type")
                if kind == "text":
                    content.append(TextBlock(text=block.get("text", "")))
                elif kind == "tool_use":
                    content.append(ToolUseBlock(
                        id=block["id"],
                        name=block["name"],
                        input=block.get("input") or {},
                    ))
        except (AttributeError, KeyError, ValidationError) as e:
            raise MalformedResponseError(f"Malformed Anthropic content block: {e}") from e

        usage = data.get("usage") or {}
        return ProviderResponse(
            content=content,
            usage=Usage(
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
            ),
            stop_reason=data.get("stop_reason") or "end_turn",
        )
