"""
OpenAI Chat Completions client.

Translation rules:
- the system prompt becomes the first message
- tool specs become "function" tools
- assistant tool_use blocks become tool_calls on the assistant message
- each tool_result block becomes its own role="tool" message
- finish_reason "tool_calls" is reported as stop_reason "tool_use"
"""

import json
from typing import Any

from pydantic import ValidationError

from src.config.settings import ProviderName
from src.models.conversation import Role
from src.models.provider import (
    ChatMessage,
    ProviderRequest,
    ProviderResponse,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from src.providers.base import MalformedResponseError, ProviderClient


STOP_REASONS = {
    "tool_calls": "tool_use",
    "length": "max_tokens",
}


class OpenAIClient(ProviderClient):
    provider = ProviderName.OPENAI
    endpoint = "/v1/chat/completions"

    # gpt-4o-mini pricing
    input_cost_per_million = 0.15
    output_cost_per_million = 0.60

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        for message in request.messages:
            messages.extend(self._convert_message(message))

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.input_schema,
                    },
                }
                for tool in request.tools
            ]
            payload["tool_choice"] = "auto"
        return payload

    @staticmethod
    def _convert_message(message: ChatMessage) -> list[dict[str, Any]]:
        role = message.role.value
        if isinstance(message.content, str):
            return [{"role": role, "content": message.content}]

        text = "".join(b.text for b in message.content if isinstance(b, TextBlock)) or None

        if message.role == Role.ASSISTANT:
            converted: dict[str, Any] = {"role": "assistant", "content": text}
            tool_calls = [
                {
                    "id": block.id,
                    "type": "function",
                    "function": {
                        "name": block.name,
                        "arguments": json.dumps(block.input),
                    },
                }
                for block in message.content
                if isinstance(block, ToolUseBlock)
            ]
            if tool_calls:
                converted["tool_calls"] = tool_calls
            return [converted]

        converted_messages = [
            {
                "role": "tool",
                "tool_call_id": block.tool_use_id,
                "content": block.content,
            }
            for block in message.content
            if isinstance(block, ToolResultBlock)
        ]
        if text:
            converted_messages.append({"role": role, "content": text})
        return converted_messages

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        try:
            choice = data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(f"OpenAI response has no choices: {e}") from e

        content: list[TextBlock | ToolUseBlock] = []
        if message.get("content"):
            content.append(TextBlock(text=message["content"]))

        try:
            for call in message.get("tool_calls") or []:
                arguments = call["function"].get("arguments") or "{}"
                content.append(ToolUseBlock(
                    id=call["id"],
                    name=call["function"]["name"],
                    input=json.loads(arguments),
                ))
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise MalformedResponseError(f"Malformed OpenAI tool call: {e}") from e

        usage = data.get("usage") or {}
        finish_reason = choice.get("finish_reason") or "stop"
        return ProviderResponse(
            content=content,
            usage=Usage(
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
            ),
            stop_reason=STOP_REASONS.get(finish_reason, "end_turn"),
        )
