"""
Provider Wire Models

One request/response shape for every chat-completion backend. Each
client translates between these models and its own wire format, so
nothing above the client layer knows which backend is configured.

The block layout follows the Anthropic Messages API because it is the
richer of the two: tool calls and tool results are explicit content
blocks rather than side channels on the message.
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from src.models.conversation import Role


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """The model asking for a tool to be run."""
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """The answer to a ToolUseBlock, keyed by the same id."""
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class ChatMessage(BaseModel):
    """A message on the wire. Content is plain text or a list of blocks."""

    role: Role
    content: Union[str, list[ContentBlock]]


class ToolSpec(BaseModel):
    """A tool the model may call, described by a JSON schema."""

    name: str
    description: str
    input_schema: dict[str, Any]


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ProviderRequest(BaseModel):
    """Backend-neutral chat request."""

    messages: list[ChatMessage]
    tools: Optional[list[ToolSpec]] = None
    max_tokens: int = Field(default=500, ge=1)
    temperature: float = Field(default=0.8, ge=0.0, le=1.0)
    system: Optional[str] = None

    @property
    def has_tools(self) -> bool:
        return bool(self.tools)

    def cache_key(self) -> str:
        """Exact serialization of the message array."""
        return json.dumps(
            [message.model_dump(mode="json") for message in self.messages],
            sort_keys=True,
            separators=(",", ":"),
        )


class ProviderResponse(BaseModel):
    """Backend-neutral chat response."""

    content: list[Union[TextBlock, ToolUseBlock]] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    stop_reason: str = "end_turn"
    cached: bool = False

    @property
    def text(self) -> str:
        """All text blocks joined together."""
        return "".join(
            block.text for block in self.content if isinstance(block, TextBlock)
        ).strip()

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]


class ProviderErrorType(str, Enum):
    """
    Every way a provider call can fail at runtime.

    A cost-policy violation is NOT in this list; it is raised.
    """
    RATE_LIMIT = "rate_limit"
    INVALID_KEY = "invalid_key"
    API_ERROR = "api_error"
    NETWORK_ERROR = "network_error"


class ProviderError(BaseModel):
    """A failed provider call, returned instead of raised."""

    type: ProviderErrorType
    message: str
    status_code: Optional[int] = None


ProviderResult = Union[ProviderResponse, ProviderError]
