"""Tool invocation models."""

import json
from typing import Any

from pydantic import BaseModel, Field

from src.models.provider import ToolResultBlock, ToolUseBlock


class ToolCall(BaseModel):
    """One function invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_block(cls, block: ToolUseBlock) -> "ToolCall":
        return cls(id=block.id, name=block.name, input=block.input)

    @property
    def dedup_key(self) -> tuple[str, str]:
        """Identity of the call ignoring its id."""
        return self.name, json.dumps(self.input, sort_keys=True, default=str)


class ToolResult(BaseModel):
    """A bounded, human-readable tool answer."""

    tool_use_id: str
    content: str
    is_error: bool = False

    def to_block(self) -> ToolResultBlock:
        return ToolResultBlock(
            tool_use_id=self.tool_use_id,
            content=self.content,
            is_error=self.is_error,
        )
