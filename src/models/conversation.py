"""
Conversation Models

A session is a short sliding window of messages. Messages are appended,
never edited, and fall off the front once the window is full.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One turn of dialogue."""

    id: str
    role: Role
    content: str
    timestamp: int = Field(description="Epoch milliseconds, strictly increasing")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContextMessage(BaseModel):
    """The provider-facing view of a Message: role and content only."""

    role: Role
    content: str


class ConversationSession(BaseModel):
    """A bounded chat history."""

    id: str
    messages: list[Message] = Field(default_factory=list)
    created_at: int
    updated_at: int


class ConversationStats(BaseModel):
    """Summary counters for a session."""

    message_count: int
    user_messages: int
    assistant_messages: int
    estimated_tokens: int
    created_at: int
    updated_at: int
