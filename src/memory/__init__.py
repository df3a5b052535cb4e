"""Conversation memory package."""

from src.memory.conversation import ConversationMemory

__all__ = ["ConversationMemory"]
