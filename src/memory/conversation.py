"""
Conversation Memory

A sliding window over the most recent turns of one conversation.

DESIGN DECISION: The window is small on purpose. Every message in it is
re-sent to the provider on each call, so the window size is a direct
cost knob (tiers get 2 to 10 turns).

BEHAVIOUR:
- The session is created lazily on first use
- After the inactivity TTL the next access silently starts a new session
- Every append prunes to the last max_turns * 2 messages, oldest first
- Timestamps are epoch milliseconds and strictly increasing

Not thread-safe. One caller must serialize access per instance.
"""

import json
import time
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from src.models.conversation import (
    ContextMessage,
    ConversationSession,
    ConversationStats,
    Message,
    Role,
)


logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

DEFAULT_SESSION_TTL_HOURS = 24


class ConversationMemory:
    """Owns one ConversationSession and keeps it bounded."""

    def __init__(
        self,
        max_turns: int = 5,
        session_ttl_hours: float = DEFAULT_SESSION_TTL_HOURS,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            max_turns: Turns to keep; one turn is a user plus an assistant message
            session_ttl_hours: Inactivity period before the session is replaced
            clock: Returns the current time in epoch seconds. Defaults to time.time.
        """
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._max_turns = max_turns
        self._ttl_ms = int(session_ttl_hours * 3600 * 1000)
        self._clock = clock or time.time
        self._session: Optional[ConversationSession] = None
        self._last_timestamp = 0

    @property
    def max_turns(self) -> int:
        return self._max_turns

    @property
    def max_messages(self) -> int:
        return self._max_turns * 2

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _next_timestamp(self) -> int:
        # Clock can repeat or step back; ordering must not
        now = self._now_ms()
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1
        self._last_timestamp = now
        return now

    def _new_session(self) -> ConversationSession:
        now = self._now_ms()
        session = ConversationSession(
            id=f"session_{uuid4().hex}",
            created_at=now,
            updated_at=now,
        )
        logger.debug("conversation_session_created", session_id=session.id)
        return session

    def _is_expired(self, session: ConversationSession) -> bool:
        return self._now_ms() - session.updated_at > self._ttl_ms

    @property
    def session(self) -> ConversationSession:
        """Current session, replaced transparently when expired."""
        if self._session is None:
            self._session = self._new_session()
        elif self._is_expired(self._session):
            logger.info(
                "conversation_session_expired",
                session_id=self._session.id,
                message_count=len(self._session.messages),
            )
            self._session = self._new_session()
        return self._session

    def _append(
        self,
        role: Role,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        session = self.session
        message = Message(
            id=f"msg_{uuid4().hex}",
            role=role,
            content=content,
            timestamp=self._next_timestamp(),
            metadata=metadata or {},
        )
        session.messages.append(message)
        session.updated_at = message.timestamp

        overflow = len(session.messages) - self.max_messages
        if overflow > 0:
            del session.messages[:overflow]
        return message

    def add_user_message(
        self,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        return self._append(Role.USER, content, metadata)

    def add_assistant_message(
        self,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        return self._append(Role.ASSISTANT, content, metadata)

    def get_context_messages(self) -> list[ContextMessage]:
        """Role and content of every message in the window, in order."""
        return [
            ContextMessage(role=m.role, content=m.content)
            for m in self.session.messages
        ]

    def get_all_messages(self) -> list[Message]:
        return list(self.session.messages)

    def clear(self) -> None:
        """Drop the conversation; the next access starts a new session."""
        self._session = None

    def estimated_tokens(self) -> int:
        """Rough token count (4 characters per token)."""
        chars = sum(len(m.content) for m in self.session.messages)
        return (chars + 3) // 4

    def get_stats(self) -> ConversationStats:
        session = self.session
        user = sum(1 for m in session.messages if m.role == Role.USER)
        return ConversationStats(
            message_count=len(session.messages),
            user_messages=user,
            assistant_messages=len(session.messages) - user,
            estimated_tokens=self.estimated_tokens(),
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    def export(self) -> str:
        """The session as JSON, for debugging and support requests."""
        return json.dumps(self.session.model_dump(mode="json"), indent=2)
