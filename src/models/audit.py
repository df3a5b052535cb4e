"""
Audit Models for Fingrow Assistant

Every significant step of a turn is logged for audit purposes.
This provides:
1. Traceability of what the assistant did and why
2. Debugging information when a provider misbehaves
3. A record of model usage for cost review

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.

PRIVACY: Event details carry names, counts and token numbers only.
Amounts, merchants and message text never go into an audit event.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every state of the turn state machine has its own event type.
    """
    # Turn lifecycle
    TURN_RECEIVED = "turn_received"
    INTENT_CLASSIFIED = "intent_classified"
    DIRECT_RESPONSE = "direct_response"
    RESPONSE_GENERATED = "response_generated"

    # Transaction extraction
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_DEGRADED = "extraction_degraded"

    # Provider calls
    PROVIDER_CALLED = "provider_called"
    PROVIDER_FAILED = "provider_failed"

    # Tool loop
    TOOL_EXECUTED = "tool_executed"
    TOOL_ROUND_LIMIT_REACHED = "tool_round_limit_reached"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'turn', 'tool', 'provider')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (all events of one turn)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.turn_received(turn_id, 42, correlation_id)
        event = AuditEventBuilder.tool_executed(turn_id, "get_spending_data", ...)
    """

    @staticmethod
    def turn_received(
        turn_id: UUID,
        text_length: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TURN_RECEIVED,
            entity_type="turn",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"User message received ({text_length} chars)",
            details={"text_length": text_length},
            is_user_action=True,
        )

    @staticmethod
    def intent_classified(
        turn_id: UUID,
        intent_type: str,
        confidence: str,
        needs_ai: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTENT_CLASSIFIED,
            entity_type="turn",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"Intent classified as {intent_type} ({confidence})",
            details={
                "intent_type": intent_type,
                "confidence": confidence,
                "needs_ai": needs_ai,
            },
        )

    @staticmethod
    def direct_response(
        turn_id: UUID,
        intent_type: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DIRECT_RESPONSE,
            entity_type="turn",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description="Answered locally without a model call",
            details={"intent_type": intent_type},
        )

    @staticmethod
    def extraction_completed(
        turn_id: UUID,
        category: str,
        account_matched: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="turn",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"Transaction extracted (category: {category})",
            details={
                "category": category,
                "account_matched": account_matched,
            },
        )

    @staticmethod
    def extraction_degraded(
        turn_id: UUID,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_DEGRADED,
            severity=AuditSeverity.WARNING,
            entity_type="turn",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description="Extraction fell back to locally parsed fields",
            details={"reason": reason},
        )

    @staticmethod
    def provider_called(
        turn_id: UUID,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cached: bool,
        tool_requests: int,
        correlation_id: UUID
    ) -> AuditEvent:
        source = "cache" if cached else provider
        return AuditEvent(
            event_type=AuditEventType.PROVIDER_CALLED,
            entity_type="provider",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"Model response from {source}",
            details={
                "provider": provider,
                "model": model,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cached": cached,
                "tool_requests": tool_requests,
            },
        )

    @staticmethod
    def provider_failed(
        turn_id: UUID,
        provider: str,
        error_type: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROVIDER_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="provider",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"Provider call failed: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details={"provider": provider},
        )

    @staticmethod
    def tool_executed(
        turn_id: UUID,
        tool_name: str,
        is_error: bool,
        result_chars: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_EXECUTED,
            severity=AuditSeverity.WARNING if is_error else AuditSeverity.INFO,
            entity_type="tool",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"Tool executed: {tool_name}",
            details={
                "tool_name": tool_name,
                "is_error": is_error,
                "result_chars": result_chars,
            },
        )

    @staticmethod
    def tool_round_limit_reached(
        turn_id: UUID,
        rounds: int,
        pending_tools: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_ROUND_LIMIT_REACHED,
            severity=AuditSeverity.WARNING,
            entity_type="turn",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"Tool loop stopped after {rounds} rounds",
            details={
                "rounds": rounds,
                "pending_tools": pending_tools,
            },
        )

    @staticmethod
    def response_generated(
        turn_id: UUID,
        intent_type: str,
        requires_confirmation: bool,
        error: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESPONSE_GENERATED,
            entity_type="turn",
            entity_id=turn_id,
            correlation_id=correlation_id,
            description=f"Response generated for {intent_type}",
            details={
                "intent_type": intent_type,
                "requires_confirmation": requires_confirmation,
                "error": error,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
