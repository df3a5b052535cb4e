"""
Audit Logger

DESIGN DECISION: Every significant step of a turn is logged.
This provides:
1. Traceability of every model and tool call
2. Debugging capability when a provider misbehaves
3. Token usage for cost review

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the turn if logging fails)
- Supports correlation IDs to trace all events of one turn
- Never receives message text, amounts or merchants
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_turn_received(
        self,
        turn_id: UUID,
        text_length: int,
        correlation_id: UUID,
    ) -> None:
        """Log an incoming user message."""
        await self.log(AuditEventBuilder.turn_received(
            turn_id=turn_id,
            text_length=text_length,
            correlation_id=correlation_id,
        ))

    async def log_intent_classified(
        self,
        turn_id: UUID,
        intent_type: str,
        confidence: str,
        needs_ai: bool,
        correlation_id: UUID,
    ) -> None:
        """Log the local classification."""
        await self.log(AuditEventBuilder.intent_classified(
            turn_id=turn_id,
            intent_type=intent_type,
            confidence=confidence,
            needs_ai=needs_ai,
            correlation_id=correlation_id,
        ))

    async def log_direct_response(
        self,
        turn_id: UUID,
        intent_type: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.direct_response(
            turn_id=turn_id,
            intent_type=intent_type,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        turn_id: UUID,
        category: str,
        account_matched: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            turn_id=turn_id,
            category=category,
            account_matched=account_matched,
            correlation_id=correlation_id,
        ))

    async def log_extraction_degraded(
        self,
        turn_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log that extraction fell back to the local stub."""
        await self.log(AuditEventBuilder.extraction_degraded(
            turn_id=turn_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_provider_called(
        self,
        turn_id: UUID,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cached: bool,
        tool_requests: int,
        correlation_id: UUID,
    ) -> None:
        """Log a successful (or cache-served) provider call."""
        await self.log(AuditEventBuilder.provider_called(
            turn_id=turn_id,
            provider=provider,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cached=cached,
            tool_requests=tool_requests,
            correlation_id=correlation_id,
        ))

    async def log_provider_failed(
        self,
        turn_id: UUID,
        provider: str,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a provider error."""
        await self.log(AuditEventBuilder.provider_failed(
            turn_id=turn_id,
            provider=provider,
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_tool_executed(
        self,
        turn_id: UUID,
        tool_name: str,
        is_error: bool,
        result_chars: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.tool_executed(
            turn_id=turn_id,
            tool_name=tool_name,
            is_error=is_error,
            result_chars=result_chars,
            correlation_id=correlation_id,
        ))

    async def log_tool_round_limit_reached(
        self,
        turn_id: UUID,
        rounds: int,
        pending_tools: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.tool_round_limit_reached(
            turn_id=turn_id,
            rounds=rounds,
            pending_tools=pending_tools,
            correlation_id=correlation_id,
        ))

    async def log_response_generated(
        self,
        turn_id: UUID,
        intent_type: str,
        requires_confirmation: bool,
        error: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.response_generated(
            turn_id=turn_id,
            intent_type=intent_type,
            requires_confirmation=requires_confirmation,
            error=error,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a turn.
    Pass it through all subsequent operations.
    """
    return uuid4()
