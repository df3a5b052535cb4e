"""
Main Orchestrator for Fingrow Assistant

This module ties together all the components and defines the turn
state machine:

    START -> CLASSIFY -> TRANSACTION_EXTRACT | DIRECT_RESPONSE | MODEL_CALL
          -> [TOOL_LOOP] -> RESPOND -> END

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written without user confirmation (transactions come back
  as a requires_confirmation payload)
- Only aggregated summaries and tool results reach the provider
- A turn always ends with a reply; provider failures become a fixed
  user-facing message and are not retried
- Every step is audited

Each Orchestrator owns its memory, cache and rate counters. Two
instances share nothing.
"""

from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import httpx
import structlog

from src.agents import (
    TransactionExtractor,
    build_system_prompt,
    describe_account,
    parse_share_trade,
)
from src.audit import AuditLogger, create_correlation_id
from src.config import AssistantSettings, Settings, get_settings
from src.memory import ConversationMemory
from src.models.assistant import AssistantReply, Confirmation
from src.models.conversation import ConversationStats, Message, Role
from src.models.intent import Intent, IntentType
from src.models.provider import (
    ChatMessage,
    ProviderError,
    ProviderErrorType,
    ProviderRequest,
    ProviderResponse,
)
from src.models.tools import ToolCall, ToolResult
from src.providers import ProviderGateway
from src.queries import AggregationError, PrivacyAggregator
from src.routing import NET_WORTH_DIRECT, IntentRouter
from src.services.storage import AuditStorageInterface, FinanceDataSource
from src.tools import TOOL_DEFINITIONS, ToolGateway


logger = structlog.get_logger(__name__)


ERROR_RESPONSES = {
    ProviderErrorType.INVALID_KEY: (
        "⚠️ AI Assistant is not configured yet. "
        "Please add your API key in the app settings."
    ),
    ProviderErrorType.API_ERROR: (
        "I encountered an error processing your request. Please try again."
    ),
    ProviderErrorType.NETWORK_ERROR: (
        "I couldn't connect to the AI service. "
        "Please check your internet connection and try again."
    ),
}
FALLBACK_ERROR_RESPONSE = "Something went wrong. Please try again."
EMPTY_MODEL_RESPONSE = (
    "I wasn't able to find an answer to that. Please try rephrasing your question."
)
TRANSACTION_CONFIRMATION = (
    "I'll help you log that transaction. Please review the details and confirm."
)
PORTFOLIO_CONFIRMATION = (
    "I'll help you log that trade. Please review the details and confirm."
)


def format_error_response(error: ProviderError) -> str:
    """User-facing text for a provider failure."""
    if error.type == ProviderErrorType.RATE_LIMIT:
        return error.message
    return ERROR_RESPONSES.get(error.type, FALLBACK_ERROR_RESPONSE)


class Orchestrator:
    """
    Runs one user turn at a time.

    Turns must be sequential per instance: the conversation window and
    the rate counters are not guarded against concurrent turns.
    """

    def __init__(
        self,
        router: IntentRouter,
        memory: ConversationMemory,
        aggregator: PrivacyAggregator,
        tool_gateway: ToolGateway,
        provider_gateway: ProviderGateway,
        extractor: TransactionExtractor,
        settings: AssistantSettings,
        temperature: float = 0.8,
        audit_logger: Optional[AuditLogger] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._router = router
        self._memory = memory
        self._aggregator = aggregator
        self._tools = tool_gateway
        self._provider = provider_gateway
        self._extractor = extractor
        self._settings = settings
        self._temperature = temperature
        self._audit_logger = audit_logger or AuditLogger()
        self._now = now or datetime.now

    # =========================================================================
    # TURN
    # =========================================================================

    async def process_query(self, text: str, skip_cache: bool = False) -> AssistantReply:
        """
        Answer one user message.

        FLOW:
        1. Classify locally
        2. Narrated purchase -> extraction + confirmation payload
        3. Share trade with symbol and count -> local confirmation payload
        4. Canned or local-summary answer -> no network
        5. Otherwise -> model call with tools, bounded tool loop

        Raises only CostPolicyViolation (configuration failure).
        """
        text = "" if text is None else str(text)
        correlation_id = create_correlation_id()
        turn_id = uuid4()

        await self._audit_logger.log_turn_received(
            turn_id=turn_id,
            text_length=len(text),
            correlation_id=correlation_id,
        )

        intent = self._router.classify(text)
        await self._audit_logger.log_intent_classified(
            turn_id=turn_id,
            intent_type=intent.type.value,
            confidence=intent.confidence.value,
            needs_ai=intent.needs_ai,
            correlation_id=correlation_id,
        )

        trade = None
        if intent.type == IntentType.PORTFOLIO_LOG:
            trade = parse_share_trade(text, intent, self._now())

        if intent.type == IntentType.TRANSACTION_LOG:
            reply = await self._extract_transaction(text, intent, turn_id, correlation_id)
        elif trade is not None:
            reply = self._confirm_trade(text, intent, trade)
        elif intent.is_direct:
            reply = await self._direct_response(text, intent, turn_id, correlation_id)
        else:
            reply = await self._model_turn(text, intent, skip_cache, turn_id, correlation_id)

        await self._audit_logger.log_response_generated(
            turn_id=turn_id,
            intent_type=intent.type.value,
            requires_confirmation=reply.requires_confirmation is not None,
            error=bool(reply.message.metadata.get("error")),
            correlation_id=correlation_id,
        )
        return reply

    # =========================================================================
    # TRANSACTION_EXTRACT
    # =========================================================================

    async def _extract_transaction(
        self,
        text: str,
        intent: Intent,
        turn_id: UUID,
        correlation_id: UUID,
    ) -> AssistantReply:
        self._memory.add_user_message(text, {"intent": intent.type.value})

        result = await self._extractor.extract(text, intent)

        if result.response is not None:
            await self._log_provider_response(result.response, turn_id, correlation_id)
        if result.error is not None:
            await self._log_provider_error(result.error, turn_id, correlation_id)

        if result.degraded:
            await self._audit_logger.log_extraction_degraded(
                turn_id=turn_id,
                reason=result.degraded_reason,
                correlation_id=correlation_id,
            )
        else:
            await self._audit_logger.log_extraction_completed(
                turn_id=turn_id,
                category=result.transaction.category,
                account_matched=result.matched_account is not None,
                correlation_id=correlation_id,
            )

        content = TRANSACTION_CONFIRMATION
        if result.matched_account is not None:
            content = (
                f"Found your {result.matched_account.name} "
                f"({describe_account(result.matched_account)})! "
                "Please review the details and confirm."
            )

        message = self._memory.add_assistant_message(
            content,
            {
                "intent": intent.type.value,
                "ai_extracted": result.transaction.extracted_by_model,
            },
        )
        return AssistantReply(
            message=message,
            requires_confirmation=Confirmation(
                type="transaction",
                data=result.transaction.model_dump(mode="json"),
            ),
        )

    def _confirm_trade(self, text: str, intent: Intent, trade: dict[str, Any]) -> AssistantReply:
        self._memory.add_user_message(text, {"intent": intent.type.value})
        message = self._memory.add_assistant_message(
            PORTFOLIO_CONFIRMATION,
            {"intent": intent.type.value},
        )
        logger.info("portfolio_trade_proposed", symbol=trade["symbol"], side=trade["side"])
        return AssistantReply(
            message=message,
            requires_confirmation=Confirmation(type="portfolio_transaction", data=trade),
        )

    # =========================================================================
    # DIRECT_RESPONSE
    # =========================================================================

    async def _direct_response(
        self,
        text: str,
        intent: Intent,
        turn_id: UUID,
        correlation_id: UUID,
    ) -> AssistantReply:
        metadata: dict[str, Any] = {"intent": intent.type.value, "direct_response": True}

        content = intent.direct_response
        if content == NET_WORTH_DIRECT:
            summary = self._aggregator.net_worth()
            content = summary.summary
            metadata["aggregated"] = summary.metadata

        self._memory.add_user_message(text, {"intent": intent.type.value})
        message = self._memory.add_assistant_message(content, metadata)

        await self._audit_logger.log_direct_response(
            turn_id=turn_id,
            intent_type=intent.type.value,
            correlation_id=correlation_id,
        )
        return AssistantReply(message=message)

    # =========================================================================
    # MODEL_CALL + TOOL_LOOP
    # =========================================================================

    async def _context_hint(self, intent: Intent, correlation_id: UUID) -> Optional[str]:
        if not self._settings.attach_local_context:
            return None
        try:
            summary = self._aggregator.for_intent(intent)
        except AggregationError as e:
            logger.warning("context_hint_failed", error=str(e))
            await self._audit_logger.log_error(
                error_type="context_hint_failed",
                error_message=str(e),
                details={"intent_type": intent.type.value},
                correlation_id=correlation_id,
            )
            return None
        return summary.summary if summary else None

    def _build_messages(self, hint: Optional[str]) -> list[ChatMessage]:
        messages = [
            ChatMessage(role=m.role, content=m.content)
            for m in self._memory.get_context_messages()
        ]
        if hint and messages and messages[-1].role == Role.USER:
            latest = messages[-1]
            messages[-1] = ChatMessage(
                role=Role.USER,
                content=f"{latest.content}\n\n[Context: {hint}]",
            )
        return messages

    async def _model_turn(
        self,
        text: str,
        intent: Intent,
        skip_cache: bool,
        turn_id: UUID,
        correlation_id: UUID,
    ) -> AssistantReply:
        hint = await self._context_hint(intent, correlation_id)
        self._memory.add_user_message(text, {"intent": intent.type.value})

        messages = self._build_messages(hint)
        request = ProviderRequest(
            messages=messages,
            tools=TOOL_DEFINITIONS,
            max_tokens=self._settings.limits.max_tokens_per_response,
            temperature=self._temperature,
            system=build_system_prompt(self._now().date()),
        )

        result = await self._provider.call(request, skip_cache=skip_cache)
        if isinstance(result, ProviderError):
            return await self._error_reply(result, intent, turn_id, correlation_id)
        await self._log_provider_response(result, turn_id, correlation_id)

        input_tokens = result.usage.input_tokens
        output_tokens = result.usage.output_tokens
        memo: dict[tuple[str, str], ToolResult] = {}
        rounds = 0

        while result.tool_uses:
            if rounds >= self._settings.max_tool_rounds:
                await self._audit_logger.log_tool_round_limit_reached(
                    turn_id=turn_id,
                    rounds=rounds,
                    pending_tools=[block.name for block in result.tool_uses],
                    correlation_id=correlation_id,
                )
                break
            rounds += 1

            calls = [ToolCall.from_block(block) for block in result.tool_uses]
            tool_results = self._tools.execute_many(calls, memo)
            for call, tool_result in zip(calls, tool_results):
                await self._audit_logger.log_tool_executed(
                    turn_id=turn_id,
                    tool_name=call.name,
                    is_error=tool_result.is_error,
                    result_chars=len(tool_result.content),
                    correlation_id=correlation_id,
                )

            messages = messages + [
                ChatMessage(role=Role.ASSISTANT, content=list(result.content)),
                ChatMessage(role=Role.USER, content=[r.to_block() for r in tool_results]),
            ]
            # Tool results are fresh data; never answer them from cache
            result = await self._provider.call(
                request.model_copy(update={"messages": messages}),
                skip_cache=True,
            )
            if isinstance(result, ProviderError):
                return await self._error_reply(result, intent, turn_id, correlation_id)
            await self._log_provider_response(result, turn_id, correlation_id)
            input_tokens += result.usage.input_tokens
            output_tokens += result.usage.output_tokens

        message = self._memory.add_assistant_message(
            result.text or EMPTY_MODEL_RESPONSE,
            {
                "intent": intent.type.value,
                "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
                "cached": result.cached,
                "tool_rounds": rounds,
            },
        )
        return AssistantReply(message=message)

    async def _error_reply(
        self,
        error: ProviderError,
        intent: Intent,
        turn_id: UUID,
        correlation_id: UUID,
    ) -> AssistantReply:
        await self._log_provider_error(error, turn_id, correlation_id)
        message = self._memory.add_assistant_message(
            format_error_response(error),
            {"intent": intent.type.value, "error": True, "error_type": error.type.value},
        )
        return AssistantReply(message=message)

    async def _log_provider_response(
        self,
        response: ProviderResponse,
        turn_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_provider_called(
            turn_id=turn_id,
            provider=self._provider.provider.value,
            model=self._provider.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            cached=response.cached,
            tool_requests=len(response.tool_uses),
            correlation_id=correlation_id,
        )

    async def _log_provider_error(
        self,
        error: ProviderError,
        turn_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_provider_failed(
            turn_id=turn_id,
            provider=self._provider.provider.value,
            error_type=error.type.value,
            error_message=error.message,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # SESSION
    # =========================================================================

    def clear_conversation(self) -> None:
        self._memory.clear()
        logger.info("conversation_cleared")

    def conversation_stats(self) -> ConversationStats:
        return self._memory.get_stats()

    def conversation_messages(self) -> list[Message]:
        return self._memory.get_all_messages()

    def rate_limit_status(self) -> dict:
        return self._provider.rate_limit_status()

    def cache_stats(self) -> dict:
        return self._provider.cache_stats()

    async def wait_for_background(self) -> None:
        """Wait for background work started by tools (watchlist refreshes)."""
        await self._tools.wait_for_background()


def create_orchestrator(
    source: FinanceDataSource,
    settings: Optional[Settings] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], float]] = None,
) -> Orchestrator:
    """
    Factory function to create a fully wired Orchestrator.

    Args:
        source: Where the user's financial data lives
        settings: Defaults to get_settings()
        audit_storage: Persist audit events here; local logging only if None
        transport: httpx transport for the provider client (tests)
        clock: Epoch-seconds clock shared by memory, cache and rate limits

    Raises:
        CostPolicyViolation: If the configured model is not allowed
    """
    settings = settings or get_settings()
    provider_settings = settings.provider
    assistant_settings = settings.assistant

    aggregator = PrivacyAggregator(
        source,
        base_currency=assistant_settings.base_currency,
        top_n=assistant_settings.top_n,
        search_result_limit=assistant_settings.search_result_limit,
    )
    provider_gateway = ProviderGateway.from_settings(
        provider_settings,
        assistant_settings,
        transport=transport,
        clock=clock,
    )

    return Orchestrator(
        router=IntentRouter(),
        memory=ConversationMemory(
            max_turns=assistant_settings.limits.conversation_memory_turns,
            session_ttl_hours=assistant_settings.session_ttl_hours,
            clock=clock,
        ),
        aggregator=aggregator,
        tool_gateway=ToolGateway(
            aggregator,
            source,
            max_result_chars=assistant_settings.max_tool_result_chars,
        ),
        provider_gateway=provider_gateway,
        extractor=TransactionExtractor(provider_gateway, source),
        settings=assistant_settings,
        temperature=provider_settings.temperature,
        audit_logger=AuditLogger(audit_storage),
    )
