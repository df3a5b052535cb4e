"""
Tests for Fingrow Assistant

Test strategy:
1. Unit tests for individual components (models, router, aggregator)
2. Integration tests for the turn flow (with scripted providers)
3. No real API calls in tests (use fakes and httpx.MockTransport)
"""

import pytest
from datetime import datetime
from uuid import uuid4

from src.models.assistant import Confirmation, ExtractedTransaction
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from src.models.conversation import Role
from src.models.finance import Holding, Lot, LotSide
from src.models.intent import Confidence, Intent, IntentType
from src.models.provider import (
    ChatMessage,
    ProviderRequest,
    ProviderResponse,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from src.models.tools import ToolCall, ToolResult


class TestProviderModels:
    """Tests for the backend-neutral wire models."""

    def test_response_text_joins_text_blocks(self):
        """Test that text ignores tool_use blocks."""
        response = ProviderResponse(content=[
            TextBlock(text="Checking "),
            ToolUseBlock(id="t1", name="get_net_worth_data"),
            TextBlock(text="now."),
        ])
        assert response.text == "Checking now."
        assert [b.name for b in response.tool_uses] == ["get_net_worth_data"]

    def test_cache_key_is_exact_message_serialization(self):
        """Test that identical messages give identical keys and any change differs."""
        first = ProviderRequest(messages=[ChatMessage(role=Role.USER, content="hi")])
        same = ProviderRequest(
            messages=[ChatMessage(role=Role.USER, content="hi")],
            max_tokens=900,
        )
        other = ProviderRequest(messages=[ChatMessage(role=Role.USER, content="hi!")])
        assert first.cache_key() == same.cache_key()
        assert first.cache_key() != other.cache_key()

    def test_message_content_blocks_discriminated(self):
        """Test that block lists parse into the right block types."""
        message = ChatMessage.model_validate({
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "ok"}],
        })
        assert isinstance(message.content[0], ToolResultBlock)

    def test_has_tools(self):
        """Test has_tools is false for an empty tool list."""
        request = ProviderRequest(messages=[], tools=[])
        assert request.has_tools is False


class TestToolModels:
    """Tests for tool call and result models."""

    def test_dedup_key_ignores_id_and_key_order(self):
        """Test that the same call with a new id has the same key."""
        a = ToolCall(id="1", name="get_portfolio_data", input={"symbol": "AAPL", "x": 1})
        b = ToolCall(id="2", name="get_portfolio_data", input={"x": 1, "symbol": "AAPL"})
        assert a.dedup_key == b.dedup_key

    def test_from_block_and_to_block(self):
        """Test conversion between wire blocks and tool models."""
        call = ToolCall.from_block(ToolUseBlock(id="c1", name="get_budget_data", input={}))
        assert call.id == "c1"
        block = ToolResult(tool_use_id="c1", content="Error: x", is_error=True).to_block()
        assert block.tool_use_id == "c1"
        assert block.is_error is True


class TestIntentModels:
    """Tests for Intent."""

    def test_is_direct_needs_response_text(self):
        """Test that an intent is direct only without AI and with a response."""
        direct = Intent(
            type=IntentType.SIMPLE_QUERY,
            confidence=Confidence.HIGH,
            needs_ai=False,
            direct_response="Hello",
        )
        remote = Intent(type=IntentType.SPENDING_QUERY, confidence=Confidence.HIGH, needs_ai=True)
        assert direct.is_direct
        assert not remote.is_direct


class TestFinanceModels:
    """Tests for holdings and lots."""

    def test_shares_net_of_sells(self):
        """Test that sell lots reduce the share count."""
        holding = Holding(symbol=" aapl ", lots=[
            Lot(side=LotSide.BUY, qty=10, price=100, date=datetime(2025, 1, 1)),
            Lot(side=LotSide.SELL, qty=4, price=150, date=datetime(2025, 6, 1)),
        ])
        assert holding.symbol == "AAPL"
        assert holding.shares == 6
        assert len(holding.buy_lots) == 1

    def test_lot_rejects_zero_quantity(self):
        """Test that a lot needs a positive quantity."""
        with pytest.raises(ValueError):
            Lot(side=LotSide.BUY, qty=0, price=1, date=datetime(2025, 1, 1))


class TestAssistantModels:
    """Tests for the turn output models."""

    def test_extracted_transaction_defaults(self):
        """Test the stub defaults used when extraction degrades."""
        tx = ExtractedTransaction(date=datetime(2026, 3, 18))
        assert tx.amount == 0
        assert tx.merchant == "Transaction"
        assert tx.category == "Shopping"
        assert tx.account is None
        assert tx.extracted_by_model is False

    def test_confirmation_type_is_closed(self):
        """Test that only the two confirmation kinds are accepted."""
        with pytest.raises(ValueError):
            Confirmation(type="delete_everything", data={})


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.TURN_RECEIVED,
            description="User message received",
        )
        assert event.event_id is not None
        assert event.timestamp.tzinfo is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.PROVIDER_CALLED,
            description="Model response",
            details={"input_tokens": 10},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "provider_called"
        assert log_dict["details"] == {"input_tokens": 10}

    def test_builder_turn_received_is_user_action(self):
        """Test that an incoming message is flagged as a user action."""
        event = AuditEventBuilder.turn_received(
            turn_id=uuid4(),
            text_length=12,
            correlation_id=uuid4(),
        )
        assert event.event_type == AuditEventType.TURN_RECEIVED
        assert event.is_user_action is True

    def test_builder_provider_failed(self):
        """Test provider failure events carry the error type."""
        event = AuditEventBuilder.provider_failed(
            turn_id=uuid4(),
            provider="openai",
            error_type="network_error",
            error_message="timeout",
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "network_error"

    def test_builder_tool_executed_error_is_warning(self):
        """Test failed tools are logged as warnings."""
        event = AuditEventBuilder.tool_executed(
            turn_id=uuid4(),
            tool_name="get_stock_details",
            is_error=True,
            result_chars=20,
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
