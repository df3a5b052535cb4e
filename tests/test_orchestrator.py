"""
Tests for the turn state machine.

Provider traffic is scripted (ScriptedClient) or served by an
httpx.MockTransport; nothing leaves the process.
"""

import json
from datetime import timedelta
from types import SimpleNamespace

import httpx
import pytest

from src.agents import TransactionExtractor
from src.audit import AuditLogger
from src.config.settings import (
    AssistantSettings,
    CostPolicyViolation,
    ProviderName,
    ProviderSettings,
)
from src.memory import ConversationMemory
from src.models.audit import AuditEventType
from src.models.conversation import Role
from src.models.provider import ProviderErrorType, ToolResultBlock, ToolUseBlock
from src.orchestrator import (
    EMPTY_MODEL_RESPONSE,
    ERROR_RESPONSES,
    PORTFOLIO_CONFIRMATION,
    TRANSACTION_CONFIRMATION,
    Orchestrator,
    create_orchestrator,
)
from src.providers import ProviderHTTPError
from src.queries import AggregationError, PrivacyAggregator
from src.routing import HELP_RESPONSE, IntentRouter
from src.services.storage import InMemoryAuditStorage
from src.tools import ToolGateway
from tests.helpers import (
    NOW,
    FakeClock,
    ScriptedClient,
    build_store,
    make_gateway,
    text_response,
    tool_response,
)


class Harness:
    """An Orchestrator wired to a scripted provider and fixture data."""

    def __init__(self, script, settings=None, model="gpt-4o-mini", store=None):
        self.store = store or build_store()
        self.clock = FakeClock()
        self.client = ScriptedClient(script, model=model)
        self.audit = InMemoryAuditStorage()
        gateway = make_gateway(self.client, clock=self.clock)
        aggregator = self.aggregator = PrivacyAggregator(self.store, now=lambda: NOW)
        settings = settings or AssistantSettings(_env_file=None)
        self.orchestrator = Orchestrator(
            router=IntentRouter(),
            memory=ConversationMemory(
                max_turns=settings.limits.conversation_memory_turns,
                clock=self.clock,
            ),
            aggregator=aggregator,
            tool_gateway=ToolGateway(aggregator, self.store),
            provider_gateway=gateway,
            extractor=TransactionExtractor(gateway, self.store, now=lambda: NOW),
            settings=settings,
            audit_logger=AuditLogger(self.audit),
            now=lambda: NOW,
        )

    async def ask(self, text, **kwargs):
        return await self.orchestrator.process_query(text, **kwargs)

    async def event_types(self) -> list[AuditEventType]:
        events = await self.audit.get_recent_events(limit=1000)
        return [event.event_type for event in reversed(events)]


class TestTransactionTurn:
    """Tests for narrated purchases."""

    @pytest.mark.asyncio
    async def test_pizza_confirmation(self):
        """Test that a narrated purchase returns a confirmation payload."""
        harness = Harness([text_response(
            '{"amount": 5.7, "merchant": "Pizza", "category": "Food", "time": "14:30", "account": null}'
        )])

        reply = await harness.ask("I spent 5.7 for pizza just now")

        assert reply.message.content == TRANSACTION_CONFIRMATION
        assert reply.message.metadata == {"intent": "transaction_log", "ai_extracted": True}
        confirmation = reply.requires_confirmation
        assert confirmation.type == "transaction"
        assert confirmation.data["amount"] == 5.7
        assert confirmation.data["merchant"] == "Pizza"
        assert confirmation.data["category"] == "Food"
        assert confirmation.data["date"] == "2026-03-18T14:30:00"
        assert harness.client.requests[0].has_tools is False
        assert AuditEventType.EXTRACTION_COMPLETED in await harness.event_types()

    @pytest.mark.asyncio
    async def test_matched_account_is_named(self):
        """Test the confirmation wording when an account was matched."""
        harness = Harness([text_response('{"amount": 7, "account": "Trust"}')])
        reply = await harness.ask("Paid $7 for sushi with my Trust card")
        assert reply.message.content == (
            "Found your Trust (credit card)! Please review the details and confirm."
        )
        assert reply.requires_confirmation.data["account"] == "Trust"

    @pytest.mark.asyncio
    async def test_provider_failure_still_confirms(self):
        """Test that extraction degrades to the router's fields."""
        harness = Harness([ProviderHTTPError(500, "overloaded")])

        reply = await harness.ask("I spent 5.7 for pizza yesterday")

        assert reply.message.content == TRANSACTION_CONFIRMATION
        assert reply.message.metadata["ai_extracted"] is False
        data = reply.requires_confirmation.data
        assert data["amount"] == 5.7
        assert data["date"] == (NOW - timedelta(days=1)).isoformat()
        events = await harness.event_types()
        assert AuditEventType.PROVIDER_FAILED in events
        assert AuditEventType.EXTRACTION_DEGRADED in events

    @pytest.mark.asyncio
    async def test_turn_is_remembered(self):
        """Test that the purchase and the reply are both kept."""
        harness = Harness([text_response('{"amount": 5.7}')])
        await harness.ask("I spent 5.7 for pizza just now")
        roles = [m.role for m in harness.orchestrator.conversation_messages()]
        assert roles == [Role.USER, Role.ASSISTANT]


class TestTradeTurn:
    """Tests for share trades."""

    @pytest.mark.asyncio
    async def test_trade_confirmation_is_local(self):
        """Test that a complete trade is proposed without a model call."""
        harness = Harness([])

        reply = await harness.ask("bought 10 shares of AAPL at 150")

        assert reply.message.content == PORTFOLIO_CONFIRMATION
        assert reply.requires_confirmation.type == "portfolio_transaction"
        assert reply.requires_confirmation.data == {
            "symbol": "AAPL",
            "side": "buy",
            "qty": 10,
            "price": 150,
            "date": NOW.isoformat(),
        }
        assert harness.client.requests == []

    @pytest.mark.asyncio
    async def test_incomplete_trade_goes_to_model(self):
        """Test that a trade without a symbol is answered by the model."""
        harness = Harness([text_response("Which stock did you buy?")])
        reply = await harness.ask("bought 10 shares today")
        assert reply.message.content == "Which stock did you buy?"
        assert reply.requires_confirmation is None


class TestDirectTurn:
    """Tests for turns answered without the network."""

    @pytest.mark.asyncio
    async def test_net_worth(self):
        """Test that a bare net worth question is answered from the aggregator."""
        harness = Harness([])

        reply = await harness.ask("What's my net worth?")

        assert reply.message.content == (
            "User's current net worth is $2,500.00. Breakdown: Cash $2,000.00, "
            "Investments $1,800.00, Debt $1,300.00"
        )
        assert reply.message.metadata["direct_response"] is True
        assert reply.message.metadata["aggregated"]["net_worth"] == 2500
        assert harness.client.requests == []
        assert AuditEventType.DIRECT_RESPONSE in await harness.event_types()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text,expected", [
        ("help", HELP_RESPONSE),
        ("", "How can I help you today?"),
    ])
    async def test_canned(self, text, expected):
        """Test help and empty messages."""
        harness = Harness([])
        reply = await harness.ask(text)
        assert reply.message.content == expected
        assert harness.client.requests == []

    @pytest.mark.asyncio
    async def test_direct_turns_use_no_quota(self):
        """Test that canned answers don't count against the rate limit."""
        harness = Harness([])
        for _ in range(10):
            await harness.ask("hello")
        assert harness.orchestrator.rate_limit_status()["hourly"]["used"] == 0


class TestModelTurn:
    """Tests for the model call and the tool loop."""

    @pytest.mark.asyncio
    async def test_context_hint_and_request_shape(self):
        """Test that the local summary rides along on the latest user message."""
        harness = Harness([text_response("You spent $12.00 on food this month.")])

        reply = await harness.ask("What did I spend on food this month?")

        (request,) = harness.client.requests
        assert request.has_tools
        assert request.max_tokens == 500
        assert "2026-03-18" in request.system
        assert request.messages[-1].content == (
            "What did I spend on food this month?\n\n"
            "[Context: User spent $12.00 on Food this month]"
        )
        assert reply.message.content == "You spent $12.00 on food this month."
        assert reply.message.metadata["tool_rounds"] == 0
        # The hint is sent, not remembered
        first = harness.orchestrator.conversation_messages()[0]
        assert first.content == "What did I spend on food this month?"

    @pytest.mark.asyncio
    async def test_context_hint_can_be_disabled(self):
        """Test attach_local_context=False."""
        harness = Harness(
            [text_response("ok")],
            settings=AssistantSettings(_env_file=None, attach_local_context=False),
        )
        await harness.ask("What did I spend on food this month?")
        assert harness.client.requests[0].messages[-1].content == (
            "What did I spend on food this month?"
        )

    @pytest.mark.asyncio
    async def test_context_hint_failure_is_audited(self, monkeypatch):
        """Test that a failed local summary drops the hint and records an error."""
        harness = Harness([text_response("ok")])

        def broken(intent):
            raise AggregationError("no data")

        monkeypatch.setattr(harness.aggregator, "for_intent", broken)

        reply = await harness.ask("What did I spend on food this month?")

        assert reply.message.content == "ok"
        assert "[Context:" not in harness.client.requests[0].messages[-1].content
        assert AuditEventType.SYSTEM_ERROR in await harness.event_types()

    @pytest.mark.asyncio
    async def test_context_hint_for_very_long_window(self):
        """Test that a window older than the calendar still yields a hint."""
        harness = Harness([text_response("ok")])

        reply = await harness.ask("how much did I spend in the past 5000 years")

        assert reply.message.content == "ok"
        assert harness.client.requests[0].messages[-1].content == (
            "how much did I spend in the past 5000 years\n\n"
            "[Context: User spent $47.00 past 5000 years. "
            "Top categories: Food $32.00, Transport $15.00]"
        )

    @pytest.mark.asyncio
    async def test_tool_round(self):
        """Test one tool round: execute, send results, use the final text."""
        harness = Harness([
            tool_response(("call_1", "get_portfolio_data", {"symbol": "AAPL"})),
            text_response("Your AAPL position is up $200.00 (+20.0%)."),
        ])

        reply = await harness.ask("How is my AAPL position doing?")

        assert reply.message.content == "Your AAPL position is up $200.00 (+20.0%)."
        assert reply.message.metadata["tool_rounds"] == 1
        assert reply.message.metadata["usage"] == {"input_tokens": 30, "output_tokens": 13}

        follow_up = harness.client.requests[1]
        assistant, results = follow_up.messages[-2:]
        assert assistant.role == Role.ASSISTANT
        assert isinstance(assistant.content[0], ToolUseBlock)
        assert results.role == Role.USER
        (block,) = results.content
        assert isinstance(block, ToolResultBlock)
        assert block.tool_use_id == "call_1"
        assert "Gain: $200.00 (+20.0%)" in block.content
        assert AuditEventType.TOOL_EXECUTED in await harness.event_types()

    @pytest.mark.asyncio
    async def test_tool_errors_are_sent_back(self):
        """Test that an unknown tool is answered in-band and the turn continues."""
        harness = Harness([
            tool_response(("c1", "transfer_money", {}), ("c2", "get_budget_data", {})),
            text_response("You have $473.00 left this month."),
        ])

        reply = await harness.ask("am I over budget?")

        blocks = harness.client.requests[1].messages[-1].content
        assert blocks[0].is_error is True
        assert blocks[1].is_error is False
        assert reply.message.content == "You have $473.00 left this month."

    @pytest.mark.asyncio
    async def test_round_limit(self):
        """Test that the loop stops at max_tool_rounds."""
        harness = Harness(
            [
                tool_response(("c1", "get_net_worth_data", {})),
                tool_response(("c2", "get_portfolio_data", {})),
            ],
            settings=AssistantSettings(_env_file=None, max_tool_rounds=1),
        )

        reply = await harness.ask("what's my net worth compared to last month")

        assert len(harness.client.requests) == 2
        assert reply.message.content == EMPTY_MODEL_RESPONSE
        assert reply.message.metadata["tool_rounds"] == 1
        assert AuditEventType.TOOL_ROUND_LIMIT_REACHED in await harness.event_types()

    @pytest.mark.asyncio
    async def test_multiple_rounds(self):
        """Test that a second round is allowed under the default bound."""
        harness = Harness([
            tool_response(("c1", "get_stock_details", {"symbol": "AAPL"})),
            tool_response(("c2", "get_stock_fundamentals", {"symbol": "AAPL"})),
            text_response("AAPL trades at 28.5x earnings."),
        ])
        reply = await harness.ask("tell me about my AAPL stock")
        assert reply.message.content == "AAPL trades at 28.5x earnings."
        assert reply.message.metadata["tool_rounds"] == 2

    @pytest.mark.asyncio
    async def test_history_is_sent(self):
        """Test that earlier turns are part of the next request."""
        harness = Harness([text_response("Portfolio is fine."), text_response("Yes.")])
        await harness.ask("how is my portfolio doing")
        await harness.ask("and is that good for my stock investments?")

        contents = [m.content for m in harness.client.requests[1].messages]
        assert contents[0] == "how is my portfolio doing"
        assert contents[1] == "Portfolio is fine."
        assert contents[2].startswith("and is that good for my stock investments?")

    @pytest.mark.asyncio
    async def test_clear_conversation(self):
        """Test that clearing drops the history."""
        harness = Harness([text_response("Fine.")])
        await harness.ask("how is my portfolio doing")
        harness.orchestrator.clear_conversation()
        assert harness.orchestrator.conversation_stats().message_count == 0


class TestFailures:
    """Tests for provider failures and the cost policy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure,error_type", [
        (ProviderHTTPError(401, "bad key"), ProviderErrorType.INVALID_KEY),
        (ProviderHTTPError(500, "overloaded"), ProviderErrorType.API_ERROR),
        (httpx.ConnectError("offline"), ProviderErrorType.NETWORK_ERROR),
    ])
    async def test_error_messages(self, failure, error_type):
        """Test the fixed user-facing message for each failure kind."""
        harness = Harness([failure])

        reply = await harness.ask("how is my portfolio doing")

        assert reply.message.content == ERROR_RESPONSES[error_type]
        assert reply.message.metadata["error"] is True
        assert reply.message.metadata["error_type"] == error_type.value
        assert reply.message.role == Role.ASSISTANT

    @pytest.mark.asyncio
    async def test_failure_in_tool_round(self):
        """Test that a failure on the follow-up call still ends with a reply."""
        harness = Harness([
            tool_response(("c1", "get_net_worth_data", {})),
            httpx.ConnectError("offline"),
        ])
        reply = await harness.ask("what's my net worth compared to last month")
        assert reply.message.content == ERROR_RESPONSES[ProviderErrorType.NETWORK_ERROR]

    @pytest.mark.asyncio
    async def test_rate_limit_message_is_passed_through(self):
        """Test that the limiter's own message reaches the user."""
        harness = Harness([text_response(f"answer {i}") for i in range(5)])
        for i in range(5):
            await harness.ask(f"how is my portfolio doing {i}")

        reply = await harness.ask("how is my portfolio doing now")

        assert reply.message.content.startswith("You've reached your hourly limit of 5 messages")
        assert reply.message.metadata["error_type"] == "rate_limit"
        assert len(harness.client.requests) == 5

    @pytest.mark.asyncio
    async def test_cost_policy_violation_propagates(self):
        """Test that a disallowed model fails the turn loudly."""
        harness = Harness([text_response("never")], model="gpt-4o")
        with pytest.raises(CostPolicyViolation):
            await harness.ask("how is my portfolio doing")
        assert harness.client.requests == []


class TestCreateOrchestrator:
    """End-to-end tests through the factory and real provider clients."""

    @pytest.mark.asyncio
    async def test_openai_round_trip(self):
        """Test a full turn over a mocked Chat Completions endpoint."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={
                "choices": [{"message": {"content": "Looking good."}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 100, "completion_tokens": 4},
            })

        settings = SimpleNamespace(
            provider=ProviderSettings(_env_file=None, openai_api_key="sk-test"),
            assistant=AssistantSettings(_env_file=None),
        )
        orchestrator = create_orchestrator(
            build_store(),
            settings=settings,
            transport=httpx.MockTransport(handler),
        )

        reply = await orchestrator.process_query("how is my portfolio doing")

        assert reply.message.content == "Looking good."
        assert seen[0]["model"] == "gpt-4o-mini"
        assert seen[0]["messages"][0]["role"] == "system"
        assert len(seen[0]["tools"]) == 8

    @pytest.mark.asyncio
    async def test_anthropic_tool_round_trip(self):
        """Test a tool round over a mocked Messages endpoint."""
        replies = [
            {
                "content": [{"type": "tool_use", "id": "toolu_1", "name": "get_net_worth_data", "input": {}}],
                "usage": {"input_tokens": 50, "output_tokens": 10},
                "stop_reason": "tool_use",
            },
            {
                "content": [{"type": "text", "text": "Your net worth is $2,500."}],
                "usage": {"input_tokens": 80, "output_tokens": 9},
                "stop_reason": "end_turn",
            },
        ]
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=replies[len(seen) - 1])

        settings = SimpleNamespace(
            provider=ProviderSettings(
                _env_file=None,
                provider=ProviderName.ANTHROPIC,
                anthropic_api_key="sk-ant-test",
            ),
            assistant=AssistantSettings(_env_file=None),
        )
        orchestrator = create_orchestrator(
            build_store(),
            settings=settings,
            transport=httpx.MockTransport(handler),
        )

        reply = await orchestrator.process_query("what's my net worth compared to last month")

        assert reply.message.content == "Your net worth is $2,500."
        assert reply.message.metadata["usage"] == {"input_tokens": 130, "output_tokens": 19}
        tool_result = seen[1]["messages"][-1]["content"][0]
        assert tool_result["type"] == "tool_result"
        assert tool_result["tool_use_id"] == "toolu_1"
        assert tool_result["content"].startswith("User's current net worth is $2,500.00")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        """Test the not-configured message when no key is set."""
        settings = SimpleNamespace(
            provider=ProviderSettings(_env_file=None),
            assistant=AssistantSettings(_env_file=None),
        )
        orchestrator = create_orchestrator(build_store(), settings=settings)
        reply = await orchestrator.process_query("how is my portfolio doing")
        assert reply.message.content == ERROR_RESPONSES[ProviderErrorType.INVALID_KEY]
