"""Tests for tool execution."""

import pytest

from src.models.finance import Quote
from src.models.tools import ToolCall
from src.queries import PrivacyAggregator
from src.services.storage import InMemoryFinanceStore
from src.tools import TOOL_DEFINITIONS, ToolGateway, ToolName
from tests.helpers import NOW, build_store


def make_tool_gateway(store=None, **kwargs) -> ToolGateway:
    store = store or build_store()
    return ToolGateway(PrivacyAggregator(store, now=lambda: NOW), store, **kwargs)


@pytest.fixture
def gateway(store, aggregator) -> ToolGateway:
    return ToolGateway(aggregator, store)


class TestDefinitions:
    """Tests for the declared tool set."""

    def test_every_tool_declared_once(self):
        """Test that the declared tools match the ToolName enum."""
        names = [tool.name for tool in TOOL_DEFINITIONS]
        assert sorted(names) == sorted(name.value for name in ToolName)


class TestExecute:
    """Tests for single tool calls."""

    def test_spending_tool(self, gateway):
        """Test the spending tool with an explicit date range."""
        result = gateway.execute(
            "get_spending_data",
            {"start_date": "2026-03-01", "end_date": "2026-03-18", "category": "Food"},
            "call_1",
        )
        assert result.tool_use_id == "call_1"
        assert result.is_error is False
        assert result.content.startswith("User spent $12.00 on Food")

    def test_portfolio_tool(self, gateway):
        """Test the portfolio tool for one symbol."""
        result = gateway.execute("get_portfolio_data", {"symbol": "AAPL"}, "c")
        assert "Gain: $200.00 (+20.0%)" in result.content

    def test_net_worth_tool_takes_no_input(self, gateway):
        """Test that a missing input object is treated as empty."""
        result = gateway.execute("get_net_worth_data", None, "c")
        assert result.content.startswith("User's current net worth is $2,500.00")

    def test_unknown_tool(self, gateway):
        """Test that undeclared tools are answered in-band."""
        result = gateway.execute("delete_all_transactions", {}, "c")
        assert result.is_error is True
        assert result.content == 'Error: Unknown tool "delete_all_transactions"'

    def test_missing_required_input(self, gateway):
        """Test that required inputs are enforced."""
        result = gateway.execute("get_stock_details", {"symbol": "  "}, "c")
        assert result.is_error is True
        assert result.content == "Error: get_stock_details requires 'symbol'"

    def test_non_object_input(self, gateway):
        """Test input that is not an object."""
        result = gateway.execute("get_budget_data", ["Food"], "c")
        assert result.is_error is True

    def test_invalid_dates(self, gateway):
        """Test that malformed dates become an error result."""
        result = gateway.execute(
            "get_spending_data",
            {"start_date": "March 1st", "end_date": "2026-03-18"},
            "c",
        )
        assert result.is_error is True
        assert result.content.startswith("Error: Invalid date")

    def test_search_without_term_or_category(self, gateway):
        """Test that the aggregator's refusal is returned, not raised."""
        result = gateway.execute(
            "search_transactions",
            {"start_date": "2026-03-01", "end_date": "2026-03-18"},
            "c",
        )
        assert result.is_error is True

    def test_search_by_term(self, gateway):
        """Test search through the tool interface."""
        result = gateway.execute(
            "search_transactions",
            {"search_term": "sushi", "start_date": "2026-03-01", "end_date": "2026-03-18"},
            "c",
        )
        assert result.content == 'Found 1 transaction for "sushi": Mar 10 at 7:00 PM ($7.00 using Trust)'

    def test_results_are_bounded(self):
        """Test that long results are truncated with an ellipsis."""
        gateway = make_tool_gateway(max_result_chars=20)
        result = gateway.execute("get_net_worth_data", {}, "c")
        assert len(result.content) <= 20
        assert result.content.endswith("...")

    def test_unexpected_failure_is_in_band(self):
        """Test that an unexpected exception becomes an error result."""
        class BrokenStore(InMemoryFinanceStore):
            def accounts(self):
                raise RuntimeError("disk on fire")

        gateway = make_tool_gateway(BrokenStore())
        result = gateway.execute("get_net_worth_data", {}, "c")
        assert result.is_error is True
        assert result.content == "Error: disk on fire"


class TestExecuteMany:
    """Tests for batches."""

    def test_independent_failures(self, gateway):
        """Test that one failing call doesn't affect the others."""
        results = gateway.execute_many([
            ToolCall(id="a", name="bogus"),
            ToolCall(id="b", name="get_budget_data"),
        ])
        assert [r.is_error for r in results] == [True, False]

    def test_duplicates_run_once(self, gateway, monkeypatch):
        """Test that identical calls reuse the first result under their own id."""
        calls = []
        original = gateway.execute

        def counting(name, tool_input, call_id):
            calls.append(name)
            return original(name, tool_input, call_id)

        monkeypatch.setattr(gateway, "execute", counting)
        results = gateway.execute_many([
            ToolCall(id="a", name="get_portfolio_data", input={"symbol": "AAPL"}),
            ToolCall(id="b", name="get_portfolio_data", input={"symbol": "AAPL"}),
        ])
        assert calls == ["get_portfolio_data"]
        assert [r.tool_use_id for r in results] == ["a", "b"]
        assert results[0].content == results[1].content

    def test_memo_spans_batches(self, gateway):
        """Test that a shared memo deduplicates across rounds."""
        memo = {}
        gateway.execute_many([ToolCall(id="a", name="get_net_worth_data")], memo)
        (second,) = gateway.execute_many([ToolCall(id="b", name="get_net_worth_data")], memo)
        assert second.tool_use_id == "b"
        assert len(memo) == 1


class TestWatchlist:
    """Tests for the one write tool."""

    def test_add_to_active_portfolio(self, gateway, store):
        """Test that the symbol is added immediately without a running loop."""
        result = gateway.execute("add_to_watchlist", {"symbol": "nvda"}, "c")
        assert result.content == "Added NVDA to Main watchlist. Fetching market data..."
        assert "NVDA" in store.portfolios()["p1"].watchlist

    def test_no_active_portfolio(self):
        """Test the error when no portfolio is selected."""
        gateway = make_tool_gateway(build_store(portfolios=[]))
        result = gateway.execute("add_to_watchlist", {"symbol": "NVDA"}, "c")
        assert result.content == "Error: No active portfolio found. Please select a portfolio first."

    def test_unknown_portfolio(self, gateway):
        """Test an explicit portfolio id that doesn't exist."""
        result = gateway.execute("add_to_watchlist", {"symbol": "NVDA", "portfolio_id": "zz"}, "c")
        assert result.content == "Error: Portfolio not found."

    @pytest.mark.asyncio
    async def test_refresh_runs_in_background(self):
        """Test that market data is fetched after the tool has answered."""
        fetched = []

        async def fetch(symbol):
            fetched.append(symbol)
            return Quote(symbol=symbol, last=410.0)

        store = build_store(quote_fetcher=fetch)
        gateway = make_tool_gateway(store)

        result = gateway.execute("add_to_watchlist", {"symbol": "MSFT"}, "c")
        assert result.is_error is False

        await gateway.wait_for_background()
        assert fetched == ["MSFT"]
        assert store.quote("MSFT").last == 410.0
