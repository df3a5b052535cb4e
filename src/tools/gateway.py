"""
Tool Gateway

Executes the tools the model asks for against the PrivacyAggregator.

CRITICAL BOUNDARIES:
1. Only declared tools run; anything else is answered in-band
2. Every result is a bounded, human-readable string
3. A failing tool never raises, so the other tools in the same batch
   still get answered
4. The one write (watchlist add) is applied immediately; the market
   data refresh it triggers runs in the background

Execution is synchronous. The aggregator reads local stores only.
"""

import asyncio
from typing import Any, Optional

import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from src.models.tools import ToolCall, ToolResult
from src.queries.aggregator import PrivacyAggregator
from src.queries.periods import AggregationError, range_from_iso
from src.services.storage import FinanceDataSource, StorageError
from src.tools.definitions import TOOLS_BY_NAME, ToolName, required_inputs


logger = structlog.get_logger(__name__)

DEFAULT_MAX_RESULT_CHARS = 1500


class ToolInputError(Exception):
    """The model called a tool with missing or malformed input."""
    pass


class ToolGateway:
    """Runs one named tool and returns its bounded result."""

    def __init__(
        self,
        aggregator: PrivacyAggregator,
        source: FinanceDataSource,
        max_result_chars: int = DEFAULT_MAX_RESULT_CHARS,
    ):
        self._aggregator = aggregator
        self._source = source
        self._max_chars = max_result_chars
        self._background_tasks: set[asyncio.Task] = set()
        self._handlers = {
            ToolName.GET_SPENDING_DATA.value: self._get_spending_data,
            ToolName.SEARCH_TRANSACTIONS.value: self._search_transactions,
            ToolName.GET_PORTFOLIO_DATA.value: self._get_portfolio_data,
            ToolName.GET_NET_WORTH_DATA.value: self._get_net_worth_data,
            ToolName.GET_BUDGET_DATA.value: self._get_budget_data,
            ToolName.GET_STOCK_DETAILS.value: self._get_stock_details,
            ToolName.GET_STOCK_FUNDAMENTALS.value: self._get_stock_fundamentals,
            ToolName.ADD_TO_WATCHLIST.value: self._add_to_watchlist,
        }

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def execute(self, name: str, tool_input: Any, call_id: str) -> ToolResult:
        """
        Execute one tool.

        Unknown names, bad input and aggregation failures come back as
        an "Error: ..." result with is_error set.
        """
        if name not in TOOLS_BY_NAME:
            logger.warning("unknown_tool_requested", tool=name)
            return self._error(call_id, f'Unknown tool "{name}"')

        try:
            params = self._validate(name, tool_input)
            content = self._handlers[name](params)
        except (ToolInputError, AggregationError, StorageError) as e:
            logger.warning("tool_rejected", tool=name, error=str(e))
            return self._error(call_id, str(e))
        except Exception as e:
            logger.exception("tool_failed", tool=name)
            return self._error(call_id, str(e) or "Tool execution failed")

        logger.info("tool_executed", tool=name, result_chars=len(content))
        return ToolResult(tool_use_id=call_id, content=self._bound(content))

    def execute_many(
        self,
        calls: list[ToolCall],
        memo: Optional[dict[tuple[str, str], ToolResult]] = None,
    ) -> list[ToolResult]:
        """
        Execute a batch of independent calls.

        Calls with the same name and input run once; later duplicates
        reuse the first result under their own id. Pass the same memo
        across rounds to extend that to a whole turn.
        """
        memo = {} if memo is None else memo
        results = []
        for call in calls:
            previous = memo.get(call.dedup_key)
            if previous is not None:
                logger.info("tool_call_deduplicated", tool=call.name)
                results.append(previous.model_copy(update={"tool_use_id": call.id}))
                continue
            result = self.execute(call.name, call.input, call.id)
            memo[call.dedup_key] = result
            results.append(result)
        return results

    def _error(self, call_id: str, message: str) -> ToolResult:
        return ToolResult(
            tool_use_id=call_id,
            content=self._bound(f"Error: {message}"),
            is_error=True,
        )

    def _bound(self, content: str) -> str:
        if len(content) <= self._max_chars:
            return content
        return content[: self._max_chars - 3].rstrip() + "..."

    @staticmethod
    def _validate(name: str, tool_input: Any) -> dict[str, Any]:
        if tool_input is None:
            tool_input = {}
        if not isinstance(tool_input, dict):
            raise ToolInputError(f"{name} expects an object input")
        for key in required_inputs(name):
            value = tool_input.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ToolInputError(f"{name} requires '{key}'")
        return tool_input

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _get_spending_data(self, params: dict[str, Any]) -> str:
        date_range = range_from_iso(params["start_date"], params["end_date"])
        return self._aggregator.spending(params.get("category"), date_range=date_range).summary

    def _search_transactions(self, params: dict[str, Any]) -> str:
        date_range = range_from_iso(params["start_date"], params["end_date"])
        return self._aggregator.search_transactions(
            term=params.get("search_term"),
            date_range=date_range,
            category=params.get("category"),
        ).summary

    def _get_portfolio_data(self, params: dict[str, Any]) -> str:
        return self._aggregator.portfolio(params.get("symbol")).summary

    def _get_net_worth_data(self, params: dict[str, Any]) -> str:
        return self._aggregator.net_worth().summary

    def _get_budget_data(self, params: dict[str, Any]) -> str:
        return self._aggregator.budget(params.get("category")).summary

    def _get_stock_details(self, params: dict[str, Any]) -> str:
        return self._aggregator.stock_detail(params["symbol"]).summary

    def _get_stock_fundamentals(self, params: dict[str, Any]) -> str:
        return self._aggregator.stock_fundamentals(params["symbol"]).summary

    def _add_to_watchlist(self, params: dict[str, Any]) -> str:
        symbol = str(params["symbol"]).strip().upper()
        portfolio_id = params.get("portfolio_id")
        if not portfolio_id:
            active = self._source.active_portfolio()
            if active is None:
                raise ToolInputError("No active portfolio found. Please select a portfolio first.")
            portfolio_id = active.id

        portfolio = self._source.portfolios().get(portfolio_id)
        if portfolio is None:
            raise ToolInputError("Portfolio not found.")

        self._source.add_watch(symbol, portfolio_id)
        self._schedule_refresh([symbol])
        return f"Added {symbol} to {portfolio.name} watchlist. Fetching market data..."

    # =========================================================================
    # BACKGROUND REFRESH
    # =========================================================================

    def _schedule_refresh(self, symbols: list[str]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("quote_refresh_deferred", symbols=symbols, reason="no running event loop")
            return
        task = loop.create_task(self._refresh_quotes(symbols))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _refresh_with_retry(self, symbols: list[str]) -> None:
        await self._source.refresh_quotes(symbols)

    async def _refresh_quotes(self, symbols: list[str]) -> None:
        try:
            await self._refresh_with_retry(symbols)
            logger.info("quote_refresh_completed", symbols=symbols)
        except Exception as e:
            # Background work; the confirmation has already been sent
            logger.error("quote_refresh_failed", symbols=symbols, error=str(e))

    async def wait_for_background(self) -> None:
        """Wait for pending quote refreshes (used at shutdown and in tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))
