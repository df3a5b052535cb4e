"""
Tool Definitions

What the model may ask for. Every tool returns an aggregated summary
string; none of them hands back raw rows.
"""

from enum import Enum

from src.models.assistant import TRANSACTION_CATEGORIES
from src.models.provider import ToolSpec


class ToolName(str, Enum):
    GET_SPENDING_DATA = "get_spending_data"
    SEARCH_TRANSACTIONS = "search_transactions"
    GET_PORTFOLIO_DATA = "get_portfolio_data"
    GET_NET_WORTH_DATA = "get_net_worth_data"
    GET_BUDGET_DATA = "get_budget_data"
    GET_STOCK_DETAILS = "get_stock_details"
    GET_STOCK_FUNDAMENTALS = "get_stock_fundamentals"
    ADD_TO_WATCHLIST = "add_to_watchlist"


_DATE = {"type": "string", "description": "Date in YYYY-MM-DD format"}
_CATEGORY_LIST = ", ".join(TRANSACTION_CATEGORIES)


TOOL_DEFINITIONS: list[ToolSpec] = [
    ToolSpec(
        name=ToolName.GET_SPENDING_DATA.value,
        description=(
            "Get aggregated spending data for a specific date range. Returns total spent, "
            "top categories, and transaction count (NO raw transaction details)."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "start_date": {**_DATE, "description": "Start date in YYYY-MM-DD format"},
                "end_date": {**_DATE, "description": "End date in YYYY-MM-DD format"},
                "category": {
                    "type": "string",
                    "description": f"Optional category filter: {_CATEGORY_LIST}",
                },
            },
            "required": ["start_date", "end_date"],
        },
    ),
    ToolSpec(
        name=ToolName.SEARCH_TRANSACTIONS.value,
        description=(
            "Search for specific transactions by merchant name, item, or description, or list "
            "the merchants of one category. Use when the user asks 'what subscriptions?', "
            "'which restaurants?', 'how many times did I buy X?'."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "search_term": {
                    "type": "string",
                    "description": (
                        "Merchant name or item to search for (e.g., 'Starbucks', 'pizza'). "
                        "If omitted, category is required and merchants of that category are listed."
                    ),
                },
                "start_date": {**_DATE, "description": "Start date in YYYY-MM-DD format"},
                "end_date": {**_DATE, "description": "End date in YYYY-MM-DD format"},
                "category": {
                    "type": "string",
                    "description": "Category filter (e.g., 'Subscriptions', 'Food', 'Transport').",
                },
            },
            "required": ["start_date", "end_date"],
        },
    ),
    ToolSpec(
        name=ToolName.GET_PORTFOLIO_DATA.value,
        description=(
            "Get aggregated portfolio data. Returns total value, total gain/loss, and top "
            "holdings (NO raw transaction history)."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "symbol": {
                    "type": "string",
                    "description": "Optional stock symbol to filter by (e.g., AAPL, TSLA)",
                },
            },
        },
    ),
    ToolSpec(
        name=ToolName.GET_NET_WORTH_DATA.value,
        description=(
            "Get the user's current net worth breakdown: cash, investments, debt "
            "(NO account details)."
        ),
        input_schema={"type": "object", "properties": {}},
    ),
    ToolSpec(
        name=ToolName.GET_BUDGET_DATA.value,
        description=(
            "Get budget status for the current month. Returns budget amount, spent amount, "
            "and remaining (NO transaction details)."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "description": "Optional category to check budget for",
                },
            },
        },
    ),
    ToolSpec(
        name=ToolName.GET_STOCK_DETAILS.value,
        description=(
            "Get details about a stock the user owns: purchase lots, average cost, total "
            "shares, current value, gain/loss and first purchase date."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "symbol": {"type": "string", "description": "Stock symbol (e.g., AAPL, BTC-USD)"},
            },
            "required": ["symbol"],
        },
    ),
    ToolSpec(
        name=ToolName.GET_STOCK_FUNDAMENTALS.value,
        description=(
            "Get company fundamentals and market data: name, sector, P/E ratio, market cap, "
            "dividend yield, 52-week range, beta. Only works for stocks in the user's "
            "watchlist or holdings."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "symbol": {"type": "string", "description": "Stock symbol (e.g., AAPL, TSLA)"},
            },
            "required": ["symbol"],
        },
    ),
    ToolSpec(
        name=ToolName.ADD_TO_WATCHLIST.value,
        description=(
            "Add a stock to the user's watchlist and fetch its market data. Ask which "
            "portfolio to use if the user has several."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "symbol": {"type": "string", "description": "Stock symbol to add (e.g., NVDA)"},
                "portfolio_id": {
                    "type": "string",
                    "description": "Portfolio ID. If not provided, the active portfolio is used.",
                },
            },
            "required": ["symbol"],
        },
    ),
]

TOOLS_BY_NAME: dict[str, ToolSpec] = {tool.name: tool for tool in TOOL_DEFINITIONS}


def required_inputs(name: str) -> list[str]:
    return list(TOOLS_BY_NAME[name].input_schema.get("required", []))
