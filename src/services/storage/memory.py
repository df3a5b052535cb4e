"""
In-Memory Storage

Plain dict/list backed implementations of the storage interfaces.
Used by the tests and for running the assistant against fixture data.
"""

from datetime import date
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from src.models.audit import AuditEvent
from src.models.finance import (
    Account,
    Debt,
    Fundamentals,
    Holding,
    Portfolio,
    Quote,
    Transaction,
)
from src.services.storage.interface import (
    AuditStorageInterface,
    FinanceDataSource,
    NotFoundError,
)


logger = structlog.get_logger(__name__)

QuoteFetcher = Callable[[str], Awaitable[Optional[Quote]]]


class InMemoryFinanceStore(FinanceDataSource):
    """
    FinanceDataSource over in-process collections.

    FX rates are keyed by (from, to). Historical rates are keyed by
    (from, to, date). A missing direct pair falls back to the inverse
    of the opposite pair.
    """

    def __init__(
        self,
        transactions: Optional[list[Transaction]] = None,
        holdings: Optional[list[Holding]] = None,
        quotes: Optional[dict[str, Quote]] = None,
        accounts: Optional[list[Account]] = None,
        debts: Optional[list[Debt]] = None,
        fx_rates: Optional[dict[tuple[str, str], float]] = None,
        historical_fx_rates: Optional[dict[tuple[str, str, date], float]] = None,
        monthly_budget: Optional[float] = None,
        portfolios: Optional[list[Portfolio]] = None,
        active_portfolio_id: Optional[str] = None,
        fundamentals: Optional[dict[str, Fundamentals]] = None,
        quote_fetcher: Optional[QuoteFetcher] = None,
    ):
        self._transactions = list(transactions or [])
        self._holdings = {h.symbol: h for h in holdings or []}
        self._quotes = {k.upper(): v for k, v in (quotes or {}).items()}
        self._accounts = list(accounts or [])
        self._debts = list(debts or [])
        self._fx_rates = dict(fx_rates or {})
        self._historical_fx_rates = dict(historical_fx_rates or {})
        self._monthly_budget = monthly_budget
        self._portfolios = {p.id: p for p in portfolios or []}
        self._active_portfolio_id = active_portfolio_id
        if self._active_portfolio_id is None and len(self._portfolios) == 1:
            self._active_portfolio_id = next(iter(self._portfolios))
        self._fundamentals = {k.upper(): v for k, v in (fundamentals or {}).items()}
        self._quote_fetcher = quote_fetcher

    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    def holdings(self) -> list[Holding]:
        return list(self._holdings.values())

    def quote(self, symbol: str) -> Optional[Quote]:
        return self._quotes.get(symbol.upper())

    def accounts(self) -> list[Account]:
        return list(self._accounts)

    def debts(self) -> list[Debt]:
        return list(self._debts)

    def fx_rate(
        self,
        from_currency: str,
        to_currency: str,
        on: Optional[date] = None,
    ) -> Optional[float]:
        src, dst = from_currency.upper(), to_currency.upper()
        if src == dst:
            return 1.0

        if on is not None:
            table = self._historical_fx_rates
            direct, inverse = (src, dst, on), (dst, src, on)
        else:
            table = self._fx_rates
            direct, inverse = (src, dst), (dst, src)

        if direct in table:
            return table[direct]
        if inverse in table and table[inverse]:
            return 1.0 / table[inverse]
        return None

    def monthly_budget(self) -> Optional[float]:
        return self._monthly_budget

    def portfolios(self) -> dict[str, Portfolio]:
        return dict(self._portfolios)

    def active_portfolio(self) -> Optional[Portfolio]:
        if self._active_portfolio_id is None:
            return None
        return self._portfolios.get(self._active_portfolio_id)

    def fundamentals(self, symbol: str) -> Optional[Fundamentals]:
        return self._fundamentals.get(symbol.upper())

    def add_watch(self, symbol: str, portfolio_id: str) -> None:
        portfolio = self._portfolios.get(portfolio_id)
        if portfolio is None:
            raise NotFoundError(f"Portfolio {portfolio_id} not found")
        symbol = symbol.upper()
        if symbol not in portfolio.watchlist:
            portfolio.watchlist.append(symbol)

    async def refresh_quotes(self, symbols: list[str]) -> None:
        if self._quote_fetcher is None:
            logger.info("quote_refresh_skipped", symbols=symbols, reason="no fetcher")
            return
        for symbol in symbols:
            quote = await self._quote_fetcher(symbol)
            if quote is not None:
                self._quotes[symbol.upper()] = quote


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
