"""
Abstract Data Source Interface

DESIGN DECISION: The assistant never owns the financial stores. The app
keeps transactions, holdings, accounts, debts and FX rates wherever it
likes; the assistant reads them through this interface.
This allows us to:
1. Plug the assistant into any store (SQLite, a sync service, memory)
2. Use in-memory data for testing
3. Keep the privacy boundary in one place: only the aggregator reads here

The interface is intentionally simple - just the reads the aggregator
needs, plus the single watchlist write.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

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


class FinanceDataSource(ABC):
    """
    Read accessors over the app's financial stores.

    Reads are synchronous: tool execution runs inside the turn and must
    not interleave with other turns.
    """

    @abstractmethod
    def transactions(self) -> list[Transaction]:
        """All transactions, in no particular order."""
        pass

    @abstractmethod
    def holdings(self) -> list[Holding]:
        """Holdings of the active portfolio, one per symbol."""
        pass

    @abstractmethod
    def quote(self, symbol: str) -> Optional[Quote]:
        """Latest quote for a symbol, or None if never fetched."""
        pass

    @abstractmethod
    def accounts(self) -> list[Account]:
        pass

    @abstractmethod
    def debts(self) -> list[Debt]:
        pass

    @abstractmethod
    def fx_rate(
        self,
        from_currency: str,
        to_currency: str,
        on: Optional[date] = None,
    ) -> Optional[float]:
        """
        Multiplier converting from_currency into to_currency.

        Args:
            from_currency: ISO code of the source amount
            to_currency: ISO code of the target amount
            on: Historical date. None asks for the current rate.

        Returns:
            The rate, or None when the store has no rate for that pair
            (or for that date, when on is given).
        """
        pass

    @abstractmethod
    def monthly_budget(self) -> Optional[float]:
        """The single monthly spending budget, or None if unset."""
        pass

    @abstractmethod
    def portfolios(self) -> dict[str, Portfolio]:
        pass

    @abstractmethod
    def active_portfolio(self) -> Optional[Portfolio]:
        pass

    @abstractmethod
    def fundamentals(self, symbol: str) -> Optional[Fundamentals]:
        pass

    @abstractmethod
    def add_watch(self, symbol: str, portfolio_id: str) -> None:
        """
        Add a symbol to a portfolio's watchlist.

        Raises:
            NotFoundError: If the portfolio doesn't exist
        """
        pass

    @abstractmethod
    async def refresh_quotes(self, symbols: list[str]) -> None:
        """
        Fetch fresh quotes (and fundamentals) for the given symbols.

        May hit the network; callers run it in the background.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one conversation turn).

        Args:
            correlation_id: The correlation identifier

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass
