"""
Financial Domain Models

These are the records the app's stores hand to the assistant. The
assistant only reads them (the watchlist add is the one write) and
never forwards them as-is to a remote provider: everything leaving the
device goes through the aggregator as an AggregatedSummary.

Amounts are floats. The numbers are summarised for display and never
booked, so binary rounding is acceptable here.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TransactionType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class AccountKind(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CASH = "cash"
    CREDIT = "credit"
    INVESTMENT = "investment"
    RETIREMENT = "retirement"
    OTHER = "other"


class LotSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class Transaction(BaseModel):
    """A single money movement."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    date: datetime
    type: TransactionType = TransactionType.EXPENSE
    amount: float
    category: Optional[str] = None
    note: Optional[str] = Field(
        default=None,
        description="Merchant or free-text description"
    )
    account: Optional[str] = None
    currency: str = "USD"

    @property
    def label(self) -> str:
        return self.note or "Unknown"


class Lot(BaseModel):
    """One buy or sell execution."""

    side: LotSide
    qty: float = Field(gt=0)
    price: float = Field(ge=0)
    date: datetime


class Holding(BaseModel):
    """All lots of one symbol."""

    symbol: str
    currency: str = "USD"
    lots: list[Lot] = Field(default_factory=list)

    @field_validator("symbol")
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def shares(self) -> float:
        return sum(
            lot.qty if lot.side == LotSide.BUY else -lot.qty
            for lot in self.lots
        )

    @property
    def buy_lots(self) -> list[Lot]:
        return [lot for lot in self.lots if lot.side == LotSide.BUY]


class Quote(BaseModel):
    """Latest market price, in the holding's currency."""

    symbol: str
    last: float
    change: Optional[float] = None
    change_percent: Optional[float] = None


class Account(BaseModel):
    name: str
    kind: AccountKind = AccountKind.CHECKING
    balance: float = 0.0
    currency: str = "USD"
    include_in_net_worth: bool = True

    @property
    def is_investment(self) -> bool:
        return self.kind in (AccountKind.INVESTMENT, AccountKind.RETIREMENT)


class Debt(BaseModel):
    name: str
    balance: float = Field(ge=0)
    currency: str = "USD"


class Portfolio(BaseModel):
    id: str
    name: str
    currency: str = "USD"
    cash: float = 0.0
    watchlist: list[str] = Field(default_factory=list)


class Fundamentals(BaseModel):
    """Company and market data for one symbol."""

    symbol: str
    company_name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    pe_ratio: Optional[float] = None
    market_cap: Optional[float] = None
    dividend_yield: Optional[float] = None
    week52_high: Optional[float] = None
    week52_low: Optional[float] = None
    beta: Optional[float] = None


class Position(BaseModel):
    """A valued holding, in the base currency."""

    symbol: str
    shares: float
    value: float
    cost_basis: float
    gain: float
    gain_pct: float


class AggregatedSummary(BaseModel):
    """
    Privacy-bounded view of financial data.

    The summary string is the only part that may be sent to a provider.
    Metadata carries totals and top-N breakdowns for local callers.
    """

    summary: str
    metadata: dict[str, Any] = Field(default_factory=dict)
