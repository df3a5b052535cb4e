"""
Privacy Aggregator

DESIGN DECISION: This is the privacy boundary. Everything the assistant
knows about the user's money reaches a remote model as one of the
summary strings built here, never as store rows.

GUARANTEES:
- Totals and top-N breakdowns only; never an unfiltered dump
- Transaction search describes only the rows the user asked about,
  capped at search_result_limit
- All amounts are expressed in the base currency; a missing FX rate is
  flagged as unconverted instead of raising
- A holding with no shares or no positive quote is left out of every
  valuation and reported as excluded ("no data", not "worth zero")

The metadata dict carries the same numbers in structured form for
local callers (UI, tests). It is never sent to a provider.
"""

from collections import Counter
from datetime import datetime
from typing import Callable, Optional

import structlog

from src.models.finance import (
    Account,
    AccountKind,
    AggregatedSummary,
    Holding,
    LotSide,
    Position,
    Transaction,
    TransactionType,
)
from src.models.intent import Intent, IntentType
from src.queries.currency import CurrencyConverter, RateSource
from src.queries.periods import AggregationError, DateRange, parse_period
from src.services.storage import FinanceDataSource


logger = structlog.get_logger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹", "JPY": "¥"}


class PrivacyAggregator:
    """
    Read-only query surface over the financial stores.

    Every public method returns an AggregatedSummary.
    """

    def __init__(
        self,
        source: FinanceDataSource,
        base_currency: str = "USD",
        top_n: int = 5,
        search_result_limit: int = 10,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._source = source
        self._converter = CurrencyConverter(source)
        self._base = base_currency.upper()
        self._top_n = top_n
        self._search_limit = search_result_limit
        self._now = now or datetime.now

    # =========================================================================
    # HELPERS
    # =========================================================================

    @property
    def converter(self) -> CurrencyConverter:
        return self._converter

    def _money(self, amount: float) -> str:
        symbol = CURRENCY_SYMBOLS.get(self._base)
        if symbol:
            sign = "-" if amount < 0 else ""
            return f"{sign}{symbol}{abs(amount):,.2f}"
        return f"{amount:,.2f} {self._base}"

    def _to_base(self, amount: float, currency: str, flags: set[RateSource], on=None) -> float:
        conversion = self._converter.convert(amount, currency, self._base, on=on)
        flags.add(conversion.source)
        return conversion.amount

    def _range(self, date_range: Optional[DateRange], period: Optional[str]) -> DateRange:
        return date_range or parse_period(period, self._now())

    @staticmethod
    def _unconverted_note(flags: set[RateSource]) -> str:
        if RateSource.MISSING in flags:
            return " (some amounts could not be converted and are shown 1:1)"
        return ""

    # =========================================================================
    # SPENDING
    # =========================================================================

    def _expenses(self, date_range: DateRange, category: Optional[str]) -> list[Transaction]:
        needle = category.lower() if category else None
        return [
            tx for tx in self._source.transactions()
            if tx.type == TransactionType.EXPENSE
            and date_range.contains(tx.date)
            and (needle is None or needle in (tx.category or "").lower())
        ]

    def spending(
        self,
        category: Optional[str] = None,
        date_range: Optional[DateRange] = None,
        period: Optional[str] = None,
    ) -> AggregatedSummary:
        """
        Total expenses in a range, optionally for one category.

        The category filter is a case-insensitive substring match.
        """
        date_range = self._range(date_range, period)
        flags: set[RateSource] = set()

        by_category: dict[str, float] = {}
        total = 0.0
        matches = self._expenses(date_range, category)
        for tx in matches:
            amount = self._to_base(abs(tx.amount), tx.currency, flags)
            key = tx.category or "Uncategorized"
            by_category[key] = by_category.get(key, 0.0) + amount
            total += amount

        top = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)[: self._top_n]

        summary = f"User spent {self._money(total)}"
        if category:
            summary += f" on {category}"
        summary += f" {date_range.label}"

        if len(top) > 1 and not category:
            summary += ". Top categories: " + ", ".join(
                f"{cat} {self._money(amt)}" for cat, amt in top
            )

        budget = self._source.monthly_budget()
        if budget and date_range.label == "this month" and not category:
            remaining = budget - total
            summary += f". Monthly budget: {self._money(budget)}, "
            summary += (
                f"{self._money(remaining)} remaining"
                if remaining >= 0
                else f"{self._money(abs(remaining))} over budget"
            )

        summary += self._unconverted_note(flags)

        return AggregatedSummary(
            summary=summary,
            metadata={
                "total": total,
                "transaction_count": len(matches),
                "by_category": dict(top),
                "budget": budget,
                "period": date_range.label,
                "currency": self._base,
                "unconverted": RateSource.MISSING in flags,
            },
        )

    # =========================================================================
    # PORTFOLIO
    # =========================================================================

    def _value_holding(
        self,
        holding: Holding,
        flags: set[RateSource],
        cost_flags: set[RateSource],
    ) -> tuple[Optional[Position], Optional[str]]:
        """A valued position, or None and the reason it was excluded."""
        shares = holding.shares
        if shares <= 0:
            return None, "no_shares"

        quote = self._source.quote(holding.symbol)
        if quote is None or quote.last <= 0:
            return None, "no_quote"

        value = self._to_base(shares * quote.last, holding.currency, flags)
        # Each buy lot is costed at the rate of its own date when known
        cost_basis = sum(
            self._to_base(lot.qty * lot.price, holding.currency, cost_flags, on=lot.date.date())
            for lot in holding.buy_lots
        )
        gain = value - cost_basis
        gain_pct = (gain / cost_basis * 100) if cost_basis > 0 else 0.0

        return Position(
            symbol=holding.symbol,
            shares=shares,
            value=value,
            cost_basis=cost_basis,
            gain=gain,
            gain_pct=gain_pct,
        ), None

    @staticmethod
    def _cost_basis_fx(cost_flags: set[RateSource]) -> str:
        used = {f for f in cost_flags if f != RateSource.SAME}
        if not used:
            return "exact"
        if used == {RateSource.HISTORICAL}:
            return "historical"
        if used == {RateSource.CURRENT}:
            return "current"
        if used == {RateSource.MISSING}:
            return "unconverted"
        return "mixed"

    def _investment_accounts(self) -> list[Account]:
        return [
            acc for acc in self._source.accounts()
            if acc.is_investment and acc.include_in_net_worth
        ]

    def portfolio(self, symbol: Optional[str] = None) -> AggregatedSummary:
        """
        Value of the active portfolio, or of one symbol in it.

        Total value includes portfolio cash and investment/retirement
        account balances; gain covers valued positions only.
        """
        active = self._source.active_portfolio()
        holdings = self._source.holdings()
        investment_accounts = self._investment_accounts()

        if active is None and not holdings and not investment_accounts:
            return AggregatedSummary(
                summary="User has no active portfolio",
                metadata={"total_value": 0.0, "positions": [], "excluded": []},
            )

        wanted = symbol.upper() if symbol else None
        flags: set[RateSource] = set()
        cost_flags: set[RateSource] = set()
        positions: list[Position] = []
        excluded: list[dict[str, str]] = []

        for holding in holdings:
            if wanted and holding.symbol != wanted:
                continue
            position, reason = self._value_holding(holding, flags, cost_flags)
            if position is None:
                excluded.append({"symbol": holding.symbol, "reason": reason})
            else:
                positions.append(position)

        positions.sort(key=lambda p: p.value, reverse=True)

        cash = self._to_base(active.cash, active.currency, flags) if active else 0.0
        accounts_value = sum(
            self._to_base(acc.balance, acc.currency, flags) for acc in investment_accounts
        )

        holdings_value = sum(p.value for p in positions)
        total_cost = sum(p.cost_basis for p in positions)
        total_gain = holdings_value - total_cost
        total_gain_pct = (total_gain / total_cost * 100) if total_cost > 0 else 0.0
        total_value = holdings_value + cash + accounts_value

        if wanted:
            if positions:
                pos = positions[0]
                summary = (
                    f"User holds {pos.shares:g} shares of {pos.symbol} worth {self._money(pos.value)}. "
                    f"Cost basis: {self._money(pos.cost_basis)}. "
                )
                summary += (
                    f"Gain: {self._money(pos.gain)} (+{pos.gain_pct:.1f}%)"
                    if pos.gain >= 0
                    else f"Loss: {self._money(abs(pos.gain))} ({pos.gain_pct:.1f}%)"
                )
            elif excluded:
                reason = "no current quote" if excluded[0]["reason"] == "no_quote" else "no shares held"
                summary = f"No valuation available for {wanted} ({reason})"
            else:
                summary = f"User does not hold {wanted}"
        else:
            summary = f"User's portfolio value is {self._money(total_value)}"
            if positions:
                word = "gain" if total_gain >= 0 else "loss"
                sign = "+" if total_gain >= 0 else ""
                summary += (
                    f". Total {word}: {self._money(abs(total_gain))} ({sign}{total_gain_pct:.1f}%). "
                    "Top holdings: "
                )
                summary += ", ".join(
                    f"{p.symbol} {self._money(p.value)}" for p in positions[:3]
                )
            if cash > 0:
                summary += f". Cash: {self._money(cash)}"
            if excluded:
                summary += f". {len(excluded)} holding(s) excluded for missing quotes or zero shares"

        summary += self._unconverted_note(flags | cost_flags)

        return AggregatedSummary(
            summary=summary,
            metadata={
                "total_value": total_value,
                "total_gain": total_gain,
                "total_gain_pct": total_gain_pct,
                "positions": [p.model_dump() for p in positions],
                "position_count": len(positions),
                "cash": cash,
                "investment_accounts": accounts_value,
                "excluded": excluded,
                "cost_basis_fx": self._cost_basis_fx(cost_flags),
                "currency": self._base,
                "unconverted": RateSource.MISSING in (flags | cost_flags),
            },
        )

    # =========================================================================
    # NET WORTH
    # =========================================================================

    def net_worth(self) -> AggregatedSummary:
        """
        Cash + investments - debt.

        Investment and retirement accounts are counted once, inside
        investments; credit balances count as debt.
        """
        flags: set[RateSource] = set()
        cash = 0.0
        credit_debt = 0.0
        for acc in self._source.accounts():
            if not acc.include_in_net_worth or acc.is_investment:
                continue
            if acc.kind == AccountKind.CREDIT:
                credit_debt += abs(self._to_base(acc.balance, acc.currency, flags))
            else:
                cash += self._to_base(acc.balance, acc.currency, flags)

        debts = sum(self._to_base(d.balance, d.currency, flags) for d in self._source.debts())
        total_debt = debts + credit_debt

        portfolio = self.portfolio()
        investments = portfolio.metadata.get("total_value", 0.0)
        net_worth = cash + investments - total_debt

        summary = (
            f"User's current net worth is {self._money(net_worth)}. "
            f"Breakdown: Cash {self._money(cash)}, "
            f"Investments {self._money(investments)}, "
            f"Debt {self._money(total_debt)}"
        )
        unconverted = RateSource.MISSING in flags or portfolio.metadata.get("unconverted", False)
        if unconverted:
            summary += self._unconverted_note({RateSource.MISSING})

        return AggregatedSummary(
            summary=summary,
            metadata={
                "net_worth": net_worth,
                "cash": cash,
                "investments": investments,
                "debt": total_debt,
                "currency": self._base,
                "unconverted": unconverted,
            },
        )

    # =========================================================================
    # BUDGET
    # =========================================================================

    def budget(
        self,
        category: Optional[str] = None,
        date_range: Optional[DateRange] = None,
    ) -> AggregatedSummary:
        """Status of the single monthly budget. Category budgets don't exist."""
        monthly_budget = self._source.monthly_budget()

        if not monthly_budget:
            summary = "User has no monthly budget set"
            if category:
                summary += ". Category-specific budgets are not supported."
            return AggregatedSummary(summary=summary, metadata={"has_budget": False})

        if category:
            return AggregatedSummary(
                summary=(
                    f"Category-specific budgets are not supported. User's monthly budget "
                    f"of {self._money(monthly_budget)} covers all spending"
                ),
                metadata={"has_budget": True, "limit": monthly_budget, "category_supported": False},
            )

        spent = self.spending(date_range=date_range or parse_period("this_month", self._now()))
        total = spent.metadata["total"]
        remaining = monthly_budget - total
        percent_used = total / monthly_budget * 100

        summary = (
            f"User's monthly budget is {self._money(monthly_budget)}. "
            f"Spent {self._money(total)} ({percent_used:.1f}%). "
        )
        summary += (
            f"{self._money(remaining)} remaining"
            if remaining >= 0
            else f"{self._money(abs(remaining))} over budget"
        )

        return AggregatedSummary(
            summary=summary,
            metadata={
                "has_budget": True,
                "limit": monthly_budget,
                "spent": total,
                "remaining": remaining,
                "percent_used": percent_used,
                "is_over_budget": remaining < 0,
            },
        )

    # =========================================================================
    # STOCKS
    # =========================================================================

    def _holding(self, symbol: str) -> Optional[Holding]:
        wanted = symbol.upper()
        for holding in self._source.holdings():
            if holding.symbol == wanted:
                return holding
        return None

    def stock_detail(self, symbol: str) -> AggregatedSummary:
        """Purchase history and valuation of one owned symbol."""
        wanted = symbol.upper()
        holding = self._holding(wanted)
        if holding is None or not holding.lots:
            return AggregatedSummary(
                summary=f"User doesn't own any {wanted}",
                metadata={"symbol": wanted, "owned": False},
            )

        flags: set[RateSource] = set()
        lots = sorted(holding.lots, key=lambda lot: lot.date)
        buys = [lot for lot in lots if lot.side == LotSide.BUY]
        buy_qty = sum(lot.qty for lot in buys)
        buy_cost = sum(
            self._to_base(lot.qty * lot.price, holding.currency, flags, on=lot.date.date())
            for lot in buys
        )
        average_cost = buy_cost / buy_qty if buy_qty else 0.0
        first_purchase = buys[0].date if buys else None
        shares = holding.shares

        parts = [f"User holds {shares:g} shares of {wanted}"]
        if buys:
            parts[0] += (
                f" (average cost {self._money(average_cost)}, "
                f"first bought {first_purchase:%b %d, %Y})"
            )

        position, reason = self._value_holding(holding, flags, set())
        if position:
            sign = "+" if position.gain >= 0 else ""
            parts.append(
                f"Current value {self._money(position.value)}, "
                f"{'gain' if position.gain >= 0 else 'loss'} {self._money(abs(position.gain))} "
                f"({sign}{position.gain_pct:.1f}%)"
            )
        elif reason == "no_quote":
            parts.append("Current value unavailable (no quote)")

        shown = lots[: self._search_limit]
        lot_text = "; ".join(
            f"{lot.date:%b %d, %Y} {lot.side.value} {lot.qty:g} @ {lot.price:,.2f} {holding.currency}"
            for lot in shown
        )
        if len(lots) > len(shown):
            lot_text += f"; +{len(lots) - len(shown)} more lots"
        parts.append(f"Lots: {lot_text}")

        summary = ". ".join(parts) + self._unconverted_note(flags)

        return AggregatedSummary(
            summary=summary,
            metadata={
                "symbol": wanted,
                "owned": shares > 0,
                "shares": shares,
                "average_cost": average_cost,
                "first_purchase": first_purchase.isoformat() if first_purchase else None,
                "lot_count": len(lots),
                "position": position.model_dump() if position else None,
                "unconverted": RateSource.MISSING in flags,
            },
        )

    def _tracked_symbols(self) -> set[str]:
        tracked = {h.symbol for h in self._source.holdings()}
        for portfolio in self._source.portfolios().values():
            tracked.update(s.upper() for s in portfolio.watchlist)
        active = self._source.active_portfolio()
        if active:
            tracked.update(s.upper() for s in active.watchlist)
        return tracked

    def stock_fundamentals(self, symbol: str) -> AggregatedSummary:
        """Company data, only for symbols the user holds or watches."""
        wanted = symbol.upper()
        if wanted not in self._tracked_symbols():
            return AggregatedSummary(
                summary=(
                    f"I don't have data on {wanted}. "
                    "It is not in the user's watchlist or holdings."
                ),
                metadata={"symbol": wanted, "tracked": False},
            )

        data = self._source.fundamentals(wanted)
        if data is None:
            return AggregatedSummary(
                summary=f"I don't have data on {wanted} yet. Market data may still be loading.",
                metadata={"symbol": wanted, "tracked": True, "available": False},
            )

        parts = [f"{wanted}" + (f" ({data.company_name})" if data.company_name else "")]
        if data.sector:
            parts.append(f"Sector: {data.sector}" + (f" / {data.industry}" if data.industry else ""))
        if data.pe_ratio is not None:
            parts.append(f"P/E ratio: {data.pe_ratio:.2f}")
        if data.market_cap is not None:
            parts.append(f"Market cap: {_compact(data.market_cap)}")
        if data.dividend_yield is not None:
            parts.append(f"Dividend yield: {data.dividend_yield:.2f}%")
        if data.week52_low is not None and data.week52_high is not None:
            parts.append(f"52-week range: {data.week52_low:,.2f} - {data.week52_high:,.2f}")
        if data.beta is not None:
            parts.append(f"Beta: {data.beta:.2f}")

        quote = self._source.quote(wanted)
        if quote and quote.last > 0:
            parts.append(f"Last price: {quote.last:,.2f}")

        return AggregatedSummary(
            summary=". ".join(parts),
            metadata={"symbol": wanted, "tracked": True, "available": True},
        )

    # =========================================================================
    # SEARCH
    # =========================================================================

    def search_transactions(
        self,
        term: Optional[str] = None,
        date_range: Optional[DateRange] = None,
        category: Optional[str] = None,
    ) -> AggregatedSummary:
        """
        Narrow transaction search.

        With a category and no term: merchant names with counts.
        With a term: date, time, amount and account of each match,
        capped at search_result_limit.

        Raises:
            AggregationError: If neither a term nor a category is given
        """
        if not term and not category:
            raise AggregationError("search needs a search_term or a category")

        date_range = self._range(date_range, None)
        needle = term.lower() if term else None
        wanted_category = category.lower() if category else None

        matches = []
        for tx in self._source.transactions():
            if not date_range.contains(tx.date):
                continue
            if wanted_category and (tx.category or "").lower() != wanted_category:
                continue
            if needle and needle not in (tx.note or "").lower():
                continue
            matches.append(tx)

        if not matches:
            desc = f'for "{term}"' if term else f"in {category}"
            return AggregatedSummary(
                summary=f"No transactions found {desc} in the specified date range.",
                metadata={"match_count": 0},
            )

        if not term:
            counts = Counter(tx.label for tx in matches)
            ranked = counts.most_common()
            shown = ranked[: self._search_limit]
            listing = ", ".join(f"{merchant} ({count}x)" for merchant, count in shown)
            if len(ranked) > len(shown):
                listing += f", +{len(ranked) - len(shown)} more"
            return AggregatedSummary(
                summary=f"Found {len(matches)} {category} transactions: {listing}",
                metadata={
                    "match_count": len(matches),
                    "merchant_count": len(ranked),
                },
            )

        matches.sort(key=lambda tx: tx.date, reverse=True)
        shown = matches[: self._search_limit]
        flags: set[RateSource] = set()
        details = []
        for tx in shown:
            amount = self._money(self._to_base(abs(tx.amount), tx.currency, flags))
            account = f" using {tx.account}" if tx.account else ""
            details.append(f"{_short_date(tx.date)} ({amount}{account})")

        summary = (
            f'Found {len(matches)} transaction{"s" if len(matches) > 1 else ""} '
            f'for "{term}": ' + ", ".join(details)
        )
        if len(matches) > len(shown):
            summary += f", +{len(matches) - len(shown)} more"
        summary += self._unconverted_note(flags)

        return AggregatedSummary(
            summary=summary,
            metadata={
                "match_count": len(matches),
                "shown": len(shown),
                "unconverted": RateSource.MISSING in flags,
            },
        )

    # =========================================================================
    # INTENT MAPPING
    # =========================================================================

    def for_intent(self, intent: Intent) -> Optional[AggregatedSummary]:
        """The summary that best matches a classified intent, if any."""
        params = intent.params
        if intent.type == IntentType.SPENDING_QUERY:
            return self.spending(params.category, period=params.period)
        if intent.type == IntentType.BUDGET_QUERY:
            return self.budget(params.category)
        if intent.type == IntentType.PORTFOLIO_QUERY:
            return self.portfolio(params.symbol)
        if intent.type == IntentType.NET_WORTH_QUERY:
            return self.net_worth()
        if intent.type == IntentType.SIMPLE_QUERY and params.query_type == "balance":
            return self.net_worth()
        return None


def _short_date(moment: datetime) -> str:
    hour = moment.strftime("%I").lstrip("0") or "12"
    return f"{moment:%b} {moment.day} at {hour}:{moment:%M} {moment:%p}"


def _compact(value: float) -> str:
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M")):
        if abs(value) >= threshold:
            return f"{value / threshold:.2f}{suffix}"
    return f"{value:,.0f}"
