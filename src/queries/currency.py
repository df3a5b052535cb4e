"""
Currency Conversion

convert(amount, from, to) = amount * rate(from, to)

A missing rate never raises. The amount passes through 1:1 and the
conversion is marked unconverted so the aggregator can flag the summary.
"""

from datetime import date
from enum import Enum
from typing import Optional

import structlog
from pydantic import BaseModel

from src.services.storage import FinanceDataSource


logger = structlog.get_logger(__name__)


class RateSource(str, Enum):
    """Where the rate used for a conversion came from."""
    SAME = "same"
    HISTORICAL = "historical"
    CURRENT = "current"
    MISSING = "missing"


class Conversion(BaseModel):
    amount: float
    rate: float
    source: RateSource

    @property
    def unconverted(self) -> bool:
        return self.source == RateSource.MISSING


class CurrencyConverter:
    """Converts amounts using the data source's FX table."""

    def __init__(self, source: FinanceDataSource):
        self._source = source

    def rate(
        self,
        from_currency: str,
        to_currency: str,
        on: Optional[date] = None,
    ) -> tuple[float, RateSource]:
        """
        Best available rate.

        With a date, the historical rate is tried first, then the
        current rate. Identity is the last resort.
        """
        if from_currency.upper() == to_currency.upper():
            return 1.0, RateSource.SAME

        if on is not None:
            historical = self._source.fx_rate(from_currency, to_currency, on=on)
            if historical:
                return historical, RateSource.HISTORICAL

        current = self._source.fx_rate(from_currency, to_currency)
        if current:
            return current, RateSource.CURRENT

        logger.warning(
            "fx_rate_missing",
            from_currency=from_currency,
            to_currency=to_currency,
            on=on.isoformat() if on else None,
        )
        return 1.0, RateSource.MISSING

    def convert(
        self,
        amount: float,
        from_currency: str,
        to_currency: str,
        on: Optional[date] = None,
    ) -> Conversion:
        rate, source = self.rate(from_currency, to_currency, on=on)
        return Conversion(amount=amount * rate, rate=rate, source=source)
