"""Local aggregation package."""

from src.queries.aggregator import PrivacyAggregator
from src.queries.currency import Conversion, CurrencyConverter, RateSource
from src.queries.periods import (
    AggregationError,
    DateRange,
    InvalidDateRangeError,
    parse_period,
    range_from_iso,
)

__all__ = [
    "AggregationError",
    "Conversion",
    "CurrencyConverter",
    "DateRange",
    "InvalidDateRangeError",
    "PrivacyAggregator",
    "RateSource",
    "parse_period",
    "range_from_iso",
]
