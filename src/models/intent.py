"""
Intent Models

The local router turns every user message into an Intent before anything
else happens. Intents are created per turn and never persisted.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IntentType(str, Enum):
    """
    What the user is trying to do.

    DESIGN DECISION: A closed set. Anything the router cannot place
    lands on UNSUPPORTED with a canned reply, never on an error.
    """
    SPENDING_QUERY = "spending_query"
    PORTFOLIO_QUERY = "portfolio_query"
    NET_WORTH_QUERY = "net_worth_query"
    BUDGET_QUERY = "budget_query"
    TRANSACTION_LOG = "transaction_log"
    PORTFOLIO_LOG = "portfolio_log"
    SIMPLE_QUERY = "simple_query"
    UNSUPPORTED = "unsupported"


class Confidence(str, Enum):
    """How sure the router is. Only decides whether a model call is worth it."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IntentParams(BaseModel):
    """Parameters the router could pull out of the text."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category: Optional[str] = None
    period: Optional[str] = Field(
        default=None,
        description="Period token, e.g. this_month or past_3_months"
    )
    amount: Optional[float] = None
    merchant: Optional[str] = None
    symbol: Optional[str] = None
    date: Optional[str] = Field(
        default=None,
        description="today, yesterday or a short m/d date as typed"
    )
    query_type: Optional[str] = Field(
        default=None,
        description="Sub-kind of a simple query, e.g. balance"
    )


class Intent(BaseModel):
    """Local classification of one user turn."""

    type: IntentType
    confidence: Confidence
    needs_ai: bool = Field(
        description="Whether a remote model call is warranted"
    )
    params: IntentParams = Field(default_factory=IntentParams)
    direct_response: Optional[str] = Field(
        default=None,
        description="Canned reply, or 'net_worth' for a local summary answer"
    )

    @property
    def is_direct(self) -> bool:
        """True when the turn can be answered without the model."""
        return not self.needs_ai and self.direct_response is not None
