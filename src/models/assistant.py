"""
Assistant Output Models

What a turn hands back to the caller: the assistant message, plus a
confirmation payload when the user narrated a transaction. The
assistant never writes the transaction itself.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.conversation import Message


TRANSACTION_CATEGORIES = (
    "Food",
    "Groceries",
    "Transport",
    "Fuel",
    "Shopping",
    "Entertainment",
    "Bills",
    "Utilities",
    "Health",
    "Fitness",
    "Home",
    "Education",
    "Pets",
    "Travel",
    "Subscriptions",
    "Gifts",
)


class ExtractedTransaction(BaseModel):
    """
    A narrated purchase turned into fields.

    DESIGN DECISION: This is a PROPOSAL. It is shown to the user,
    who confirms or edits it before anything is saved.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: float = 0.0
    merchant: str = "Transaction"
    category: str = "Shopping"
    date: datetime
    account: Optional[str] = None
    extracted_by_model: bool = Field(
        default=False,
        description="False when the local fallback produced these fields"
    )


class Confirmation(BaseModel):
    """Something the user must approve before it is written."""

    type: Literal["transaction", "portfolio_transaction"]
    data: dict[str, Any]


class AssistantReply(BaseModel):
    """Result of one turn."""

    message: Message
    requires_confirmation: Optional[Confirmation] = None
