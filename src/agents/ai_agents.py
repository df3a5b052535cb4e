"""
AI Agents for Fingrow Assistant

CRITICAL BOUNDARIES:

1. TRANSACTION EXTRACTOR:
   - CAN: Turn a narrated purchase into amount, merchant, category, time, account
   - CANNOT: Save anything; the result is a proposal the user confirms
   - CANNOT: Fail the turn; any problem degrades to a local stub

2. SHARE TRADE PARSER:
   - Purely local. Builds a portfolio trade proposal from the text

The LLM is a TRANSLATOR, not an ORACLE.
It converts a sentence into fields. It NEVER sees stored rows.
"""

import json
import math
import re
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel

from src.agents.prompts import build_extraction_prompt
from src.models.assistant import TRANSACTION_CATEGORIES, ExtractedTransaction
from src.models.conversation import Role
from src.models.finance import Account, AccountKind, LotSide
from src.models.intent import Intent
from src.models.provider import (
    ChatMessage,
    ProviderError,
    ProviderRequest,
    ProviderResponse,
)
from src.providers.gateway import ProviderGateway
from src.services.storage import FinanceDataSource


logger = structlog.get_logger(__name__)

EXTRACTION_MAX_TOKENS = 200
EXTRACTION_TEMPERATURE = 0.3

TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})")
ACCOUNT_SUFFIX_RE = re.compile(r"\s+(?:card|account)$", re.IGNORECASE)
ACCOUNT_KIND_RE = re.compile(r"\s*\([^)]*\)\s*$")
SELL_RE = re.compile(r"\b(?:sold|sell|selling)\b")
PRICE_RE = re.compile(r"(?:\bat\b|@)\s*\$?\s*(\d+(?:\.\d+)?)")


class ExtractionError(ValueError):
    """The model reply could not be turned into a transaction."""
    pass


class ExtractionResult(BaseModel):
    """What the extractor produced, and how."""
    transaction: ExtractedTransaction
    matched_account: Optional[Account] = None
    degraded_reason: Optional[str] = None
    response: Optional[ProviderResponse] = None
    error: Optional[ProviderError] = None

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None


# =============================================================================
# PARSING HELPERS
# =============================================================================

def parse_extraction_json(text: str) -> dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Tolerates markdown fences and chatter around the object. Requires
    a numeric amount.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"```(?:json)?\n?", "", cleaned)

    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start < 0 or end <= start:
        raise ExtractionError("No JSON object in reply")

    try:
        data = json.loads(cleaned[start:end])
    except ValueError as e:
        # JSONDecodeError, or an integer too long to convert
        raise ExtractionError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionError("Reply JSON is not an object")

    amount = data.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ExtractionError("Reply has no numeric amount")
    try:
        amount = float(amount)
    except OverflowError as e:
        raise ExtractionError(f"Amount out of range: {e}") from e
    if not math.isfinite(amount):
        raise ExtractionError("Amount out of range")
    data["amount"] = amount
    return data


def normalize_category(value: Any, fallback: Optional[str] = None) -> str:
    """Map a category onto the app's list, case-insensitively."""
    if isinstance(value, str):
        for category in TRANSACTION_CATEGORIES:
            if category.lower() == value.strip().lower():
                return category
    return fallback or "Shopping"


def match_account(name: Any, accounts: list[Account]) -> Optional[Account]:
    """
    Find the account the user meant.

    "Trust card", "Trust account" and "Trust (credit)" all match an
    account named Trust. Exact matches win over partial ones.
    """
    if not isinstance(name, str):
        return None

    cleaned = name.strip().replace('"', "").replace("'", "")
    cleaned = ACCOUNT_KIND_RE.sub("", cleaned)
    cleaned = ACCOUNT_SUFFIX_RE.sub("", cleaned).strip().lower()
    if not cleaned:
        return None

    for account in accounts:
        if account.name.lower() == cleaned:
            return account
    for account in accounts:
        candidate = account.name.lower()
        if candidate in cleaned or cleaned in candidate:
            return account
    return None


def apply_time(moment: datetime, value: Any) -> datetime:
    """Set HH:MM on moment; anything unparseable leaves it unchanged."""
    if not isinstance(value, str):
        return moment
    match = TIME_RE.match(value)
    if not match:
        return moment
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return moment
    return moment.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def describe_account(account: Account) -> str:
    if account.kind == AccountKind.CREDIT:
        return "credit card"
    return f"{account.kind.value} account"


# =============================================================================
# TRANSACTION EXTRACTOR
# =============================================================================

class TransactionExtractor:
    """
    Extracts a transaction proposal from a narrated purchase.

    FLOW:
    1. One tool-free model call with the extraction prompt
    2. Parse the JSON reply
    3. Match the account against the user's accounts
    4. On any failure, build the proposal from the router's params

    The call always skips the response cache; the same sentence said
    twice is two purchases.
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        source: FinanceDataSource,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._gateway = gateway
        self._source = source
        self._now = now or datetime.now

    def _base_moment(self, intent: Intent) -> datetime:
        moment = self._now()
        if intent.params.date == "yesterday":
            moment -= timedelta(days=1)
        return moment

    def fallback(self, intent: Intent) -> ExtractedTransaction:
        """Proposal built only from what the router extracted."""
        params = intent.params
        return ExtractedTransaction(
            amount=params.amount or 0.0,
            merchant=params.merchant or "Transaction",
            category=normalize_category(params.category),
            date=self._base_moment(intent),
        )

    async def extract(self, text: str, intent: Intent) -> ExtractionResult:
        accounts = self._source.accounts()
        now = self._now()
        prompt = build_extraction_prompt(
            text,
            now,
            [f"{a.name} ({a.kind.value})" for a in accounts],
        )
        request = ProviderRequest(
            messages=[ChatMessage(role=Role.USER, content=prompt)],
            max_tokens=EXTRACTION_MAX_TOKENS,
            temperature=EXTRACTION_TEMPERATURE,
        )

        result = await self._gateway.call(request, skip_cache=True)

        if isinstance(result, ProviderError):
            logger.warning("extraction_provider_failed", error_type=result.type.value)
            return ExtractionResult(
                transaction=self.fallback(intent),
                degraded_reason=f"provider_{result.type.value}",
                error=result,
            )

        try:
            data = parse_extraction_json(result.text)
        except ExtractionError as e:
            logger.warning("extraction_parse_failed", error=str(e), reply_chars=len(result.text))
            return ExtractionResult(
                transaction=self.fallback(intent),
                degraded_reason="unparseable_reply",
                response=result,
            )

        account = match_account(data.get("account"), accounts)
        merchant = data.get("merchant")
        transaction = ExtractedTransaction(
            amount=data["amount"],
            merchant=merchant if isinstance(merchant, str) and merchant.strip() else (
                intent.params.merchant or "Transaction"
            ),
            category=normalize_category(data.get("category"), intent.params.category),
            date=apply_time(self._base_moment(intent), data.get("time")),
            account=account.name if account else None,
            extracted_by_model=True,
        )
        logger.info(
            "extraction_completed",
            category=transaction.category,
            account_matched=account is not None,
        )
        return ExtractionResult(
            transaction=transaction,
            matched_account=account,
            response=result,
        )


# =============================================================================
# SHARE TRADES
# =============================================================================

def parse_share_trade(text: str, intent: Intent, now: datetime) -> Optional[dict[str, Any]]:
    """
    Portfolio trade proposal from "bought 10 shares of AAPL at 150".

    Returns None unless both the symbol and the share count are known.
    """
    params = intent.params
    if not params.symbol or not params.amount:
        return None

    q = text.lower()
    price = PRICE_RE.search(q)
    moment = now - timedelta(days=1) if params.date == "yesterday" else now
    return {
        "symbol": params.symbol,
        "side": (LotSide.SELL if SELL_RE.search(q) else LotSide.BUY).value,
        "qty": params.amount,
        "price": float(price.group(1)) if price else None,
        "date": moment.isoformat(),
    }
