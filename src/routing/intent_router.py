"""
Local Intent Router

DESIGN DECISION: Every user message is classified locally before any
network call. Greetings, help requests, off-topic questions and the bare
"net worth?" question are answered without spending a model call, and
the parameters pulled out here (category, period, amount, merchant,
symbol) seed both the context hint and the extraction fallback.

GUARANTEES:
- Deterministic: same text, same Intent
- Never raises: any input yields a valid Intent
- Confidence never blocks a reply; it only says whether the model is worth calling
"""

import re
from typing import Any, Optional

import structlog

from src.models.intent import Confidence, Intent, IntentParams, IntentType


logger = structlog.get_logger(__name__)


HELP_RESPONSE = (
    "I can help you with:\n"
    "• Spending analysis\n"
    "• Portfolio insights\n"
    "• Transaction logging\n"
    "• Budget tracking\n\n"
    "What would you like to know?"
)
EMPTY_RESPONSE = "How can I help you today?"
UNSUPPORTED_RESPONSE = (
    "I can only help with your Fingrow financial data. "
    "Try asking about your spending, portfolio, or logging a transaction."
)
NET_WORTH_DIRECT = "net_worth"


# =============================================================================
# PATTERN TABLES
# =============================================================================

HELP_RE = re.compile(r"^(?:help|what can you do|commands)\??$")

# A number that is not a count of days/weeks/shares ("past 3 months" is a period)
AMOUNT_RE = re.compile(
    r"\$?\s*(\d+(?:\.\d{1,2})?)(?!\d|\.\d)"
    r"(?!\s*(?:day|week|month|year|share|unit)s?\b)"
)
LOG_VERB_RE = re.compile(
    r"\b(?:spent|paid|bought|purchased|add|log|had|ate|ordered|got|cost"
    r"|dinner|lunch|breakfast|coffee)"
)
PORTFOLIO_LOG_RE = re.compile(
    r"\b(?:bought|sold|purchased?|add|log)\b.*\b(?:shares?|stocks?|crypto)\b"
)
SHARES_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:shares?|units?)")

BALANCE_RE = re.compile(r"\b(?:balance|cash|account|money|have|total)")
SPEND_WORDS_RE = re.compile(r"\b(?:spent|spending|spend|bought|paid|purchased|add|log)")
BARE_NET_WORTH_RE = re.compile(r"^(?:what(?:'s| is) my )?(?:net worth|networth)\??$")

SPENDING_RE = re.compile(r"\b(?:spent|spending|spend|cost|expense)")
BUDGET_RE = re.compile(r"\bbudget")
PORTFOLIO_RE = re.compile(
    r"\b(?:portfolio|stock|invest|shares?\b|holdings?\b|crypto|amd\b|nvda\b|aapl\b|tsla\b)"
)
NET_WORTH_RE = re.compile(r"\b(?:net worth|networth|total worth|wealth)")

NON_FINANCIAL_RE = re.compile(
    r"\b(?:weather|news|movie|recipe|sport|game|hello|hi|hey|thanks|thank you)\b"
)
FINANCIAL_KEYWORDS_RE = re.compile(
    r"\b(?:money|dollar|spend|spent|paid|cost|price|buy|bought|sale|invest|stock"
    r"|crypto|portfolio|account|balance|worth|budget|transaction|expense|income|saving)"
)

# Keyword -> app category. First match wins, so order matters.
CATEGORY_KEYWORDS: list[tuple[str, str]] = [
    ("food", "Food"), ("restaurant", "Food"), ("dining", "Food"),
    ("coffee", "Food"), ("lunch", "Food"), ("dinner", "Food"),
    ("breakfast", "Food"), ("snack", "Food"), ("pizza", "Food"),
    ("burger", "Food"), ("sushi", "Food"),
    ("groceries", "Groceries"), ("grocery", "Groceries"),
    ("supermarket", "Groceries"), ("market", "Groceries"),
    ("transport", "Transport"), ("uber", "Transport"), ("taxi", "Transport"),
    ("bus", "Transport"), ("train", "Transport"), ("metro", "Transport"),
    ("subway", "Transport"),
    ("fuel", "Fuel"), ("gas", "Fuel"), ("petrol", "Fuel"), ("diesel", "Fuel"),
    ("shopping", "Shopping"), ("clothes", "Shopping"), ("clothing", "Shopping"),
    ("shoes", "Shopping"),
    ("entertainment", "Entertainment"), ("movie", "Entertainment"),
    ("cinema", "Entertainment"), ("game", "Entertainment"),
    ("concert", "Entertainment"),
    ("bills", "Bills"), ("utilities", "Utilities"), ("electric", "Utilities"),
    ("water", "Utilities"), ("internet", "Utilities"),
    ("health", "Health"), ("medical", "Health"), ("doctor", "Health"),
    ("pharmacy", "Health"), ("medicine", "Health"),
    ("fitness", "Fitness"), ("gym", "Fitness"), ("workout", "Fitness"),
    ("home", "Home"), ("rent", "Home"), ("mortgage", "Home"),
    ("furniture", "Home"),
    ("education", "Education"), ("school", "Education"),
    ("course", "Education"), ("book", "Education"),
    ("pet", "Pets"), ("vet", "Pets"),
    ("travel", "Travel"), ("flight", "Travel"), ("hotel", "Travel"),
    ("vacation", "Travel"),
    ("subscription", "Subscriptions"), ("netflix", "Subscriptions"),
    ("spotify", "Subscriptions"),
    ("gift", "Gifts"),
]
_CATEGORY_RES = [(re.compile(rf"\b{kw}"), cat) for kw, cat in CATEGORY_KEYWORDS]

PERIOD_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\btoday\b"), "today"),
    (re.compile(r"\byesterday\b"), "yesterday"),
    (re.compile(r"\bthis week\b"), "this_week"),
    (re.compile(r"\blast week\b"), "last_week"),
    (re.compile(r"\bthis month\b"), "this_month"),
    (re.compile(r"\blast month\b"), "last_month"),
    (re.compile(r"\bthis year\b"), "this_year"),
    (re.compile(r"\blast year\b"), "last_year"),
]
PAST_PERIOD_RE = re.compile(r"\b(?:past|last)\s+(\d+)\s+(day|week|month|year)s?\b")

MERCHANT_FILLER = {"just", "now", "today", "yesterday", "dinner", "lunch", "breakfast", "food", "it"}
KNOWN_MERCHANTS = [
    "starbucks", "walmart", "target", "amazon", "mcdonalds", "uber",
    "netflix", "pizza", "burger", "sushi", "coffee",
]
_WORDS = r"([a-z]+(?:\s+[a-z]+){0,2})"
AT_FROM_RE = re.compile(rf"\b(?:at|from)\s+{_WORDS}", re.IGNORECASE)
FOR_BEFORE_TIME_RE = re.compile(
    r"\bfor\s+([a-z]+)\s+(?:just\s+now|today|yesterday)", re.IGNORECASE
)
FOR_ON_WAS_RE = [
    re.compile(rf"\bfor\s+{_WORDS}", re.IGNORECASE),
    re.compile(rf"\bon\s+{_WORDS}", re.IGNORECASE),
    re.compile(rf"\bwas\s+{_WORDS}", re.IGNORECASE),
]

TICKER_RE = re.compile(r"\b([A-Z]{1,5})\b")
NOT_TICKERS = {"I", "A", "AM", "PM", "MY", "ME", "OK", "US", "USD", "EUR", "GBP", "ETF"}
COMPANY_SYMBOLS = {
    "apple": "AAPL",
    "microsoft": "MSFT",
    "google": "GOOGL",
    "amazon": "AMZN",
    "tesla": "TSLA",
    "amd": "AMD",
    "nvidia": "NVDA",
    "meta": "META",
    "facebook": "META",
}
SHORT_DATE_RE = re.compile(r"\b(\d{1,2}/\d{1,2}(?:/\d{2,4})?)\b")


# =============================================================================
# PARAMETER EXTRACTION
# =============================================================================

def extract_category(text: str) -> Optional[str]:
    q = text.lower()
    for pattern, category in _CATEGORY_RES:
        if pattern.search(q):
            return category
    return None


def extract_period(text: str) -> Optional[str]:
    q = text.lower()
    for pattern, period in PERIOD_PATTERNS:
        if pattern.search(q):
            return period
    match = PAST_PERIOD_RE.search(q)
    if match:
        return f"past_{match.group(1)}_{match.group(2)}s"
    return None


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def extract_merchant(text: str) -> Optional[str]:
    """
    Best-effort merchant/item from narrated text.

    "at X" / "from X" first, then "for X just now", then the looser
    "for/on/was X" forms with time and meal words dropped, then a short
    list of well-known merchants.
    """
    match = AT_FROM_RE.search(text)
    if match:
        return _capitalize(match.group(1))

    match = FOR_BEFORE_TIME_RE.search(text)
    if match:
        return _capitalize(match.group(1).lower())

    for pattern in FOR_ON_WAS_RE:
        match = pattern.search(text)
        if match:
            words = [w for w in match.group(1).lower().split() if w not in MERCHANT_FILLER]
            if words:
                return _capitalize(" ".join(words))

    q = text.lower()
    for merchant in KNOWN_MERCHANTS:
        if merchant in q:
            return _capitalize(merchant)
    return None


def extract_symbol(text: str) -> Optional[str]:
    for candidate in TICKER_RE.findall(text):
        if candidate not in NOT_TICKERS:
            return candidate
    q = text.lower()
    for name, symbol in COMPANY_SYMBOLS.items():
        if re.search(rf"\b{name}\b", q):
            return symbol
    return None


def extract_date(text: str) -> str:
    q = text.lower()
    if "today" in q:
        return "today"
    if "yesterday" in q:
        return "yesterday"
    match = SHORT_DATE_RE.search(q)
    if match:
        return match.group(1)
    return "today"


# =============================================================================
# ROUTER
# =============================================================================

class IntentRouter:
    """
    Regex/keyword classifier for user messages.

    Rules are tried in a fixed order and the first hit wins:
    empty, help, share trade, narrated purchase, balance, bare net worth,
    spending, budget, portfolio, net worth, small talk, any finance word,
    and finally unsupported.
    """

    def classify(self, text: Any) -> Intent:
        """Classify one message. Never raises."""
        try:
            return self._classify(text)
        except Exception as e:
            logger.error("intent_classification_failed", error=str(e))
            return self._unsupported(Confidence.LOW)

    def _classify(self, text: Any) -> Intent:
        raw = "" if text is None else str(text).strip()
        q = raw.lower()

        if not q:
            return Intent(
                type=IntentType.UNSUPPORTED,
                confidence=Confidence.HIGH,
                needs_ai=False,
                direct_response=EMPTY_RESPONSE,
            )

        if HELP_RE.match(q):
            return Intent(
                type=IntentType.SIMPLE_QUERY,
                confidence=Confidence.HIGH,
                needs_ai=False,
                direct_response=HELP_RESPONSE,
            )

        if PORTFOLIO_LOG_RE.search(q):
            shares = SHARES_RE.search(q)
            return Intent(
                type=IntentType.PORTFOLIO_LOG,
                confidence=Confidence.HIGH,
                needs_ai=True,
                params=IntentParams(
                    amount=float(shares.group(1)) if shares else None,
                    symbol=extract_symbol(raw),
                    date=extract_date(raw),
                ),
            )

        amount = AMOUNT_RE.search(q)
        if amount and LOG_VERB_RE.search(q):
            return Intent(
                type=IntentType.TRANSACTION_LOG,
                confidence=Confidence.HIGH,
                needs_ai=True,
                params=IntentParams(
                    amount=float(amount.group(1)),
                    merchant=extract_merchant(raw),
                    category=extract_category(raw),
                    date=extract_date(raw),
                ),
            )

        if BALANCE_RE.search(q) and not SPEND_WORDS_RE.search(q):
            return Intent(
                type=IntentType.SIMPLE_QUERY,
                confidence=Confidence.MEDIUM,
                needs_ai=True,
                params=IntentParams(query_type="balance"),
            )

        if BARE_NET_WORTH_RE.match(q):
            return Intent(
                type=IntentType.NET_WORTH_QUERY,
                confidence=Confidence.HIGH,
                needs_ai=False,
                direct_response=NET_WORTH_DIRECT,
            )

        if SPENDING_RE.search(q):
            category = extract_category(raw)
            return Intent(
                type=IntentType.SPENDING_QUERY,
                confidence=Confidence.HIGH if category else Confidence.MEDIUM,
                needs_ai=True,
                params=IntentParams(category=category, period=extract_period(raw)),
            )

        if BUDGET_RE.search(q):
            return Intent(
                type=IntentType.BUDGET_QUERY,
                confidence=Confidence.HIGH,
                needs_ai=True,
                params=IntentParams(
                    category=extract_category(raw),
                    period=extract_period(raw),
                ),
            )

        if PORTFOLIO_RE.search(q):
            return Intent(
                type=IntentType.PORTFOLIO_QUERY,
                confidence=Confidence.HIGH,
                needs_ai=True,
                params=IntentParams(symbol=extract_symbol(raw)),
            )

        if NET_WORTH_RE.search(q):
            period = extract_period(raw)
            # Comparing against a period needs the model; a plain question does not
            return Intent(
                type=IntentType.NET_WORTH_QUERY,
                confidence=Confidence.HIGH,
                needs_ai=period is not None,
                params=IntentParams(period=period),
                direct_response=None if period else NET_WORTH_DIRECT,
            )

        if NON_FINANCIAL_RE.search(q):
            return self._unsupported(Confidence.HIGH)

        if FINANCIAL_KEYWORDS_RE.search(q):
            return Intent(
                type=IntentType.SPENDING_QUERY,
                confidence=Confidence.LOW,
                needs_ai=True,
            )

        return self._unsupported(Confidence.MEDIUM)

    @staticmethod
    def _unsupported(confidence: Confidence) -> Intent:
        return Intent(
            type=IntentType.UNSUPPORTED,
            confidence=confidence,
            needs_ai=False,
            direct_response=UNSUPPORTED_RESPONSE,
        )
