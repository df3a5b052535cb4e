"""Test doubles and fixture data shared by the test modules."""

from datetime import datetime
from typing import Any, Union

from src.config.settings import (
    ProviderName,
    TIER_LIMITS,
    Tier,
)
from src.models.finance import (
    Account,
    AccountKind,
    Debt,
    Fundamentals,
    Holding,
    Lot,
    LotSide,
    Portfolio,
    Quote,
    Transaction,
)
from src.models.provider import (
    ProviderRequest,
    ProviderResponse,
    TextBlock,
    ToolUseBlock,
    Usage,
)
from src.providers import ProviderGateway, RateLimiter, ResponseCache
from src.providers.base import ProviderClient
from src.services.storage import InMemoryFinanceStore


# Wednesday afternoon
NOW = datetime(2026, 3, 18, 14, 30)


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_800_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedClient(ProviderClient):
    """
    ProviderClient that replays a script instead of calling HTTP.

    Script entries are ProviderResponses to return or exceptions to raise.
    """

    provider = ProviderName.OPENAI
    endpoint = "/v1/chat/completions"

    def __init__(self, script: list[Union[ProviderResponse, Exception]], model: str = "gpt-4o-mini"):
        super().__init__(model=model, api_key="test-key", base_url="https://example.test")
        self.script = list(script)
        self.requests: list[ProviderRequest] = []

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {}

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        return {}

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        raise NotImplementedError

    async def complete(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        if not self.script:
            raise AssertionError("ScriptedClient ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def text_response(text: str, input_tokens: int = 10, output_tokens: int = 5) -> ProviderResponse:
    return ProviderResponse(
        content=[TextBlock(text=text)],
        usage=Usage(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def tool_response(*calls: tuple[str, str, dict]) -> ProviderResponse:
    return ProviderResponse(
        content=[ToolUseBlock(id=call_id, name=name, input=tool_input) for call_id, name, tool_input in calls],
        usage=Usage(input_tokens=20, output_tokens=8),
        stop_reason="tool_use",
    )


def make_gateway(
    client: ProviderClient,
    tier: Tier = Tier.FREE,
    unlimited: bool = False,
    clock: FakeClock = None,
) -> ProviderGateway:
    clock = clock or FakeClock()
    return ProviderGateway(
        client=client,
        rate_limiter=RateLimiter(TIER_LIMITS[tier], unlimited=unlimited, clock=clock),
        cache=ResponseCache(ttl_seconds=3600, max_entries=100, clock=clock),
    )


def build_store(**overrides) -> InMemoryFinanceStore:
    data = dict(
        transactions=[
            Transaction(id="t1", date=datetime(2026, 3, 2, 12, 15), amount=5.0,
                        category="Food", note="Pizza", account="Checking"),
            Transaction(id="t2", date=datetime(2026, 3, 10, 19, 0), amount=7.0,
                        category="Food", note="Sushi", account="Trust"),
            Transaction(id="t3", date=datetime(2026, 3, 12, 8, 45), amount=15.0,
                        category="Transport", note="Uber"),
            Transaction(id="t4", date=datetime(2026, 2, 20, 13, 0), amount=20.0,
                        category="Food", note="Pizza", account="Checking"),
        ],
        holdings=[
            Holding(symbol="AAPL", lots=[
                Lot(side=LotSide.BUY, qty=10, price=100.0, date=datetime(2025, 6, 1)),
            ]),
        ],
        quotes={"AAPL": Quote(symbol="AAPL", last=120.0)},
        accounts=[
            Account(name="Checking", kind=AccountKind.CHECKING, balance=2000.0),
            Account(name="Trust", kind=AccountKind.CREDIT, balance=300.0),
            Account(name="Brokerage", kind=AccountKind.INVESTMENT, balance=500.0),
        ],
        debts=[Debt(name="Car loan", balance=1000.0)],
        monthly_budget=500.0,
        portfolios=[Portfolio(id="p1", name="Main", cash=100.0, watchlist=["MSFT"])],
        fundamentals={
            "AAPL": Fundamentals(symbol="AAPL", company_name="Apple Inc.", sector="Technology",
                                 pe_ratio=28.5, market_cap=3.1e12),
        },
    )
    data.update(overrides)
    return InMemoryFinanceStore(**data)


