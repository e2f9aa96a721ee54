"""Shared test fixtures for the hedge keeper."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from hedgekeeper.config import AppSettings, ExchangeSettings, KeeperSettings, VenueSettings
from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.data.store import KeyValueStore
from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.models import (
    DecreaseSignal,
    ExchangeAccount,
    ExchangePosition,
    ExchangeRiskInfo,
    FundingFeeRow,
    OrderStatus,
    QtyFilter,
    RiskSnapshot,
    TokenPositionRow,
)
from hedgekeeper.tunables import TunableParams

NOW = 1_700_000_000.0  # fixed epoch seconds for cache clocks

BASE_TUNABLES = {
    "PAUSE": "0",
    "SHARES": "10000",
    "REBALANCE_MAX_USD_AMOUNT": "1000",
    "DECREASE_PRICE_DELTA_BPS": "5",
    "MAX_REDUCE_POSITION_COUNTER": "2",
    "SETTLEMENT_PRICE_DELTA_BPS_MIN": "5",
    "SETTLEMENT_PRICE_DELTA_BPS_MAX": "20",
    "SETTLEMENT_PRICE_DELTA_TOLERATE_BPS": "5",
    "SETTLEMENT_HOLD_MAX_HOURS": "72",
    "SETTLEMENT_FUNDING_FEE_MAX_BAD_BPS": "1",
    "SETTLEMENT_FUNDING_FEE_EXTREME_BAD_BPS": "5",
    "REDUCE_ONLY": "1",
    "TOKEN_BANNED_LIST": "",
    "A_MARGIN_RATIO_1": "0.3",
    "A_MARGIN_RATIO_2": "0.5",
    "A_MARGIN_RATIO_3": "0.7",
}


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed KeyValueStore without expiry."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def put_book(self, keys: CacheKeys, exchange: str, symbol: str, bid: str, ask: str,
                 updatetime: float = NOW) -> None:
        self.data[keys.orderbook(exchange, symbol)] = json.dumps(
            {"updatetime": updatetime, "bids": [[bid, "10"]], "asks": [[ask, "10"]]}
        )

    def put_index(self, keys: CacheKeys, exchange: str, symbol: str, price: str) -> None:
        self.data[keys.market_price(exchange, symbol)] = json.dumps({"indexPrice": price})


@pytest.fixture
def mock_settings() -> AppSettings:
    """AppSettings with two test venues."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(
            venues=[
                VenueSettings(name="A", ccxt_id="binanceusdm"),
                VenueSettings(name="B", ccxt_id="bybit"),
            ]
        ),
        keeper=KeeperSettings(project="test"),
    )


@pytest.fixture
def params() -> TunableParams:
    from hedgekeeper.tunables import parse_tunables

    return parse_tunables(dict(BASE_TUNABLES))


@pytest.fixture
def keys() -> CacheKeys:
    return CacheKeys("KV")


@pytest.fixture
def memory_kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


def make_adapter(name: str, qty_filter: QtyFilter | None = None) -> AsyncMock:
    """Mock ExchangeAdapter with USDT-settled symbol conventions."""
    adapter = AsyncMock(spec=ExchangeAdapter)
    adapter.name = name
    adapter.orderbook_symbol.side_effect = lambda token: f"{token}USDT"
    adapter.exchange_symbol.side_effect = lambda token: f"{token}/USDT:USDT"
    adapter.exchange_token.side_effect = lambda symbol: symbol.split("/")[0]
    adapter.get_qty_filter.return_value = qty_filter or QtyFilter(
        min_qty=Decimal("0.001"), step_size=Decimal("0.001")
    )
    adapter.place_market_order.return_value = f"{name}-order"
    adapter.query_order.return_value = OrderStatus(
        order_id=f"{name}-order", status="closed", is_completed=True
    )
    adapter.is_decrease.return_value = DecreaseSignal.NONE
    return adapter


@pytest.fixture
def adapters() -> list[AsyncMock]:
    return [make_adapter("A"), make_adapter("B"), make_adapter("C")]


@pytest.fixture
def venues(adapters: list[AsyncMock]) -> VenueSet:
    return VenueSet(adapters)


@pytest.fixture
def registry() -> TokenRegistry:
    rows = []
    for token in ("BTC", "ETH"):
        for exchange in ("A", "B", "C"):
            rows.append((token, exchange, token))
    return TokenRegistry(rows)


@pytest.fixture
def adapter_factory():  # type: ignore[no-untyped-def]
    return make_adapter


def make_snapshot(
    amounts: dict[str, dict[str, str]],
    equities: dict[str, str] | None = None,
    names: tuple[str, ...] = ("A", "B", "C"),
) -> RiskSnapshot:
    """Snapshot from {token: {venue: signed amount}}; notionals are left at zero."""
    tokens = {}
    for token, by_venue in amounts.items():
        positions: dict[str, ExchangePosition | None] = {name: None for name in names}
        for name, amount in by_venue.items():
            positions[name] = ExchangePosition(
                exchange=name,
                symbol=f"{token}/USDT:USDT",
                exchange_token=token,
                leverage=5,
                amount=Decimal(amount),
            )
        tokens[token] = TokenPositionRow(token=token, positions=positions)
    equities = equities or {}
    accounts = {
        name: ExchangeAccount(exchange=name, total_equity=Decimal(equities.get(name, "0")))
        for name in names
    }
    return RiskSnapshot(
        accounts=accounts,
        total_equity=sum((a.total_equity for a in accounts.values()), Decimal("0")),
        total_positive_notional=Decimal("0"),
        tokens=tokens,
        exchange_risk={name: ExchangeRiskInfo(exchange=name) for name in names},
    )


def make_fee_row(
    token: str, base: str, quote: str, total: str, next_funding_time: int | None = None
) -> FundingFeeRow:
    return FundingFeeRow(
        token=token,
        base_exchange=base,
        quote_exchange=quote,
        base_apr=Decimal("0"),
        quote_apr=Decimal("0"),
        total=Decimal(total),
        next_funding_time=next_funding_time,
    )
