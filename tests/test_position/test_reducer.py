"""Tests for risk-driven position reduction."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from conftest import BASE_TUNABLES, NOW, MemoryKeyValueStore, make_fee_row, make_snapshot

from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.exceptions import PartialFillError
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.execution.coordinator import OrderCoordinator
from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.models import PairOrder, Side
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.notify.rate_limiter import AlertKind
from hedgekeeper.position.reducer import PositionReducer
from hedgekeeper.position.sizing import QuantitySizer
from hedgekeeper.tunables import TunableParams, parse_tunables


def _make_reducer(
    venues: VenueSet,
    registry: TokenRegistry,
    kv: MemoryKeyValueStore,
    keys: CacheKeys,
) -> tuple[PositionReducer, AsyncMock, AsyncMock]:
    coordinator = AsyncMock(spec=OrderCoordinator)
    alerts = AsyncMock(spec=AlertService)
    reducer = PositionReducer(
        venues,
        registry,
        MarketDataCache(kv, keys, clock=lambda: NOW),
        QuantitySizer(venues, registry),
        coordinator,
        alerts,
        usd_per_order=Decimal("200"),
    )
    return reducer, coordinator, alerts


def _make_books(kv: MemoryKeyValueStore, keys: CacheKeys, token: str) -> None:
    """A quotes 100 / 100.1 and B quotes 99.7 / 99.8, so each closing direction has an edge."""
    kv.put_book(keys, "A", f"{token}USDT", "100", "100.1")
    kv.put_book(keys, "B", f"{token}USDT", "99.7", "99.8")


class TestLossFirstSelection:
    @pytest.mark.asyncio
    async def test_pair_held_against_funding_selected(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        """A positive total earns with the base long; holding the base short is losing."""
        memory_kv.put_book(keys, "A", "BTCUSDT", "99.9", "100")
        memory_kv.put_book(keys, "B", "BTCUSDT", "100.2", "100.3")
        _make_books(memory_kv, keys, "ETH")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "-10", "B": "10"}, "ETH": {"A": "10", "B": "-10"}})
        rows = [make_fee_row("BTC", "A", "B", "8"), make_fee_row("ETH", "A", "B", "8")]

        orders = await reducer.select(snapshot, rows, params)

        assert orders == [
            PairOrder(
                token="BTC",
                base_exchange="A",
                base_symbol="BTC/USDT:USDT",
                quote_exchange="B",
                quote_symbol="BTC/USDT:USDT",
                side=Side.LONG,
                quantity=Decimal("2"),
                reduce_only=True,
                reason="decrease",
            )
        ]

    @pytest.mark.asyncio
    async def test_banned_token_counts_as_losing(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
    ) -> None:
        params = parse_tunables(dict(BASE_TUNABLES) | {"TOKEN_BANNED_LIST": "eth", "MAX_REDUCE_POSITION_COUNTER": "0"})
        _make_books(memory_kv, keys, "ETH")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"ETH": {"A": "10", "B": "-10"}})

        orders = await reducer.select(snapshot, [make_fee_row("ETH", "A", "B", "8")], params)

        assert [(o.token, o.side) for o in orders] == [("ETH", Side.SHORT)]


class TestProfitRankedSelection:
    @pytest.mark.asyncio
    async def test_smallest_differential_first_up_to_cap(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
    ) -> None:
        params = parse_tunables(dict(BASE_TUNABLES) | {"MAX_REDUCE_POSITION_COUNTER": "1"})
        _make_books(memory_kv, keys, "BTC")
        _make_books(memory_kv, keys, "ETH")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "10", "B": "-10"}, "ETH": {"A": "10", "B": "-10"}})
        rows = [make_fee_row("BTC", "A", "B", "8"), make_fee_row("ETH", "A", "B", "2")]

        orders = await reducer.select(snapshot, rows, params)

        assert len(orders) == 1
        assert (orders[0].token, orders[0].side, orders[0].quantity) == ("ETH", Side.SHORT, Decimal("2"))

    @pytest.mark.asyncio
    async def test_price_delta_below_minimum_skips(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        memory_kv.put_book(keys, "A", "BTCUSDT", "100", "100.1")
        memory_kv.put_book(keys, "B", "BTCUSDT", "100", "100.1")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "10", "B": "-10"}})

        assert await reducer.select(snapshot, [make_fee_row("BTC", "A", "B", "8")], params) == []

    @pytest.mark.asyncio
    async def test_same_sign_legs_skipped(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        _make_books(memory_kv, keys, "BTC")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "10", "B": "5"}})

        assert await reducer.select(snapshot, [make_fee_row("BTC", "A", "B", "8")], params) == []


class TestSizing:
    @pytest.mark.asyncio
    async def test_percent_scales_and_skips_delta_check(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        memory_kv.put_book(keys, "A", "BTCUSDT", "99.9", "100")
        memory_kv.put_book(keys, "B", "BTCUSDT", "99.9", "100")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "-30", "B": "30"}})
        rows = [make_fee_row("BTC", "A", "B", "8")]

        [order] = await reducer.select(snapshot, rows, params, percent=Decimal("0.2"))

        assert order.quantity == Decimal("6")

    @pytest.mark.asyncio
    async def test_out_of_range_percent_ignored(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        memory_kv.put_book(keys, "A", "BTCUSDT", "99.9", "100")
        memory_kv.put_book(keys, "B", "BTCUSDT", "99.9", "100")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "-30", "B": "30"}})
        rows = [make_fee_row("BTC", "A", "B", "8")]

        assert await reducer.select(snapshot, rows, params, percent=Decimal("0.5")) == []

    @pytest.mark.asyncio
    async def test_small_leg_closed_entirely(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        memory_kv.put_book(keys, "A", "BTCUSDT", "99.9", "100")
        memory_kv.put_book(keys, "B", "BTCUSDT", "100.2", "100.3")
        reducer, _, _ = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "-3", "B": "1.5"}})

        [order] = await reducer.select(snapshot, [make_fee_row("BTC", "A", "B", "8")], params)

        assert order.quantity == Decimal("1.5")


class TestDecrease:
    @pytest.mark.asyncio
    async def test_executes_and_reports(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        _make_books(memory_kv, keys, "BTC")
        reducer, coordinator, alerts = _make_reducer(venues, registry, memory_kv, keys)
        snapshot = make_snapshot({"BTC": {"A": "10", "B": "-10"}})

        fired = await reducer.decrease(snapshot, [make_fee_row("BTC", "A", "B", "8")], params)

        assert fired is True
        coordinator.execute_pair.assert_awaited_once()
        assert alerts.send.await_args.args[0].startswith("Decrease\nBTC A:SHORT B:LONG 2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("percent", "kind"),
        [(None, AlertKind.NO_DECREASE), (Decimal("0.1"), AlertKind.NO_DECREASE_PERCENT)],
    )
    async def test_no_candidates_alerts(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
        percent: Decimal | None,
        kind: AlertKind,
    ) -> None:
        reducer, coordinator, alerts = _make_reducer(venues, registry, memory_kv, keys)

        fired = await reducer.decrease(make_snapshot({}), [], params, percent)

        assert fired is False
        coordinator.execute_pair.assert_not_awaited()
        assert alerts.alert.await_args.args[0] is kind

    @pytest.mark.asyncio
    async def test_partial_fill_propagates(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        params: TunableParams,
    ) -> None:
        _make_books(memory_kv, keys, "BTC")
        reducer, coordinator, alerts = _make_reducer(venues, registry, memory_kv, keys)
        coordinator.execute_pair.side_effect = PartialFillError(
            "leg failed", failed_exchange="B", filled_exchange="A"
        )

        with pytest.raises(PartialFillError):
            await reducer.decrease(
                make_snapshot({"BTC": {"A": "10", "B": "-10"}}),
                [make_fee_row("BTC", "A", "B", "8")],
                params,
            )
        alerts.send.assert_not_awaited()
