"""Tests for cached order book and index price reads."""

from decimal import Decimal

import pytest
from conftest import NOW, MemoryKeyValueStore

from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.market_data.book_cache import MarketDataCache


def _make_cache(kv: MemoryKeyValueStore, keys: CacheKeys) -> MarketDataCache:
    return MarketDataCache(kv, keys, stale_after=5.0, clock=lambda: NOW)


class TestGetOrderBook:
    @pytest.mark.asyncio
    async def test_fresh_book_decoded(self, memory_kv: MemoryKeyValueStore, keys: CacheKeys) -> None:
        memory_kv.put_book(keys, "A", "BTCUSDT", "100.5", "100.6", updatetime=NOW - 2)
        book = await _make_cache(memory_kv, keys).get_order_book("A", "BTCUSDT")
        assert book is not None
        assert book.best_bid == Decimal("100.5")
        assert book.best_ask == Decimal("100.6")
        assert book.bids == [(Decimal("100.5"), Decimal("10"))]

    @pytest.mark.asyncio
    async def test_stale_book_is_absent(self, memory_kv: MemoryKeyValueStore, keys: CacheKeys) -> None:
        """A book written ten seconds ago is treated as missing."""
        memory_kv.put_book(keys, "A", "BTCUSDT", "100.5", "100.6", updatetime=NOW - 10)
        assert await _make_cache(memory_kv, keys).get_order_book("A", "BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_book_at_boundary_is_fresh(self, memory_kv: MemoryKeyValueStore, keys: CacheKeys) -> None:
        memory_kv.put_book(keys, "A", "BTCUSDT", "1", "2", updatetime=NOW - 5)
        assert await _make_cache(memory_kv, keys).get_order_book("A", "BTCUSDT") is not None

    @pytest.mark.asyncio
    async def test_missing_key(self, memory_kv: MemoryKeyValueStore, keys: CacheKeys) -> None:
        assert await _make_cache(memory_kv, keys).get_order_book("A", "BTCUSDT") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "blob",
        [
            "{not json",
            "[1, 2]",
            '{"bids": [], "asks": []}',
            '{"updatetime": "NaN", "bids": [], "asks": []}',
            f'{{"updatetime": {NOW}, "bids": [["x", "1"]], "asks": []}}',
            f'{{"updatetime": {NOW}, "bids": [["1"]], "asks": []}}',
        ],
    )
    async def test_invalid_blobs(
        self, memory_kv: MemoryKeyValueStore, keys: CacheKeys, blob: str
    ) -> None:
        memory_kv.data[keys.orderbook("A", "BTCUSDT")] = blob
        assert await _make_cache(memory_kv, keys).get_order_book("A", "BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_one_sided_book(self, memory_kv: MemoryKeyValueStore, keys: CacheKeys) -> None:
        memory_kv.data[keys.orderbook("A", "BTCUSDT")] = (
            f'{{"updatetime": {NOW}, "bids": [["100", "1"]], "asks": []}}'
        )
        book = await _make_cache(memory_kv, keys).get_order_book("A", "BTCUSDT")
        assert book is not None
        assert book.best_ask is None


class TestIndexPrice:
    @pytest.mark.asyncio
    async def test_reads_index_price(self, memory_kv: MemoryKeyValueStore, keys: CacheKeys) -> None:
        memory_kv.put_index(keys, "A", "BTCUSDT", "65000.5")
        assert await _make_cache(memory_kv, keys).get_index_price("A", "BTCUSDT") == Decimal("65000.5")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", ["0", "-1", "abc"])
    async def test_non_positive_or_garbage(
        self, memory_kv: MemoryKeyValueStore, keys: CacheKeys, price: str
    ) -> None:
        memory_kv.put_index(keys, "A", "BTCUSDT", price)
        assert await _make_cache(memory_kv, keys).get_index_price("A", "BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_first_index_price_follows_venue_order(
        self,
        memory_kv: MemoryKeyValueStore,
        keys: CacheKeys,
        venues: VenueSet,
        registry: TokenRegistry,
    ) -> None:
        memory_kv.put_index(keys, "B", "BTCUSDT", "200")
        memory_kv.put_index(keys, "C", "BTCUSDT", "300")
        cache = _make_cache(memory_kv, keys)
        assert await cache.first_index_price(list(venues), registry, "BTC") == Decimal("200")
        assert await cache.first_index_price(list(venues), registry, "DOGE") is None
