"""Order book and index price reads from the shared market-data cache.

The external feed writes JSON blobs; this service decodes them and applies
the staleness rule. Every failure mode (missing key, bad JSON, non-finite
timestamp, stale book) yields None rather than raising.
"""

import json
import time
from decimal import Decimal, InvalidOperation

from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.data.store import KeyValueStore
from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.exchange.venues import TokenRegistry
from hedgekeeper.logging import get_logger
from hedgekeeper.models import OrderBook

logger = get_logger(__name__)


def _to_decimal(value: object) -> Decimal | None:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    return result if result.is_finite() else None


def _decode_levels(raw: object) -> list[tuple[Decimal, Decimal]] | None:
    if not isinstance(raw, list):
        return None
    levels = []
    for level in raw:
        if not isinstance(level, (list, tuple)) or len(level) < 2:
            return None
        price, size = _to_decimal(level[0]), _to_decimal(level[1])
        if price is None or size is None:
            return None
        levels.append((price, size))
    return levels


class MarketDataCache:
    """Reads cached order books and index prices.

    Args:
        kv: Shared key-value store.
        keys: Cache key builder.
        stale_after: Maximum book age in seconds.
        clock: Returns current epoch seconds.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        keys: CacheKeys,
        stale_after: float = 5.0,
        clock=time.time,  # type: ignore[no-untyped-def]
    ) -> None:
        self._kv = kv
        self._keys = keys
        self._stale_after = stale_after
        self._clock = clock

    async def get_order_book(self, exchange: str, symbol: str) -> OrderBook | None:
        """Decoded book, or None when missing, invalid, or older than stale_after."""
        blob = await self._kv.get(self._keys.orderbook(exchange, symbol))
        if blob is None:
            return None
        try:
            data = json.loads(blob)
        except json.JSONDecodeError:
            logger.warning("orderbook_invalid_json", exchange=exchange, symbol=symbol)
            return None
        if not isinstance(data, dict):
            return None

        updated_at = _to_decimal(data.get("updatetime"))
        if updated_at is None:
            logger.warning("orderbook_invalid_updatetime", exchange=exchange, symbol=symbol)
            return None

        age = Decimal(str(self._clock())) - updated_at
        if age > Decimal(str(self._stale_after)):
            logger.warning(
                "orderbook_stale",
                exchange=exchange,
                symbol=symbol,
                age_seconds=str(age),
            )
            return None

        bids = _decode_levels(data.get("bids", []))
        asks = _decode_levels(data.get("asks", []))
        if bids is None or asks is None:
            logger.warning("orderbook_invalid_levels", exchange=exchange, symbol=symbol)
            return None
        return OrderBook(updated_at=updated_at, bids=bids, asks=asks)

    async def get_index_price(self, exchange: str, symbol: str) -> Decimal | None:
        blob = await self._kv.get(self._keys.market_price(exchange, symbol))
        if blob is None:
            return None
        try:
            data = json.loads(blob)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        price = _to_decimal(data.get("indexPrice"))
        if price is None or price <= 0:
            return None
        return price

    async def first_index_price(
        self, venues: list[ExchangeAdapter], registry: TokenRegistry, token: str
    ) -> Decimal | None:
        """Index price from the first venue, in the given order, that has one."""
        for adapter in venues:
            symbol = registry.orderbook_symbol(adapter, token)
            if symbol is None:
                continue
            price = await self.get_index_price(adapter.name, symbol)
            if price is not None:
                return price
        return None
