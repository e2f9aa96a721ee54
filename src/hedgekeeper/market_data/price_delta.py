"""Executable cross-venue price edge for closing or locking a pair.

For side LONG (buy base, sell quote) the edge is what the quote bid pays
over the base ask; for SHORT it is the base bid over the quote ask. Both
are normalised by the mid of the two prices and expressed in basis points.
"""

from decimal import Decimal

from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.models import OrderBook, Side

_BPS = Decimal("10000")


def compute_price_delta(
    side: Side,
    base_bid: Decimal,
    base_ask: Decimal,
    quote_bid: Decimal,
    quote_ask: Decimal,
) -> Decimal | None:
    """Price delta in bps, or None when the denominator vanishes."""
    if side is Side.LONG:
        sell, buy = quote_bid, base_ask
    else:
        sell, buy = base_bid, quote_ask
    denominator = sell + buy
    if denominator == 0:
        return None
    return (sell - buy) / denominator * 2 * _BPS


def price_delta_from_books(side: Side, base: OrderBook, quote: OrderBook) -> Decimal | None:
    if None in (base.best_bid, base.best_ask, quote.best_bid, quote.best_ask):
        return None
    return compute_price_delta(
        side,
        base.best_bid,  # type: ignore[arg-type]
        base.best_ask,  # type: ignore[arg-type]
        quote.best_bid,  # type: ignore[arg-type]
        quote.best_ask,  # type: ignore[arg-type]
    )


async def live_price_delta(
    cache: MarketDataCache,
    side: Side,
    base_exchange: str,
    base_symbol: str,
    quote_exchange: str,
    quote_symbol: str,
) -> Decimal | None:
    """Price delta from the cached books; None if either book is missing, stale or one-sided."""
    base = await cache.get_order_book(base_exchange, base_symbol)
    if base is None:
        return None
    quote = await cache.get_order_book(quote_exchange, quote_symbol)
    if quote is None:
        return None
    return price_delta_from_books(side, base, quote)
