"""Shared quantity filter for orders spanning several venues.

All calculations use Decimal arithmetic exclusively -- no float conversions.
A corrective trade moves the same quantity on more than one venue, so it
must satisfy the coarsest constraints among them: the largest min_qty and
the largest step_size.
"""

import asyncio
from decimal import Decimal

from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.exchange.types import merge_qty_filters, snap_quantity
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.logging import get_logger
from hedgekeeper.models import QtyFilter

logger = get_logger(__name__)

_MIN_VALID_VENUES = 2


class QuantitySizer:
    """Resolves shared filters and snaps quantities onto them.

    Args:
        venues: Ordered venue set, used when no explicit venues are given.
        registry: Chain token mapping.
    """

    def __init__(self, venues: VenueSet, registry: TokenRegistry) -> None:
        self._venues = venues
        self._registry = registry

    async def shared_filter(
        self, token: str, adapters: list[ExchangeAdapter] | None = None
    ) -> QtyFilter | None:
        """Coarsest filter across the venues, or None with fewer than two valid ones."""
        adapters = adapters if adapters is not None else list(self._venues)
        filters = await asyncio.gather(*(self._venue_filter(a, token) for a in adapters))
        valid = [f for f in filters if f is not None and f.step_size > 0]
        if len(valid) < min(_MIN_VALID_VENUES, len(adapters)) or not valid:
            logger.warning("qty_filter_unavailable", token=token, valid=len(valid))
            return None
        return merge_qty_filters(valid)

    async def snap(
        self, token: str, quantity: Decimal, adapters: list[ExchangeAdapter] | None = None
    ) -> Decimal:
        """Snap onto the shared filter; zero when no filter resolves."""
        qty_filter = await self.shared_filter(token, adapters)
        if qty_filter is None:
            return Decimal("0")
        return snap_quantity(quantity, qty_filter)

    async def _venue_filter(self, adapter: ExchangeAdapter, token: str) -> QtyFilter | None:
        symbol = self._registry.exchange_symbol(adapter, token)
        if symbol is None:
            return None
        try:
            return await adapter.get_qty_filter(symbol)
        except Exception:
            logger.warning(
                "qty_filter_fetch_failed",
                exchange=adapter.name,
                symbol=symbol,
                exc_info=True,
            )
            return None
