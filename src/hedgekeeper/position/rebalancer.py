"""Restores long/short balance per token across venues.

Every token's summed long size should match its summed short size. When
they differ, the excess is trimmed with one reduce-only market order on
the first venue, in configured order, holding the heavier side. The order
is capped by a USD budget and by that venue's own position so a venue's
sign never flips.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal

from hedgekeeper.exceptions import OrderExecutionError
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.execution.coordinator import OrderCoordinator
from hedgekeeper.logging import get_logger
from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.models import RiskSnapshot, Side, SingleOrder, TokenPositionRow
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.position.sizing import QuantitySizer
from hedgekeeper.tunables import TunableParams

logger = get_logger(__name__)


@dataclass
class PositionBalance:
    long_size: Decimal
    short_size: Decimal  # magnitude
    first_long: str | None
    first_short: str | None


def summarize_positions(row: TokenPositionRow) -> PositionBalance:
    """Sum long and short magnitudes, remembering the first venue on each side."""
    long_size = Decimal("0")
    short_size = Decimal("0")
    first_long: str | None = None
    first_short: str | None = None
    for name, position in row.positions.items():
        if position is None or position.amount == 0:
            continue
        if position.amount > 0:
            long_size += position.amount
            first_long = first_long or name
        else:
            short_size += -position.amount
            first_short = first_short or name
    return PositionBalance(long_size, short_size, first_long, first_short)


class Rebalancer:
    """Plans and fires single-leg rebalance orders.

    Args:
        venues: Ordered venue set.
        registry: Chain token mapping.
        market_data: Index price source.
        sizer: Shared quantity filter resolver.
        coordinator: Order placement.
        alerts: Batch report sink.
    """

    def __init__(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        market_data: MarketDataCache,
        sizer: QuantitySizer,
        coordinator: OrderCoordinator,
        alerts: AlertService,
    ) -> None:
        self._venues = venues
        self._registry = registry
        self._market_data = market_data
        self._sizer = sizer
        self._coordinator = coordinator
        self._alerts = alerts

    async def plan(self, snapshot: RiskSnapshot, params: TunableParams) -> list[SingleOrder]:
        plans = await asyncio.gather(
            *(self._plan_token(row, params) for row in snapshot.tokens.values())
        )
        return [order for order in plans if order is not None]

    async def rebalance(self, snapshot: RiskSnapshot, params: TunableParams) -> bool:
        """Fire every needed rebalance order. Returns True if any order was placed."""
        orders = await self.plan(snapshot, params)
        if not orders:
            return False

        try:
            await asyncio.gather(*(self._coordinator.execute_single(o) for o in orders))
        except Exception as e:
            logger.error("rebalance_batch_failed", error=str(e), orders=len(orders))
            raise OrderExecutionError(f"Rebalance batch failed: {e}") from e

        lines = [
            f"{o.token} {o.exchange} {o.side.value} {o.quantity}" for o in orders
        ]
        logger.info("rebalance_fired", orders=lines)
        await self._alerts.send("Rebalance\n" + "\n".join(lines))
        return True

    async def _plan_token(self, row: TokenPositionRow, params: TunableParams) -> SingleOrder | None:
        balance = summarize_positions(row)
        if balance.long_size > balance.short_size:
            diff = balance.long_size - balance.short_size
            side, exchange = Side.SHORT, balance.first_long
        elif balance.short_size > balance.long_size:
            diff = balance.short_size - balance.long_size
            side, exchange = Side.LONG, balance.first_short
        else:
            return None
        if exchange is None:
            return None
        position = row.positions.get(exchange)
        if position is None:
            return None

        price = await self._market_data.first_index_price(
            list(self._venues), self._registry, row.token
        )
        if price is None:
            logger.warning("rebalance_skipped_no_index_price", token=row.token)
            return None

        max_quantity = params.rebalance_max_usd_amount / price
        quantity = min(diff, max_quantity, abs(position.amount))
        quantity = await self._sizer.snap(row.token, quantity)
        if quantity == 0:
            logger.info(
                "rebalance_skipped_zero_quantity", token=row.token, imbalance=str(diff)
            )
            return None

        adapter = self._venues.get(exchange)
        symbol = self._registry.exchange_symbol(adapter, row.token) if adapter else None
        if symbol is None:
            logger.error("rebalance_symbol_unresolved", token=row.token, exchange=exchange)
            return None

        logger.info(
            "rebalance_planned",
            token=row.token,
            exchange=exchange,
            side=side.value,
            quantity=str(quantity),
            long_size=str(balance.long_size),
            short_size=str(balance.short_size),
        )
        return SingleOrder(
            token=row.token,
            exchange=exchange,
            symbol=symbol,
            side=side,
            quantity=quantity,
            reduce_only=True,
        )
