"""Risk-driven position reduction.

Invoked when a venue's margin usage asks for a decrease. Selection runs in
two phases:

1. Loss-first: every hedged pair held against its funding row's earning
   side (or whose token is on the deny-list) becomes a candidate.
2. Profit-ranked: only when phase 1 found nothing, pairs are tried from the
   smallest |funding differential| upward until the per-cycle cap is hit,
   giving up the least valuable carry first.

Without a percent, each candidate must also clear the minimum decrease
price delta. With a percent, margin pressure is high enough that the
spread is not checked.
"""

import asyncio
from decimal import Decimal

from hedgekeeper.exceptions import OrderExecutionError
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.execution.coordinator import OrderCoordinator
from hedgekeeper.logging import get_logger
from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.market_data.price_delta import live_price_delta
from hedgekeeper.models import FundingFeeRow, PairOrder, RiskSnapshot, Side, TokenPositionRow
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.notify.rate_limiter import AlertKind
from hedgekeeper.position.sizing import QuantitySizer
from hedgekeeper.tunables import TunableParams

logger = get_logger(__name__)

MAX_DECREASE_PERCENT = Decimal("0.2")


class PositionReducer:
    """Selects and executes two-leg reductions.

    Args:
        venues: Ordered venue set.
        registry: Chain token mapping.
        market_data: Order book source.
        sizer: Shared quantity filter resolver.
        coordinator: Order placement.
        alerts: Batch report and no-decrease alert sink.
        usd_per_order: Default order size in USD.
    """

    def __init__(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        market_data: MarketDataCache,
        sizer: QuantitySizer,
        coordinator: OrderCoordinator,
        alerts: AlertService,
        usd_per_order: Decimal = Decimal("200"),
    ) -> None:
        self._venues = venues
        self._registry = registry
        self._market_data = market_data
        self._sizer = sizer
        self._coordinator = coordinator
        self._alerts = alerts
        self._usd_per_order = usd_per_order

    async def select(
        self,
        snapshot: RiskSnapshot,
        rows: list[FundingFeeRow],
        params: TunableParams,
        percent: Decimal | None = None,
    ) -> list[PairOrder]:
        """Candidate orders from the loss-first pass, else the profit-ranked pass."""
        percent = _valid_percent(percent)
        candidates: list[PairOrder] = []

        for token, token_row in snapshot.tokens.items():
            for row in rows:
                if row.token != token or not self._is_losing(token_row, row, params):
                    continue
                order = await self._build(token_row, row, params, percent)
                if order is not None:
                    candidates.append(order)

        if candidates:
            logger.info("decrease_loss_first_selected", count=len(candidates))
            return candidates

        cap = params.max_reduce_position_counter
        for row in sorted(rows, key=lambda r: abs(r.total)):
            if len(candidates) >= cap:
                break
            token_row = snapshot.tokens.get(row.token)
            if token_row is None:
                continue
            order = await self._build(token_row, row, params, percent)
            if order is not None:
                candidates.append(order)

        logger.info("decrease_profit_ranked_selected", count=len(candidates), cap=cap)
        return candidates

    async def decrease(
        self,
        snapshot: RiskSnapshot,
        rows: list[FundingFeeRow],
        params: TunableParams,
        percent: Decimal | None = None,
    ) -> bool:
        """Select and execute reductions. Returns True if orders were placed."""
        orders = await self.select(snapshot, rows, params, percent)
        if not orders:
            kind = AlertKind.NO_DECREASE_PERCENT if percent else AlertKind.NO_DECREASE
            logger.warning("no_decrease_possible", percent=str(percent) if percent else None)
            await self._alerts.alert(
                kind,
                f"No decrease possible (percent={percent if percent else 'none'}): "
                "no pair cleared the reduction checks",
            )
            return False

        try:
            await asyncio.gather(*(self._coordinator.execute_pair(o) for o in orders))
        except OrderExecutionError:
            logger.error("decrease_batch_failed", orders=len(orders))
            raise
        except Exception as e:
            logger.error("decrease_batch_failed", orders=len(orders), error=str(e))
            raise OrderExecutionError(f"Decrease batch failed: {e}") from e

        lines = [_describe(o) for o in orders]
        logger.info("decrease_fired", orders=lines)
        await self._alerts.send("Decrease\n" + "\n".join(lines))
        return True

    def _is_losing(self, token_row: TokenPositionRow, row: FundingFeeRow, params: TunableParams) -> bool:
        base = token_row.position(row.base_exchange)
        quote = token_row.position(row.quote_exchange)
        if base is None or quote is None:
            return False
        if params.is_banned(row.token):
            return True
        return base.side is not Side.for_funding_total(row.total)

    async def _build(
        self,
        token_row: TokenPositionRow,
        row: FundingFeeRow,
        params: TunableParams,
        percent: Decimal | None,
    ) -> PairOrder | None:
        base_position = token_row.position(row.base_exchange)
        quote_position = token_row.position(row.quote_exchange)
        if base_position is None or quote_position is None:
            return None
        if base_position.amount * quote_position.amount >= 0:
            return None

        base = self._venues.get(row.base_exchange)
        quote = self._venues.get(row.quote_exchange)
        if base is None or quote is None:
            return None
        token = token_row.token
        base_book = self._registry.orderbook_symbol(base, token)
        quote_book = self._registry.orderbook_symbol(quote, token)
        base_symbol = self._registry.exchange_symbol(base, token)
        quote_symbol = self._registry.exchange_symbol(quote, token)
        if None in (base_book, quote_book, base_symbol, quote_symbol):
            logger.error("decrease_symbol_unresolved", token=token)
            return None

        side = base_position.side.opposite
        book = await self._market_data.get_order_book(base.name, base_book)  # type: ignore[arg-type]
        if book is None:
            logger.info("decrease_skipped_no_orderbook", token=token, exchange=base.name)
            return None
        # closing a long sells into bids, closing a short buys from asks
        price = book.best_bid if side is Side.SHORT else book.best_ask
        if price is None or not price.is_finite() or price <= 0:
            logger.info("decrease_skipped_invalid_price", token=token, exchange=base.name)
            return None

        if percent is None:
            delta = await live_price_delta(
                self._market_data,
                side,
                base.name,
                base_book,  # type: ignore[arg-type]
                quote.name,
                quote_book,  # type: ignore[arg-type]
            )
            if delta is None or delta < params.decrease_price_delta_bps:
                logger.info(
                    "decrease_skipped_price_delta",
                    token=token,
                    base_exchange=base.name,
                    quote_exchange=quote.name,
                    delta=str(delta),
                    required=str(params.decrease_price_delta_bps),
                )
                return None

        quantity = self._usd_per_order / price
        if percent is not None:
            scaled = min(
                abs(base_position.amount) * percent,
                params.rebalance_max_usd_amount / price,
            )
            quantity = max(quantity, scaled)

        smaller_leg = min(abs(base_position.amount), abs(quote_position.amount))
        if quantity * 2 > smaller_leg:
            quantity = smaller_leg

        quantity = await self._sizer.snap(token, quantity, [base, quote])
        if quantity == 0:
            logger.info("decrease_skipped_zero_quantity", token=token)
            return None

        return PairOrder(
            token=token,
            base_exchange=base.name,
            base_symbol=base_symbol,  # type: ignore[arg-type]
            quote_exchange=quote.name,
            quote_symbol=quote_symbol,  # type: ignore[arg-type]
            side=side,
            quantity=quantity,
            reduce_only=True,
            reason="decrease",
        )


def _valid_percent(percent: Decimal | None) -> Decimal | None:
    if percent is None:
        return None
    if 0 < percent <= MAX_DECREASE_PERCENT:
        return percent
    logger.warning("decrease_percent_ignored", percent=str(percent))
    return None


def _describe(order: PairOrder) -> str:
    return (
        f"{order.token} {order.base_exchange}:{order.side.value} "
        f"{order.quote_exchange}:{order.side.opposite.value} {order.quantity}"
    )
