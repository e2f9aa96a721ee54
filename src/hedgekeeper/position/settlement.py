"""Profit locking on hedged pairs.

For each token held with opposite signs on two venues, the engine checks
whether the live spread for closing the pair clears the dynamic bar from
hedgekeeper.position.thresholds. Accepted pairs are trimmed by a USD-sized
quantity, never more than half of the smaller leg, up to a per-cycle cap.
Evaluation is read-only and runs concurrently; acceptance follows token
order then venue-pair order so the same snapshot always picks the same
pairs.
"""

import asyncio
import time
from collections.abc import Callable
from decimal import Decimal

from hedgekeeper.config import KeeperSettings
from hedgekeeper.data.store import PositionOpenStore
from hedgekeeper.exceptions import OrderExecutionError
from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.execution.coordinator import OrderCoordinator
from hedgekeeper.logging import get_logger
from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.market_data.price_delta import live_price_delta
from hedgekeeper.models import (
    ExchangePosition,
    FundingFeeRow,
    PairOrder,
    RiskSnapshot,
    TokenPositionRow,
)
from hedgekeeper.notify.alerts import AlertService
from hedgekeeper.position.sizing import QuantitySizer
from hedgekeeper.position.thresholds import funding_cost_bps, settlement_threshold
from hedgekeeper.tunables import TunableParams

logger = get_logger(__name__)


class SettlementEngine:
    """Evaluates and fires profit-lock orders.

    Args:
        venues: Ordered venue set.
        registry: Chain token mapping.
        market_data: Order book and index price source.
        sizer: Shared quantity filter resolver.
        coordinator: Order placement.
        alerts: Batch report sink.
        open_store: Per-pair holding clock.
        settings: Sizing, cap and window settings.
        clock: Returns current epoch seconds.
    """

    def __init__(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        market_data: MarketDataCache,
        sizer: QuantitySizer,
        coordinator: OrderCoordinator,
        alerts: AlertService,
        open_store: PositionOpenStore,
        settings: KeeperSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._venues = venues
        self._registry = registry
        self._market_data = market_data
        self._sizer = sizer
        self._coordinator = coordinator
        self._alerts = alerts
        self._open_store = open_store
        self._settings = settings or KeeperSettings()
        self._clock = clock

    async def select(
        self, snapshot: RiskSnapshot, rows: list[FundingFeeRow], params: TunableParams
    ) -> list[PairOrder]:
        by_pair = {(r.token, r.base_exchange, r.quote_exchange): r for r in rows}
        now_ms = int(self._clock() * 1000)
        await self._reset_clocks(snapshot)

        evaluations = [
            self._evaluate(
                token_row,
                base,
                quote,
                by_pair.get((token_row.token, base.name, quote.name)),
                params,
                now_ms,
            )
            for token_row in snapshot.tokens.values()
            for base, quote in self._venues.pairs()
        ]
        results = await asyncio.gather(*evaluations)
        accepted = [order for order in results if order is not None]

        limit = self._settings.settlement_taker_limit
        if len(accepted) > limit:
            logger.info("settlement_cap_reached", candidates=len(accepted), limit=limit)
        return accepted[:limit]

    async def run(
        self, snapshot: RiskSnapshot, rows: list[FundingFeeRow], params: TunableParams
    ) -> list[PairOrder]:
        """Select and execute profit-lock orders; returns those executed."""
        orders = await self.select(snapshot, rows, params)
        if not orders:
            return []

        try:
            await asyncio.gather(*(self._coordinator.execute_pair(o) for o in orders))
        except OrderExecutionError:
            logger.error("settlement_batch_failed", orders=len(orders))
            raise
        except Exception as e:
            logger.error("settlement_batch_failed", orders=len(orders), error=str(e))
            raise OrderExecutionError(f"Settlement batch failed: {e}") from e

        lines = [
            f"{o.token} {o.base_exchange}:{o.side.value} "
            f"{o.quote_exchange}:{o.side.opposite.value} {o.quantity}"
            for o in orders
        ]
        logger.info("settlement_fired", orders=lines)
        await self._alerts.send("Settlement\n" + "\n".join(lines))
        return orders

    async def _evaluate(
        self,
        token_row: TokenPositionRow,
        base: ExchangeAdapter,
        quote: ExchangeAdapter,
        fee_row: FundingFeeRow | None,
        params: TunableParams,
        now_ms: int,
    ) -> PairOrder | None:
        legs = _opposite_legs(token_row, base.name, quote.name)
        if legs is None:
            return None
        base_position, quote_position = legs

        token = token_row.token
        base_book = self._registry.orderbook_symbol(base, token)
        quote_book = self._registry.orderbook_symbol(quote, token)
        base_symbol = self._registry.exchange_symbol(base, token)
        quote_symbol = self._registry.exchange_symbol(quote, token)
        if None in (base_book, quote_book, base_symbol, quote_symbol):
            logger.error("settlement_symbol_unresolved", token=token)
            return None

        side = base_position.side.opposite
        delta = await live_price_delta(
            self._market_data,
            side,
            base.name,
            base_book,  # type: ignore[arg-type]
            quote.name,
            quote_book,  # type: ignore[arg-type]
        )
        if delta is None:
            return None

        cost = (
            funding_cost_bps(fee_row, base_position.side, self._settings.funding_bias_window_hours)
            if fee_row is not None
            else Decimal("0")
        )
        hold_ms = await self._hold_ms(token, base.name, quote.name, now_ms)
        near_funding = self._near_funding(fee_row, now_ms)
        required = settlement_threshold(Decimal(hold_ms), cost, params, near_funding)

        if delta < required:
            logger.debug(
                "settlement_below_threshold",
                token=token,
                base_exchange=base.name,
                quote_exchange=quote.name,
                delta=str(delta),
                required=str(required),
            )
            return None

        price = await self._market_data.first_index_price([base, quote], self._registry, token)
        if price is None:
            logger.warning("settlement_skipped_no_index_price", token=token)
            return None

        quantity = self._settings.usd_per_order / price
        half_leg = min(abs(base_position.amount), abs(quote_position.amount)) / 2
        quantity = min(quantity, half_leg)
        quantity = await self._sizer.snap(token, quantity, [base, quote])
        if quantity == 0:
            logger.info("settlement_skipped_zero_quantity", token=token)
            return None

        logger.info(
            "settlement_accepted",
            token=token,
            base_exchange=base.name,
            quote_exchange=quote.name,
            side=side.value,
            quantity=str(quantity),
            delta=str(delta),
            required=str(required),
            hold_ms=hold_ms,
            funding_cost_bps=str(cost),
        )
        return PairOrder(
            token=token,
            base_exchange=base.name,
            base_symbol=base_symbol,  # type: ignore[arg-type]
            quote_exchange=quote.name,
            quote_symbol=quote_symbol,  # type: ignore[arg-type]
            side=side,
            quantity=quantity,
            reduce_only=True,
            reason="settlement",
        )

    async def _reset_clocks(self, snapshot: RiskSnapshot) -> None:
        """Forget open times of pairs that no longer hold opposite legs."""
        tokens = dict.fromkeys([*self._registry.tokens, *snapshot.tokens])
        unhedged = [
            (token, base.name, quote.name)
            for token in tokens
            for base, quote in self._venues.pairs()
            if snapshot.tokens.get(token) is None
            or _opposite_legs(snapshot.tokens[token], base.name, quote.name) is None
        ]
        await asyncio.gather(*(self._clear_clock(*pair) for pair in unhedged))

    async def _clear_clock(self, token: str, base: str, quote: str) -> None:
        if await self._open_store.get_opened_at(token, base, quote) is None:
            return
        await self._open_store.clear(token, base, quote)
        logger.info("holding_clock_cleared", token=token, base_exchange=base, quote_exchange=quote)

    async def _hold_ms(self, token: str, base: str, quote: str, now_ms: int) -> int:
        """Holding duration; zero when no open time is recorded."""
        opened_at = await self._open_store.get_opened_at(token, base, quote)
        if opened_at is None:
            if self._settings.record_open_times:
                await self._open_store.mark_opened(token, base, quote, now_ms)
            return 0
        return max(0, now_ms - opened_at)

    def _near_funding(self, fee_row: FundingFeeRow | None, now_ms: int) -> bool:
        if fee_row is None or fee_row.next_funding_time is None:
            return False
        window_ms = self._settings.extreme_window_minutes * 60 * 1000
        return 0 <= fee_row.next_funding_time - now_ms <= window_ms


def _opposite_legs(
    token_row: TokenPositionRow, base: str, quote: str
) -> tuple[ExchangePosition, ExchangePosition] | None:
    """The pair's two positions when they have opposite signs."""
    base_position = token_row.position(base)
    quote_position = token_row.position(quote)
    if base_position is None or quote_position is None:
        return None
    if base_position.amount * quote_position.amount >= 0:
        return None
    return base_position, quote_position
