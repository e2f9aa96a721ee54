"""Corrective order placement and completion polling.

Two-leg orders submit the base leg at the requested side and the quote leg
at the opposite side concurrently via asyncio.gather, which keeps the
window of one-sided exposure as short as the venues allow. Each leg is
then polled until it reaches a terminal status or the poll budget runs out.

There is no compensation on partial failure: a leg that completes while
its partner fails is reported as PartialFillError and the resulting
imbalance is left to the next cycle's rebalance pass.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from decimal import Decimal

from hedgekeeper.config import ExecutionSettings
from hedgekeeper.exceptions import OrderExecutionError, OrderTimeoutError, PartialFillError
from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.exchange.venues import VenueSet
from hedgekeeper.logging import get_logger
from hedgekeeper.models import OrderStatus, PairOrder, Side, SingleOrder

logger = get_logger(__name__)


class OrderCoordinator:
    """Places market orders and waits for them to complete.

    Args:
        venues: Venue set used to resolve adapters by name.
        settings: Delay, jitter and poll budget.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        venues: VenueSet,
        settings: ExecutionSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._venues = venues
        self._settings = settings or ExecutionSettings()
        self._sleep = sleep

    async def execute_single(self, order: SingleOrder) -> OrderStatus:
        adapter = self._adapter(order.exchange)
        return await self._place_and_wait(
            adapter, order.symbol, order.side, order.quantity, order.reduce_only
        )

    async def execute_pair(self, order: PairOrder) -> tuple[OrderStatus, OrderStatus]:
        """Submit both legs concurrently and wait for both.

        Raises:
            PartialFillError: Exactly one leg failed.
            OrderExecutionError: Both legs failed.
        """
        base = self._adapter(order.base_exchange)
        quote = self._adapter(order.quote_exchange)

        logger.info(
            "pair_order_submitting",
            token=order.token,
            base_exchange=order.base_exchange,
            quote_exchange=order.quote_exchange,
            side=order.side.value,
            quantity=str(order.quantity),
            reason=order.reason,
        )

        results = await asyncio.gather(
            self._place_and_wait(
                base, order.base_symbol, order.side, order.quantity, order.reduce_only
            ),
            self._place_and_wait(
                quote, order.quote_symbol, order.side.opposite, order.quantity, order.reduce_only
            ),
            return_exceptions=True,
        )
        base_result, quote_result = results

        base_failed = isinstance(base_result, BaseException)
        quote_failed = isinstance(quote_result, BaseException)
        if base_failed and quote_failed:
            logger.error(
                "pair_order_failed",
                token=order.token,
                base_error=str(base_result),
                quote_error=str(quote_result),
            )
            raise OrderExecutionError(
                f"Both legs failed for {order.token}: {base_result}; {quote_result}"
            ) from base_result  # type: ignore[misc]
        if base_failed or quote_failed:
            failed, filled = (
                (order.base_exchange, order.quote_exchange)
                if base_failed
                else (order.quote_exchange, order.base_exchange)
            )
            error = base_result if base_failed else quote_result
            logger.critical(
                "pair_order_partial_fill",
                token=order.token,
                failed_exchange=failed,
                filled_exchange=filled,
                quantity=str(order.quantity),
                error=str(error),
            )
            raise PartialFillError(
                f"One leg failed for {order.token} on {failed}: {error}",
                failed_exchange=failed,
                filled_exchange=filled,
            ) from error  # type: ignore[misc]

        return base_result, quote_result  # type: ignore[return-value]

    async def _place_and_wait(
        self,
        adapter: ExchangeAdapter,
        symbol: str,
        side: Side,
        quantity: Decimal,
        reduce_only: bool,
    ) -> OrderStatus:
        order_id = await adapter.place_market_order(symbol, side, quantity, reduce_only)
        logger.info(
            "order_placed",
            exchange=adapter.name,
            symbol=symbol,
            side=side.value,
            quantity=str(quantity),
            order_id=order_id,
        )

        await self._sleep(self._settings.initial_delay + random.uniform(0, self._settings.jitter))

        status: OrderStatus | None = None
        for attempt in range(self._settings.max_polls):
            status = await adapter.query_order(symbol, order_id)
            if status.is_completed:
                logger.info(
                    "order_completed",
                    exchange=adapter.name,
                    symbol=symbol,
                    order_id=order_id,
                    status=status.status,
                    attempts=attempt + 1,
                )
                return status
            await self._sleep(self._settings.poll_interval)

        raise OrderTimeoutError(
            f"Order {order_id} on {adapter.name} {symbol} not completed after "
            f"{self._settings.max_polls} polls (last status: {status.status if status else 'unknown'})"
        )

    def _adapter(self, name: str) -> ExchangeAdapter:
        adapter = self._venues.get(name)
        if adapter is None:
            raise OrderExecutionError(f"Unknown venue: {name}")
        return adapter
