"""Builds the per-cycle RiskSnapshot from every venue.

Account and position fetches fan out concurrently; any adapter failure
propagates and aborts the cycle. Positions are regrouped by chain token
into rows keyed by venue in configured order, then valued at the first
available index price.
"""

import asyncio
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.logging import get_logger
from hedgekeeper.market_data.book_cache import MarketDataCache
from hedgekeeper.models import (
    ExchangePosition,
    ExchangeRiskInfo,
    RiskSnapshot,
    TokenPositionRow,
)

logger = get_logger(__name__)

_CENTS = Decimal("0.01")


def position_notional(amount: Decimal, price: Decimal | None) -> Decimal:
    """Signed notional rounded to cents; zero without a price."""
    if price is None:
        return Decimal("0")
    value = abs(price * amount).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return value if amount > 0 else -value


class RiskAggregator:
    """Collects balances and positions into a RiskSnapshot.

    Args:
        venues: Ordered venue set.
        registry: Chain token mapping.
        market_data: Index price source.
    """

    def __init__(
        self,
        venues: VenueSet,
        registry: TokenRegistry,
        market_data: MarketDataCache,
    ) -> None:
        self._venues = venues
        self._registry = registry
        self._market_data = market_data

    async def build(self) -> RiskSnapshot:
        adapters = list(self._venues)
        accounts = await asyncio.gather(*(a.get_account_info() for a in adapters))
        positions = await asyncio.gather(*(a.get_positions() for a in adapters))

        total_equity = sum((account.total_equity for account in accounts), Decimal("0"))

        tokens: dict[str, TokenPositionRow] = {}
        for adapter, venue_positions in zip(adapters, positions):
            for position in venue_positions:
                token = self._registry.chain_token(adapter.name, position.exchange_token)
                if token is None:
                    logger.error(
                        "unmapped_position_token",
                        exchange=adapter.name,
                        exchange_token=position.exchange_token,
                        symbol=position.symbol,
                    )
                    continue
                row = tokens.get(token)
                if row is None:
                    row = TokenPositionRow(
                        token=token,
                        positions={name: None for name in self._venues.names},
                    )
                    tokens[token] = row
                row.positions[adapter.name] = position

        prices = await asyncio.gather(
            *(
                self._market_data.first_index_price(adapters, self._registry, token)
                for token in tokens
            )
        )

        exchange_risk = {name: ExchangeRiskInfo(exchange=name) for name in self._venues.names}
        total_positive = Decimal("0")
        for row, price in zip(tokens.values(), prices):
            if price is None:
                logger.warning("index_price_missing", token=row.token)
            for name, position in row.positions.items():
                if position is None:
                    continue
                valued = self._value(position, price)
                row.positions[name] = valued
                info = exchange_risk[name]
                if valued.notional > 0:
                    info.positive_notional += valued.notional
                    row.token_notional += valued.notional
                else:
                    info.negative_notional += valued.notional
                info.total_notional += valued.notional
                if valued.notional != 0:
                    info.position_counter += 1
            total_positive += row.token_notional

        snapshot = RiskSnapshot(
            accounts={account.exchange: account for account in accounts},
            total_equity=total_equity,
            total_positive_notional=total_positive,
            tokens=tokens,
            exchange_risk=exchange_risk,
        )
        logger.info(
            "risk_snapshot_built",
            total_equity=str(total_equity),
            tokens=len(tokens),
            total_positive_notional=str(total_positive),
        )
        return snapshot

    @staticmethod
    def _value(position: ExchangePosition, price: Decimal | None) -> ExchangePosition:
        return replace(position, notional=position_notional(position.amount, price))
