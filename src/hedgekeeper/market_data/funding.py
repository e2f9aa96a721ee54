"""Cross-venue funding differential table.

Each venue's current rate is annualized as rate * (365 * 24) / interval_hours,
so venues settling every 1h, 4h or 8h compare on one scale. For every token
and every venue pair (i < j in configured order) the row total is
(base_apr - quote_apr) * 100, an annualized percentage. Side.for_funding_total
gives the base-leg side that earns on a row; a pair held the other way
round is losing funding.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal

from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.logging import get_logger
from hedgekeeper.models import FundingFeeRow

logger = get_logger(__name__)

_HOURS_PER_YEAR = Decimal(365 * 24)


@dataclass
class _VenueFunding:
    apr: Decimal
    next_funding_time: int


def annualize(rate: Decimal, interval_hours: int | None) -> Decimal:
    """Annualized fraction for a per-interval rate; zero when the interval is unknown."""
    if not interval_hours:
        return Decimal("0")
    return rate * _HOURS_PER_YEAR / Decimal(interval_hours)


class FundingFeeAggregator:
    """Builds the per-cycle funding differential table.

    Args:
        venues: Ordered venue set.
        registry: Chain token to venue symbol mapping.
    """

    def __init__(self, venues: VenueSet, registry: TokenRegistry) -> None:
        self._venues = venues
        self._registry = registry

    async def build(self, tokens: list[str] | None = None) -> list[FundingFeeRow]:
        """Rows for every token and venue pair, sorted by descending |total|."""
        tokens = tokens if tokens is not None else self._registry.tokens
        per_token = await asyncio.gather(*(self._venue_funding(token) for token in tokens))

        rows: list[FundingFeeRow] = []
        for token, funding in zip(tokens, per_token):
            for base, quote in self._venues.pairs():
                base_funding = funding.get(base.name)
                quote_funding = funding.get(quote.name)
                if base_funding is None or quote_funding is None:
                    continue
                rows.append(
                    FundingFeeRow(
                        token=token,
                        base_exchange=base.name,
                        quote_exchange=quote.name,
                        base_apr=base_funding.apr,
                        quote_apr=quote_funding.apr,
                        total=(base_funding.apr - quote_funding.apr) * 100,
                        next_funding_time=_nearer(
                            base_funding.next_funding_time, quote_funding.next_funding_time
                        ),
                    )
                )

        rows.sort(key=lambda row: abs(row.total), reverse=True)
        logger.debug("funding_rows_built", tokens=len(tokens), rows=len(rows))
        return rows

    async def _venue_funding(self, token: str) -> dict[str, _VenueFunding]:
        adapters = list(self._venues)
        fetched = await asyncio.gather(*(self._fetch(adapter, token) for adapter in adapters))
        return {
            adapter.name: funding
            for adapter, funding in zip(adapters, fetched)
            if funding is not None
        }

    async def _fetch(self, adapter: ExchangeAdapter, token: str) -> _VenueFunding | None:
        symbol = self._registry.exchange_symbol(adapter, token)
        if symbol is None:
            return None
        try:
            fee = await adapter.get_current_funding_fee(symbol)
            interval = await adapter.get_symbol_interval(symbol) if fee else None
        except Exception:
            logger.warning(
                "funding_fetch_failed",
                exchange=adapter.name,
                token=token,
                exc_info=True,
            )
            return None
        if fee is None:
            return None
        return _VenueFunding(
            apr=annualize(fee.rate, interval),
            next_funding_time=fee.next_funding_time,
        )


def _nearer(first: int, second: int) -> int | None:
    candidates = [t for t in (first, second) if t > 0]
    return min(candidates) if candidates else None
