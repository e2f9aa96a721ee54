"""Keeps every open position at the target leverage. Best effort: failures are logged."""

from hedgekeeper.exchange.venues import TokenRegistry, VenueSet
from hedgekeeper.logging import get_logger
from hedgekeeper.models import RiskSnapshot

logger = get_logger(__name__)


class LeverageSynchronizer:
    def __init__(self, venues: VenueSet, registry: TokenRegistry, target_leverage: int = 5) -> None:
        self._venues = venues
        self._registry = registry
        self._target = target_leverage

    async def sync(self, snapshot: RiskSnapshot) -> int:
        """Adjust mismatched positions. Returns the number of leverage changes made."""
        changed = 0
        for row in snapshot.tokens.values():
            for name, position in row.positions.items():
                if position is None or position.leverage == self._target:
                    continue
                adapter = self._venues.get(name)
                symbol = self._registry.exchange_symbol(adapter, row.token) if adapter else None
                if adapter is None or symbol is None:
                    logger.error("leverage_symbol_unresolved", exchange=name, token=row.token)
                    continue
                try:
                    await adapter.ensure_leverage(symbol, self._target)
                except Exception:
                    logger.warning(
                        "leverage_update_failed",
                        exchange=name,
                        symbol=symbol,
                        exc_info=True,
                    )
                    continue
                changed += 1
                logger.info(
                    "leverage_updated",
                    exchange=name,
                    symbol=symbol,
                    previous=position.leverage,
                    leverage=self._target,
                )
        return changed
