"""Abstract venue adapter interface.

Defines the contract for all venue implementations. Aggregation, decision
and execution code depends only on this interface, keeping venue-specific
details isolated in the concrete implementation.

Two symbol spaces exist per venue: the orderbook symbol used by the
market-data cache keys (e.g. "BTCUSDT") and the exchange symbol used for
every trading call. Both derive from the venue-local token.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING

from hedgekeeper.models import (
    DecreaseSignal,
    ExchangeAccount,
    ExchangePosition,
    FundingRate,
    OrderStatus,
    QtyFilter,
    RiskSnapshot,
    Side,
)

if TYPE_CHECKING:
    from hedgekeeper.tunables import TunableParams


class ExchangeAdapter(ABC):
    """Abstract base class for venue adapters."""

    name: str

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources."""
        ...

    @abstractmethod
    def orderbook_symbol(self, exchange_token: str) -> str:
        """Symbol used in market-data cache keys."""
        ...

    @abstractmethod
    def exchange_symbol(self, exchange_token: str) -> str:
        """Symbol used for trading calls."""
        ...

    @abstractmethod
    def exchange_token(self, exchange_symbol: str) -> str:
        """Venue-local token of a trading symbol."""
        ...

    @abstractmethod
    async def get_account_info(self) -> ExchangeAccount:
        """Fetch equity and margin fractions."""
        ...

    @abstractmethod
    async def get_positions(self) -> list[ExchangePosition]:
        """Fetch open positions with signed amounts."""
        ...

    @abstractmethod
    async def ensure_leverage(self, symbol: str, leverage: int) -> None:
        """Set the symbol's leverage."""
        ...

    @abstractmethod
    async def get_qty_filter(self, symbol: str) -> QtyFilter | None:
        """Quantity constraints for a symbol, or None if unknown."""
        ...

    @abstractmethod
    async def place_market_order(
        self, symbol: str, side: Side, quantity: Decimal, reduce_only: bool
    ) -> str:
        """Submit a market order and return its order id."""
        ...

    @abstractmethod
    async def query_order(self, symbol: str, order_id: str) -> OrderStatus:
        """Fetch an order's status."""
        ...

    @abstractmethod
    async def get_current_funding_fee(self, symbol: str) -> FundingRate | None:
        """Current funding rate and next settlement time."""
        ...

    @abstractmethod
    async def get_symbol_interval(self, symbol: str) -> int | None:
        """Funding interval in hours, or None if unknown."""
        ...

    def is_decrease(self, snapshot: RiskSnapshot, params: TunableParams) -> DecreaseSignal:
        """Decrease request from this venue's margin fraction.

        Above ratio 3 asks for a percent decrease, above ratio 2 for a
        funding-driven decrease. Venues without ratios never ask.
        """
        account = snapshot.accounts.get(self.name)
        ratios = params.margin_ratios_for(self.name)
        if account is None or ratios is None:
            return DecreaseSignal.NONE
        _, ratio_2, ratio_3 = ratios
        if account.margin_fraction > ratio_3:
            return DecreaseSignal.DECREASE_PERCENT
        if account.margin_fraction > ratio_2:
            return DecreaseSignal.DECREASE
        return DecreaseSignal.NONE
