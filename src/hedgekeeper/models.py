"""Shared data models for the hedge keeper.

CRITICAL: All monetary values use Decimal. Never use float for prices, quantities, or notionals.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Side(str, Enum):
    """Order / position direction."""

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "Side":
        return Side.SHORT if self is Side.LONG else Side.LONG

    @classmethod
    def of_amount(cls, amount: Decimal) -> "Side":
        """Side of a signed position amount; zero counts as SHORT."""
        return cls.LONG if amount > 0 else cls.SHORT

    @classmethod
    def for_funding_total(cls, total: Decimal) -> "Side":
        """Base-leg side that earns funding for a pair's annualized differential."""
        return cls.LONG if total > 0 else cls.SHORT


class DecreaseSignal(int, Enum):
    """Risk-driven decrease request raised by a venue adapter."""

    NONE = 0
    DECREASE = 2
    DECREASE_PERCENT = 3


@dataclass
class ExchangeAccount:
    """Account summary for one venue."""

    exchange: str
    total_equity: Decimal
    margin_fraction: Decimal = Decimal("0")  # maintenance margin / equity
    initial_margin_fraction: Decimal = Decimal("0")


@dataclass
class ExchangePosition:
    """An open perpetual position on one venue. Amount is signed (negative = short)."""

    exchange: str
    symbol: str
    exchange_token: str
    leverage: int
    amount: Decimal
    notional: Decimal = Decimal("0")  # signed, filled in by the risk aggregator

    @property
    def side(self) -> Side:
        return Side.of_amount(self.amount)


@dataclass
class ExchangeRiskInfo:
    """Per-venue notional exposure summary."""

    exchange: str
    positive_notional: Decimal = Decimal("0")
    negative_notional: Decimal = Decimal("0")
    total_notional: Decimal = Decimal("0")  # signed: positive + negative
    position_counter: int = 0

    @property
    def gross_notional(self) -> Decimal:
        return self.positive_notional - self.negative_notional


@dataclass
class TokenPositionRow:
    """One chain token across all venues, positions keyed by venue in configured order."""

    token: str
    positions: dict[str, ExchangePosition | None]
    token_notional: Decimal = Decimal("0")

    def position(self, exchange: str) -> ExchangePosition | None:
        return self.positions.get(exchange)


@dataclass
class RiskSnapshot:
    """Aggregated account, position and exposure state for one cycle."""

    accounts: dict[str, ExchangeAccount]
    total_equity: Decimal
    total_positive_notional: Decimal
    tokens: dict[str, TokenPositionRow]
    exchange_risk: dict[str, ExchangeRiskInfo]


@dataclass
class FundingRate:
    """Current funding rate for a venue symbol."""

    rate: Decimal
    next_funding_time: int  # Unix milliseconds


@dataclass
class FundingFeeRow:
    """Annualized funding differential for a token on an ordered venue pair.

    Values are annualized percentages: total = (base_apr - quote_apr) * 100.
    """

    token: str
    base_exchange: str
    quote_exchange: str
    base_apr: Decimal
    quote_apr: Decimal
    total: Decimal
    next_funding_time: int | None = None  # nearer of the two venues, Unix ms


@dataclass
class QtyFilter:
    """Venue quantity constraints for a symbol."""

    min_qty: Decimal
    step_size: Decimal


@dataclass
class OrderBook:
    """Top-of-book view decoded from the cache. updated_at is epoch seconds."""

    updated_at: Decimal
    bids: list[tuple[Decimal, Decimal]] = field(default_factory=list)
    asks: list[tuple[Decimal, Decimal]] = field(default_factory=list)

    @property
    def best_bid(self) -> Decimal | None:
        return self.bids[0][0] if self.bids else None

    @property
    def best_ask(self) -> Decimal | None:
        return self.asks[0][0] if self.asks else None


@dataclass
class OrderStatus:
    """Result of querying an order."""

    order_id: str
    status: str
    is_completed: bool
    filled_qty: Decimal = Decimal("0")


@dataclass
class PairOrder:
    """Two-leg corrective order. The quote leg trades the opposite side."""

    token: str
    base_exchange: str
    base_symbol: str
    quote_exchange: str
    quote_symbol: str
    side: Side
    quantity: Decimal
    reduce_only: bool = True
    reason: str = ""


@dataclass
class SingleOrder:
    """Single-leg corrective order (rebalance)."""

    token: str
    exchange: str
    symbol: str
    side: Side
    quantity: Decimal
    reduce_only: bool = True
