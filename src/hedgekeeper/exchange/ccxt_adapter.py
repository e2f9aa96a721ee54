"""Venue adapter implementation via ccxt async.

Wraps any ccxt.async_support derivatives exchange with market loading,
quantity filter extraction, margin-fraction computation and async cleanup.

Quantities on the adapter surface are in base units. ccxt sizes swap orders,
positions and amount limits in contracts, so they are scaled by the
market's contractSize on the way in and out.
"""

import re
from decimal import Decimal

import ccxt.async_support as ccxt_async

from hedgekeeper.config import VenueSettings
from hedgekeeper.exceptions import AdapterError
from hedgekeeper.exchange.adapter import ExchangeAdapter
from hedgekeeper.logging import get_logger
from hedgekeeper.models import (
    ExchangeAccount,
    ExchangePosition,
    FundingRate,
    OrderStatus,
    QtyFilter,
    Side,
)

logger = get_logger(__name__)

_COMPLETED_STATUSES = frozenset({"closed", "canceled", "expired", "rejected"})
_INTERVAL_PATTERN = re.compile(r"^(\d+)h$")


def _dec(value: object) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _contract_size(entry: dict | None) -> Decimal:
    """Base units per contract; linear markets without one count as 1."""
    size = _dec((entry or {}).get("contractSize"))
    return size if size > 0 else Decimal("1")


class CcxtExchangeAdapter(ExchangeAdapter):
    """Concrete venue adapter on a ccxt async exchange instance."""

    def __init__(self, settings: VenueSettings, exchange: ccxt_async.Exchange | None = None) -> None:
        self._settings = settings
        self.name = settings.name.upper()

        if exchange is None:
            exchange_class = getattr(ccxt_async, settings.ccxt_id, None)
            if exchange_class is None:
                raise AdapterError(f"Unknown ccxt exchange id: {settings.ccxt_id}")
            config: dict = {
                "apiKey": settings.api_key.get_secret_value(),
                "secret": settings.api_secret.get_secret_value(),
                "enableRateLimit": True,
                "options": {"defaultType": "swap", **settings.options},
            }
            if settings.password is not None:
                config["password"] = settings.password.get_secret_value()
            exchange = exchange_class(config)

        self._exchange = exchange
        self._markets: dict = {}
        self._intervals: dict[str, int] = {}

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def connect(self) -> None:
        logger.info("connecting_to_venue", exchange=self.name, ccxt_id=self._settings.ccxt_id)
        self._markets = await self._exchange.load_markets()
        logger.info("venue_connected", exchange=self.name, market_count=len(self._markets))

    async def close(self) -> None:
        """Clean up ccxt async resources. Must be called to avoid leaking sessions."""
        await self._exchange.close()
        logger.info("venue_connection_closed", exchange=self.name)

    def orderbook_symbol(self, exchange_token: str) -> str:
        return f"{exchange_token.upper()}{self._settings.settle_asset}"

    def exchange_symbol(self, exchange_token: str) -> str:
        settle = self._settings.settle_asset
        return f"{exchange_token.upper()}/{settle}:{settle}"

    def exchange_token(self, exchange_symbol: str) -> str:
        market = self._markets.get(exchange_symbol)
        if market and market.get("base"):
            return str(market["base"]).upper()
        return exchange_symbol.split("/")[0].upper()

    async def get_account_info(self) -> ExchangeAccount:
        """Equity in the settle asset; margin fractions from summed position margins."""
        balance = await self._exchange.fetch_balance()
        equity = _dec(balance.get("total", {}).get(self._settings.settle_asset))
        positions = await self._exchange.fetch_positions()

        maintenance = sum((_dec(p.get("maintenanceMargin")) for p in positions), Decimal("0"))
        initial = sum((_dec(p.get("initialMargin")) for p in positions), Decimal("0"))

        if equity > 0:
            margin_fraction = maintenance / equity
            initial_fraction = initial / equity
        else:
            margin_fraction = Decimal("0")
            initial_fraction = Decimal("0")

        return ExchangeAccount(
            exchange=self.name,
            total_equity=equity,
            margin_fraction=margin_fraction,
            initial_margin_fraction=initial_fraction,
        )

    async def get_positions(self) -> list[ExchangePosition]:
        raw_positions = await self._exchange.fetch_positions()
        positions = []
        for raw in raw_positions:
            contracts = _dec(raw.get("contracts"))
            if contracts == 0:
                continue
            symbol = raw["symbol"]
            sizing = raw if raw.get("contractSize") else self._markets.get(symbol)
            size = abs(contracts) * _contract_size(sizing)
            amount = size if raw.get("side") == "long" else -size
            positions.append(
                ExchangePosition(
                    exchange=self.name,
                    symbol=symbol,
                    exchange_token=self.exchange_token(symbol),
                    leverage=int(_dec(raw.get("leverage"))),
                    amount=amount,
                )
            )
        return positions

    async def ensure_leverage(self, symbol: str, leverage: int) -> None:
        logger.info("setting_leverage", exchange=self.name, symbol=symbol, leverage=leverage)
        await self._exchange.set_leverage(leverage, symbol)

    async def get_qty_filter(self, symbol: str) -> QtyFilter | None:
        """Quantity constraints from cached market precision and limits."""
        market = await self._market(symbol)
        if not market:
            return None

        min_qty = market.get("limits", {}).get("amount", {}).get("min")
        step = market.get("precision", {}).get("amount")
        if step is None:
            return None
        contract_size = _contract_size(market)
        return QtyFilter(
            min_qty=_dec(min_qty) * contract_size, step_size=_dec(step) * contract_size
        )

    async def place_market_order(
        self, symbol: str, side: Side, quantity: Decimal, reduce_only: bool
    ) -> str:
        ccxt_side = "buy" if side is Side.LONG else "sell"
        logger.info(
            "creating_order",
            exchange=self.name,
            symbol=symbol,
            side=ccxt_side,
            quantity=str(quantity),
            reduce_only=reduce_only,
        )
        contracts = quantity / _contract_size(await self._market(symbol))
        order = await self._exchange.create_order(
            symbol, "market", ccxt_side, float(contracts), None, params={"reduceOnly": reduce_only}
        )
        return str(order["id"])

    async def query_order(self, symbol: str, order_id: str) -> OrderStatus:
        order = await self._exchange.fetch_order(order_id, symbol)
        status = str(order.get("status") or "").lower()
        return OrderStatus(
            order_id=order_id,
            status=status,
            is_completed=status in _COMPLETED_STATUSES,
            filled_qty=_dec(order.get("filled")),
        )

    async def get_current_funding_fee(self, symbol: str) -> FundingRate | None:
        data = await self._exchange.fetch_funding_rate(symbol)
        rate = data.get("fundingRate")
        if rate is None:
            return None
        self._remember_interval(symbol, data.get("interval"))
        next_time = data.get("nextFundingTimestamp") or data.get("fundingTimestamp") or 0
        return FundingRate(rate=_dec(rate), next_funding_time=int(next_time))

    async def get_symbol_interval(self, symbol: str) -> int | None:
        if symbol not in self._intervals:
            data = await self._exchange.fetch_funding_rate(symbol)
            self._remember_interval(symbol, data.get("interval"))
        return self._intervals.get(symbol, self._settings.default_funding_interval_hours)

    async def _market(self, symbol: str) -> dict | None:
        if not self._markets:
            self._markets = await self._exchange.load_markets()
        return self._markets.get(symbol)

    def _remember_interval(self, symbol: str, interval: object) -> None:
        if isinstance(interval, str):
            match = _INTERVAL_PATTERN.match(interval)
            if match:
                self._intervals[symbol] = int(match.group(1))
