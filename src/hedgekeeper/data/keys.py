"""Cache key shapes shared with the market-data feed."""


class CacheKeys:
    """Builds namespaced cache keys. Exchange and symbol parts are upper-cased."""

    def __init__(self, namespace: str = "KV") -> None:
        self._ns = namespace

    def orderbook(self, exchange: str, symbol: str) -> str:
        return f"{self._ns}:{exchange.upper()}:FUTUREU:ORDERBOOK:{symbol.upper()}"

    def market_price(self, exchange: str, symbol: str) -> str:
        return f"{self._ns}:{exchange.upper()}:MARKETPRICE:{symbol.upper()}"

    def config(self, project: str) -> str:
        return f"{self._ns}:CONFIG:{project.upper()}"

    def position_open(self, token: str, base_exchange: str, quote_exchange: str) -> str:
        return (
            f"{self._ns}:POSITION_OPEN:{token.upper()}:"
            f"{base_exchange.upper()}:{quote_exchange.upper()}"
        )
