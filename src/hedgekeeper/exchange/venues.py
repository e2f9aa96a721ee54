"""Ordered venue set and chain-token symbol mapping."""

from collections.abc import Iterator

from hedgekeeper.data.store import TokenRepository
from hedgekeeper.exchange.adapter import ExchangeAdapter


class VenueSet:
    """Adapters in configured order. The order is the tie-break for "first venue" rules."""

    def __init__(self, adapters: list[ExchangeAdapter]) -> None:
        names = [adapter.name for adapter in adapters]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate venue names: {names}")
        self._adapters = list(adapters)
        self._by_name = {adapter.name: adapter for adapter in adapters}

    def __iter__(self) -> Iterator[ExchangeAdapter]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)

    @property
    def names(self) -> list[str]:
        return [adapter.name for adapter in self._adapters]

    def get(self, name: str) -> ExchangeAdapter | None:
        return self._by_name.get(name)

    def pairs(self) -> list[tuple[ExchangeAdapter, ExchangeAdapter]]:
        """Every unordered venue pair (i, j) with i < j in configured order."""
        return [
            (self._adapters[i], self._adapters[j])
            for i in range(len(self._adapters))
            for j in range(i + 1, len(self._adapters))
        ]


class TokenRegistry:
    """Chain token <-> venue-local token mapping.

    Venues list the same asset under different tickers (e.g. PEPE vs
    1000PEPE). A missing mapping means the token is not tradable there.
    """

    def __init__(self, rows: list[tuple[str, str, str]]) -> None:
        self._to_local: dict[tuple[str, str], str] = {}
        self._to_chain: dict[tuple[str, str], str] = {}
        self._tokens: list[str] = []
        for chain_token, exchange, exchange_token in rows:
            chain_token, exchange, exchange_token = (
                chain_token.upper(),
                exchange.upper(),
                exchange_token.upper(),
            )
            self._to_local[(exchange, chain_token)] = exchange_token
            self._to_chain[(exchange, exchange_token)] = chain_token
            if chain_token not in self._tokens:
                self._tokens.append(chain_token)

    @classmethod
    async def load(cls, repository: TokenRepository) -> "TokenRegistry":
        return cls(await repository.load())

    @property
    def tokens(self) -> list[str]:
        return list(self._tokens)

    def exchange_token(self, exchange: str, chain_token: str) -> str | None:
        return self._to_local.get((exchange.upper(), chain_token.upper()))

    def chain_token(self, exchange: str, exchange_token: str) -> str | None:
        return self._to_chain.get((exchange.upper(), exchange_token.upper()))

    def exchange_symbol(self, adapter: ExchangeAdapter, chain_token: str) -> str | None:
        local = self.exchange_token(adapter.name, chain_token)
        return adapter.exchange_symbol(local) if local is not None else None

    def orderbook_symbol(self, adapter: ExchangeAdapter, chain_token: str) -> str | None:
        local = self.exchange_token(adapter.name, chain_token)
        return adapter.orderbook_symbol(local) if local is not None else None
