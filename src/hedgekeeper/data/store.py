"""Typed SQLite read/write abstractions for keeper state.

KeyValueStore is the cache contract every reader depends on; SqliteKeyValueStore
backs it with the kv_cache table. ConfigRepository and TokenRepository wrap
the relational tables. All SQL is isolated behind these classes.
"""

import time
from abc import ABC, abstractmethod

from hedgekeeper.data.database import KeeperDatabase
from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """String key-value cache with optional per-key expiry."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value, or None when absent or expired."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        """Store a value, replacing any previous one."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key if present."""
        ...


class SqliteKeyValueStore(KeyValueStore):
    """KeyValueStore on the kv_cache table. Expired rows are ignored on read."""

    def __init__(self, database: KeeperDatabase, clock=time.time) -> None:  # type: ignore[no-untyped-def]
        self._database = database
        self._clock = clock

    async def get(self, key: str) -> str | None:
        cursor = await self._database.db.execute(
            "SELECT value, expires_at FROM kv_cache WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        value, expires_at = row
        if expires_at is not None and expires_at <= self._clock():
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        await self._database.db.execute(
            "INSERT OR REPLACE INTO kv_cache (key, value, expires_at) VALUES (?, ?, ?)",
            (key, value, expires_at),
        )
        await self._database.db.commit()

    async def delete(self, key: str) -> None:
        await self._database.db.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
        await self._database.db.commit()

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        cursor = await self._database.db.execute(
            "DELETE FROM kv_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        await self._database.db.commit()
        if cursor.rowcount:
            logger.debug("kv_cache_purged", removed=cursor.rowcount)
        return cursor.rowcount


class ConfigRepository:
    """Per-project tunable rows (project, key, value)."""

    def __init__(self, database: KeeperDatabase) -> None:
        self._database = database

    async def load(self, project: str) -> dict[str, str]:
        cursor = await self._database.db.execute(
            "SELECT pro_key, pro_value FROM keeper_config WHERE project = ?",
            (project,),
        )
        rows = await cursor.fetchall()
        return {key: value for key, value in rows}

    async def set_value(self, project: str, key: str, value: str) -> None:
        await self._database.db.execute(
            "INSERT OR REPLACE INTO keeper_config (project, pro_key, pro_value) "
            "VALUES (?, ?, ?)",
            (project, key.upper(), value),
        )
        await self._database.db.commit()


class TokenRepository:
    """Chain token to venue-local token mapping rows."""

    def __init__(self, database: KeeperDatabase) -> None:
        self._database = database

    async def load(self) -> list[tuple[str, str, str]]:
        """Return (chain_token, exchange, exchange_token) rows."""
        cursor = await self._database.db.execute(
            "SELECT chain_token, exchange, exchange_token FROM exchange_tokens "
            "ORDER BY chain_token, exchange"
        )
        rows = await cursor.fetchall()
        return [(chain, exchange, local) for chain, exchange, local in rows]

    async def upsert(self, chain_token: str, exchange: str, exchange_token: str) -> None:
        await self._database.db.execute(
            "INSERT OR REPLACE INTO exchange_tokens (chain_token, exchange, exchange_token) "
            "VALUES (?, ?, ?)",
            (chain_token.upper(), exchange.upper(), exchange_token.upper()),
        )
        await self._database.db.commit()


class PositionOpenStore:
    """Holding-clock start per (token, base venue, quote venue), epoch milliseconds."""

    def __init__(self, kv: KeyValueStore, keys: CacheKeys) -> None:
        self._kv = kv
        self._keys = keys

    async def get_opened_at(self, token: str, base_exchange: str, quote_exchange: str) -> int | None:
        value = await self._kv.get(self._keys.position_open(token, base_exchange, quote_exchange))
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("invalid_position_open_time", token=token, value=value)
            return None

    async def mark_opened(
        self, token: str, base_exchange: str, quote_exchange: str, opened_at_ms: int
    ) -> None:
        await self._kv.set(
            self._keys.position_open(token, base_exchange, quote_exchange), str(opened_at_ms)
        )

    async def clear(self, token: str, base_exchange: str, quote_exchange: str) -> None:
        await self._kv.delete(self._keys.position_open(token, base_exchange, quote_exchange))
