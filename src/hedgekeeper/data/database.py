"""aiosqlite connection holder for keeper state.

One file backs the key-value cache, the per-project tunables and the token
symbol map. The schema is applied as numbered migrations; the highest
applied number is kept in schema_version so reopening an existing file only
runs what is new.
"""

import os
from typing import Self

import aiosqlite

from hedgekeeper.logging import get_logger

logger = get_logger(__name__)

_PRAGMAS = ("PRAGMA journal_mode=WAL", "PRAGMA synchronous=NORMAL")

_MIGRATIONS: list[str] = [
    # 1: cache, tunables and token map
    """
    CREATE TABLE kv_cache (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        expires_at REAL
    );
    CREATE INDEX idx_kv_expires ON kv_cache(expires_at);

    CREATE TABLE keeper_config (
        project TEXT NOT NULL,
        pro_key TEXT NOT NULL,
        pro_value TEXT NOT NULL,
        PRIMARY KEY (project, pro_key)
    );

    CREATE TABLE exchange_tokens (
        chain_token TEXT NOT NULL,
        exchange TEXT NOT NULL,
        exchange_token TEXT NOT NULL,
        PRIMARY KEY (chain_token, exchange)
    );
    CREATE UNIQUE INDEX idx_exchange_tokens_local ON exchange_tokens(exchange, exchange_token);
    """,
]

SCHEMA_VERSION = len(_MIGRATIONS)


class KeeperDatabase:
    """Owns the aiosqlite connection.

    Usage:
        async with KeeperDatabase("data/keeper.db") as database:
            kv = SqliteKeyValueStore(database)
    """

    def __init__(self, db_path: str = "data/keeper.db") -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """The open connection. Raises RuntimeError before connect()."""
        if self._conn is None:
            raise RuntimeError(f"KeeperDatabase({self._db_path}) is not connected")
        return self._conn

    async def connect(self) -> None:
        parent = os.path.dirname(self._db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        conn = await aiosqlite.connect(self._db_path)
        for pragma in _PRAGMAS:
            await conn.execute(pragma)
        self._conn = conn

        applied = await self._migrate()
        logger.info(
            "keeper_db_connected",
            db_path=self._db_path,
            schema_version=SCHEMA_VERSION,
            migrations_applied=applied,
        )

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("keeper_db_closed", db_path=self._db_path)

    async def _migrate(self) -> int:
        """Apply pending migrations. Returns how many ran."""
        conn = self.db
        await conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)")
        cursor = await conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version")
        (current,) = await cursor.fetchone()  # type: ignore[misc]

        pending = list(enumerate(_MIGRATIONS, start=1))[current:]
        for version, script in pending:
            await conn.executescript(script)
            await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))
            logger.info("schema_migrated", version=version)
        await conn.commit()
        return len(pending)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
