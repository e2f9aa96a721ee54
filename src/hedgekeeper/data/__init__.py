"""Persistence layer -- aiosqlite-backed cache, tunables and token map."""

from hedgekeeper.data.database import KeeperDatabase
from hedgekeeper.data.keys import CacheKeys
from hedgekeeper.data.store import (
    ConfigRepository,
    KeyValueStore,
    PositionOpenStore,
    SqliteKeyValueStore,
    TokenRepository,
)

__all__ = [
    "CacheKeys",
    "ConfigRepository",
    "KeeperDatabase",
    "KeyValueStore",
    "PositionOpenStore",
    "SqliteKeyValueStore",
    "TokenRepository",
]
