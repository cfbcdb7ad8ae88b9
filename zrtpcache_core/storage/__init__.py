# zrtpcache_core/storage/__init__.py

from .models import LocalZidRecord, RemoteZidRecord, ZidNameRecord, ZidKind, RecordFlags, NEVER_EXPIRES
from .provider import CacheProvider, RemoteZidCursor
from .providers.memory_provider import InMemoryCache
from .providers.sqlite_provider import SQLiteCache
from zrtpcache_core.constants import DEFAULT_DB_PATH
import os


def load_cache_provider(config: dict | None = None) -> CacheProvider:
    """
    Factory resolver for selecting the cache backend.

    Config keys win over environment variables:
        - provider     / ZRTPCACHE_PROVIDER      sqlite (default) | memory
        - sqlite_path  / ZRTPCACHE_DB_PATH       default db/zrtp_cache.db
        - transactions / ZRTPCACHE_TRANSACTIONS  "1" wraps table resets in a transaction
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("ZRTPCACHE_PROVIDER", "sqlite")

    if provider == "memory":
        return InMemoryCache()

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("ZRTPCACHE_DB_PATH", DEFAULT_DB_PATH)
        transactions = config.get("transactions")
        if transactions is None:
            transactions = os.getenv("ZRTPCACHE_TRANSACTIONS", "0") == "1"
        return SQLiteCache(db_path, transactions=bool(transactions))

    raise ValueError(f"Unknown cache provider: {provider}")


__all__ = [
    "LocalZidRecord",
    "RemoteZidRecord",
    "ZidNameRecord",
    "ZidKind",
    "RecordFlags",
    "NEVER_EXPIRES",
    "CacheProvider",
    "RemoteZidCursor",
    "InMemoryCache",
    "SQLiteCache",
    "load_cache_provider",
]
