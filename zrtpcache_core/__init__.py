"""
ZRTP Cache Core
===============
Persistent trust-state store for ZRTP key agreement.

Provides:
- Local ZID provisioning per account
- Remote ZID records (retained secrets, MitM key, trust timestamps)
- Names bound to (remote ZID, local ZID, account)
- Pluggable cache backends (SQLite default, in-memory)
"""

from zrtpcache_core.errors import (
    CacheError, StorageError, StorageUnavailable, ConsistencyError, InvalidRecordError,
)
from zrtpcache_core.storage import (
    CacheProvider, SQLiteCache, InMemoryCache, load_cache_provider,
    RemoteZidRecord, ZidNameRecord, RecordFlags,
)
from zrtpcache_core.utils import encode_zid, decode_zid

__version__ = "0.1.0"
