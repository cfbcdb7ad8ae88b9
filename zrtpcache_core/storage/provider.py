# zrtpcache_core/storage/provider.py
from __future__ import annotations
from typing import Iterator, Optional, Tuple

from zrtpcache_core.constants import DEFAULT_ACCOUNT
from zrtpcache_core.storage.models import RemoteZidRecord, ZidNameRecord, ZidKind
from zrtpcache_core.utils import normalize_account

RemoteRow = Tuple[bytes, RemoteZidRecord]


def local_zid_key(account_info: Optional[str]) -> Tuple[ZidKind, str]:
    # None, "" and "_STANDARD_" all select the standalone local ZID
    account = normalize_account(account_info)
    if account == DEFAULT_ACCOUNT:
        return ZidKind.STANDALONE, account
    return ZidKind.ACCOUNT_BOUND, account


class RemoteZidCursor:
    """
    Forward-only, non-restartable enumeration of remote ZID records.

    Rows come out ordered by ``secure_since`` descending. A cursor holds a
    read position in the backing store until it is exhausted or closed;
    use it as a context manager so early abandonment still releases it.
    """

    def __init__(self, on_close=None):
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def _fetch(self) -> Optional[RemoteRow]:
        raise NotImplementedError

    def _release(self) -> None:
        return

    def advance(self) -> Optional[RemoteRow]:
        """Return the next (remote_zid, record) pair, or None at end of sequence."""
        if self._closed:
            return None
        row = self._fetch()
        if row is None:
            self.close()
        return row

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._release()
        finally:
            if self._on_close:
                self._on_close(self)

    def __iter__(self) -> Iterator[RemoteRow]:
        return self

    def __next__(self) -> RemoteRow:
        row = self.advance()
        if row is None:
            raise StopIteration
        return row

    def __enter__(self) -> "RemoteZidCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class CacheProvider:
    """
    Backing-engine contract for the ZRTP cache.

    Providers own their connection and every cursor they hand out. Three
    record kinds are managed: local ZIDs, remote ZID records and ZID names.
    Absence of a record is never an error; more than one row for a key that
    must be unique raises ConsistencyError.

    Calls are synchronous and a provider is not safe for concurrent use;
    callers sharing one across threads must serialize access.
    """
    name: str = "base"

    def __init__(self):
        self._cursors = set()

    # lifecycle
    def close(self) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    # local identity
    def read_local_zid(self, account_info: Optional[str] = None) -> bytes:
        raise NotImplementedError

    # remote ZID records
    def read_remote_record(self, remote_zid: bytes, local_zid: bytes) -> Optional[RemoteZidRecord]:
        raise NotImplementedError

    def insert_remote_record(self, remote_zid: bytes, local_zid: bytes, record: RemoteZidRecord) -> None:
        raise NotImplementedError

    def update_remote_record(self, remote_zid: bytes, local_zid: bytes, record: RemoteZidRecord) -> None:
        raise NotImplementedError

    # ZID names
    def read_name_record(self, remote_zid: bytes, local_zid: bytes,
                         account_info: Optional[str] = None) -> Optional[ZidNameRecord]:
        raise NotImplementedError

    def insert_name_record(self, remote_zid: bytes, local_zid: bytes, record: ZidNameRecord,
                           account_info: Optional[str] = None) -> None:
        raise NotImplementedError

    def update_name_record(self, remote_zid: bytes, local_zid: bytes, record: ZidNameRecord,
                           account_info: Optional[str] = None) -> None:
        raise NotImplementedError

    # enumeration
    def open_enumeration(self) -> RemoteZidCursor:
        raise NotImplementedError

    @property
    def open_cursor_count(self) -> int:
        return len(self._cursors)

    def _track(self, cursor: RemoteZidCursor) -> RemoteZidCursor:
        self._cursors.add(cursor)
        return cursor

    def _forget(self, cursor: RemoteZidCursor) -> None:
        self._cursors.discard(cursor)

    def _close_cursors(self) -> None:
        for cursor in list(self._cursors):
            cursor.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
