from dataclasses import replace
from typing import Iterator, List, Optional, Tuple

from zrtpcache_core.crypto import random_zid
from zrtpcache_core.errors import StorageError, ConsistencyError
from zrtpcache_core.logger import get_logger
from zrtpcache_core.storage.models import LocalZidRecord, RemoteZidRecord, ZidNameRecord
from zrtpcache_core.storage.provider import CacheProvider, RemoteZidCursor, local_zid_key
from zrtpcache_core.utils import encode_zid, decode_zid, normalize_account, now_ts

log = get_logger("zrtpcache.memory")


class MemoryRemoteCursor(RemoteZidCursor):
    def __init__(self, rows: Iterator[Tuple[str, RemoteZidRecord]], on_close=None):
        super().__init__(on_close)
        self._rows = rows

    def _fetch(self):
        row = next(self._rows, None)
        if row is None:
            return None
        remote, rec = row
        rec = rec.detached(identifier=decode_zid(remote))
        return rec.identifier, rec

    def _release(self) -> None:
        self._rows = iter(())


class InMemoryCache(CacheProvider):
    """
    Non-persistent cache with the same semantics as SQLiteCache.

    Rows are kept in plain lists keyed by base64 ZIDs, the way the SQL tables
    hold them. Inserts reject an existing key like the UNIQUE constraints do.
    """
    name = "memory"

    def __init__(self):
        super().__init__()
        self.local_zids: List[LocalZidRecord] = []
        self.remote_rows: List[Tuple[str, str, RemoteZidRecord]] = []
        self.name_rows: List[Tuple[str, str, str, ZidNameRecord]] = []
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise StorageError("ZRTP cache is closed")

    # lifecycle
    def clear(self) -> None:
        self._check_open()
        self._close_cursors()
        self.local_zids.clear()
        self.remote_rows.clear()
        self.name_rows.clear()
        log.info("ZRTP cache cleared")

    def close(self) -> None:
        self._close_cursors()
        self.closed = True

    # local ZID
    def read_local_zid(self, account_info: Optional[str] = None) -> bytes:
        self._check_open()
        kind, account = local_zid_key(account_info)
        found = [r for r in self.local_zids if r.kind == kind and r.account_info == account]
        if len(found) > 1:
            raise ConsistencyError(
                f"ZRTP cache inconsistent. Found {len(found)} matching local ZID for account: {account}"
            )
        if found:
            return found[0].zid

        rec = LocalZidRecord(zid=random_zid(), kind=kind, account_info=account)
        self.local_zids.append(rec)
        log.info("created new local ZID", extra={"account": account})
        return rec.zid

    # remote ZID records
    def _remote_matches(self, remote_zid: bytes, local_zid: bytes):
        remote, local = encode_zid(remote_zid), encode_zid(local_zid)
        return [i for i, (r, l, _) in enumerate(self.remote_rows) if r == remote and l == local]

    def read_remote_record(self, remote_zid: bytes, local_zid: bytes) -> Optional[RemoteZidRecord]:
        self._check_open()
        hits = self._remote_matches(remote_zid, local_zid)
        if len(hits) > 1:
            raise ConsistencyError(f"ZRTP cache inconsistent. More than one remote ZID found: {len(hits)}")
        if not hits:
            return None
        return self.remote_rows[hits[0]][2].detached()

    def insert_remote_record(self, remote_zid: bytes, local_zid: bytes, record: RemoteZidRecord) -> None:
        self._check_open()
        record.validate()
        if self._remote_matches(remote_zid, local_zid):
            raise StorageError("UNIQUE constraint failed: zrtpIdRemote.remoteZid, zrtpIdRemote.localZid")
        self.remote_rows.append((encode_zid(remote_zid), encode_zid(local_zid), record.detached()))

    def update_remote_record(self, remote_zid: bytes, local_zid: bytes, record: RemoteZidRecord) -> None:
        self._check_open()
        record.validate()
        for i in self._remote_matches(remote_zid, local_zid):
            remote, local, _ = self.remote_rows[i]
            self.remote_rows[i] = (remote, local, record.detached())

    # ZID names
    def _name_matches(self, remote_zid: bytes, local_zid: bytes, account: str):
        remote, local = encode_zid(remote_zid), encode_zid(local_zid)
        return [
            i for i, (r, l, a, _) in enumerate(self.name_rows)
            if r == remote and l == local and a == account
        ]

    def read_name_record(self, remote_zid: bytes, local_zid: bytes,
                         account_info: Optional[str] = None) -> Optional[ZidNameRecord]:
        self._check_open()
        hits = self._name_matches(remote_zid, local_zid, normalize_account(account_info))
        if len(hits) > 1:
            raise ConsistencyError(f"ZRTP name cache inconsistent. More than one ZID name found: {len(hits)}")
        if not hits:
            return None
        return replace(self.name_rows[hits[0]][3])

    def insert_name_record(self, remote_zid: bytes, local_zid: bytes, record: ZidNameRecord,
                           account_info: Optional[str] = None) -> None:
        self._check_open()
        record.validate()
        account = normalize_account(account_info)
        if self._name_matches(remote_zid, local_zid, account):
            raise StorageError(
                "UNIQUE constraint failed: zrtpNames.remoteZid, zrtpNames.localZid, zrtpNames.accountInfo"
            )
        self.name_rows.append((
            encode_zid(remote_zid), encode_zid(local_zid), account,
            replace(record, last_update=now_ts()),
        ))

    def update_name_record(self, remote_zid: bytes, local_zid: bytes, record: ZidNameRecord,
                           account_info: Optional[str] = None) -> None:
        self._check_open()
        record.validate()
        account = normalize_account(account_info)
        for i in self._name_matches(remote_zid, local_zid, account):
            remote, local, acc, _ = self.name_rows[i]
            self.name_rows[i] = (remote, local, acc, replace(record, last_update=now_ts()))

    # enumeration
    def open_enumeration(self) -> MemoryRemoteCursor:
        self._check_open()
        rows = sorted(self.remote_rows, key=lambda r: r[2].secure_since, reverse=True)
        return self._track(MemoryRemoteCursor(((r, rec) for r, _, rec in rows), on_close=self._forget))
