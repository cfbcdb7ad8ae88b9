from __future__ import annotations
from contextlib import contextmanager
from typing import Optional, Tuple
import sqlite3, os

from zrtpcache_core.constants import DEFAULT_DB_PATH, NO_NAME
from zrtpcache_core.crypto import random_zid, zid_fingerprint
from zrtpcache_core.errors import StorageError, StorageUnavailable, ConsistencyError
from zrtpcache_core.logger import get_logger
from zrtpcache_core.storage.models import RemoteZidRecord, ZidNameRecord
from zrtpcache_core.storage.provider import CacheProvider, RemoteZidCursor, local_zid_key
from zrtpcache_core.utils import encode_zid, decode_zid, normalize_account, now_ts

log = get_logger("zrtpcache.sqlite")

LOOKUP_TABLES = "SELECT name FROM sqlite_master WHERE type='table' AND name='zrtpIdOwn'"

# --- zrtpIdOwn: local ZIDs ---
DROP_ID_OWN = "DROP TABLE IF EXISTS zrtpIdOwn"
CREATE_ID_OWN = """CREATE TABLE zrtpIdOwn(
    localZid CHAR(18),
    type INTEGER,
    accountInfo VARCHAR(1000),
    UNIQUE(type, accountInfo)
)"""
SELECT_ID_OWN = "SELECT localZid FROM zrtpIdOwn WHERE type=? AND accountInfo=?"
INSERT_ID_OWN = "INSERT INTO zrtpIdOwn(localZid, type, accountInfo) VALUES(?,?,?)"

# --- zrtpIdRemote: remote ZID records ---
REMOTE_COLUMNS = (
    "flags, rs1, rs1LastUsed, rs1TimeToLive, rs2, rs2LastUsed, rs2TimeToLive, "
    "mitmKey, mitmLastUsed, secureSince, preshCounter"
)
DROP_ID_REMOTE = "DROP TABLE IF EXISTS zrtpIdRemote"
CREATE_ID_REMOTE = """CREATE TABLE zrtpIdRemote(
    remoteZid CHAR(16),
    localZid CHAR(16),
    flags INTEGER,
    rs1 BLOB(32), rs1LastUsed TIMESTAMP, rs1TimeToLive TIMESTAMP,
    rs2 BLOB(32), rs2LastUsed TIMESTAMP, rs2TimeToLive TIMESTAMP,
    mitmKey BLOB(32), mitmLastUsed TIMESTAMP,
    secureSince TIMESTAMP,
    preshCounter INTEGER,
    UNIQUE(remoteZid, localZid)
)"""
SELECT_ID_REMOTE = f"SELECT {REMOTE_COLUMNS} FROM zrtpIdRemote WHERE remoteZid=? AND localZid=?"
SELECT_ID_REMOTE_ALL = f"SELECT {REMOTE_COLUMNS}, remoteZid FROM zrtpIdRemote ORDER BY secureSince DESC"
INSERT_ID_REMOTE = (
    f"INSERT INTO zrtpIdRemote(remoteZid, localZid, {REMOTE_COLUMNS}) "
    "VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?)"
)
UPDATE_ID_REMOTE = (
    "UPDATE zrtpIdRemote SET flags=?, "
    "rs1=?, rs1LastUsed=?, rs1TimeToLive=?, "
    "rs2=?, rs2LastUsed=?, rs2TimeToLive=?, "
    "mitmKey=?, mitmLastUsed=?, secureSince=?, preshCounter=? "
    "WHERE remoteZid=? AND localZid=?"
)

# --- zrtpNames: names bound to (remote, local, account) ---
DROP_NAMES = "DROP TABLE IF EXISTS zrtpNames"
CREATE_NAMES = """CREATE TABLE zrtpNames(
    remoteZid CHAR(16),
    localZid CHAR(16),
    flags INTEGER,
    lastUpdate TIMESTAMP,
    accountInfo VARCHAR(1000),
    name VARCHAR(1000),
    UNIQUE(remoteZid, localZid, accountInfo)
)"""
SELECT_NAMES = "SELECT flags, lastUpdate, name FROM zrtpNames WHERE remoteZid=? AND localZid=? AND accountInfo=?"
INSERT_NAMES = (
    "INSERT INTO zrtpNames(remoteZid, localZid, accountInfo, flags, lastUpdate, name) "
    "VALUES(?,?,?,?,?,?)"
)
UPDATE_NAMES = (
    "UPDATE zrtpNames SET flags=?, lastUpdate=?, name=? "
    "WHERE remoteZid=? AND localZid=? AND accountInfo=?"
)


def _remote_values(rec: RemoteZidRecord) -> Tuple:
    return (
        int(rec.flags),
        bytes(rec.rs1), rec.rs1_last_use, rec.rs1_ttl,
        bytes(rec.rs2), rec.rs2_last_use, rec.rs2_ttl,
        bytes(rec.mitm_key), rec.mitm_last_use,
        rec.secure_since,
        rec.presh_counter,
    )


def _row_to_remote(row) -> RemoteZidRecord:
    (flags, rs1, rs1_last_use, rs1_ttl, rs2, rs2_last_use, rs2_ttl,
     mitm_key, mitm_last_use, secure_since, presh_counter) = row[:11]
    return RemoteZidRecord(
        flags=int(flags),
        rs1=bytes(rs1),
        rs1_last_use=int(rs1_last_use),
        rs1_ttl=int(rs1_ttl),
        rs2=bytes(rs2),
        rs2_last_use=int(rs2_last_use),
        rs2_ttl=int(rs2_ttl),
        mitm_key=bytes(mitm_key),
        mitm_last_use=int(mitm_last_use),
        secure_since=int(secure_since),
        presh_counter=int(presh_counter),
    )


class SQLiteRemoteCursor(RemoteZidCursor):
    def __init__(self, cur: sqlite3.Cursor, on_close=None):
        super().__init__(on_close)
        self._cur = cur

    def _fetch(self):
        try:
            row = self._cur.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"SQLite3 error while enumerating: {e}") from e
        if row is None:
            return None
        rec = _row_to_remote(row)
        rec.identifier = decode_zid(row[11])
        return rec.identifier, rec

    def _release(self) -> None:
        self._cur.close()


class SQLiteCache(CacheProvider):
    """
    ZRTP cache on an embedded SQLite database.

    Opening probes for the local ZID table. When it is missing the store is
    treated as new: the local table is created and the remote and name tables
    are dropped and recreated, so peer state tied to an old local ZID never
    survives re-provisioning of the local identity.
    """
    name = "sqlite"

    def __init__(self, path=DEFAULT_DB_PATH, transactions: bool = False):
        super().__init__()
        self.path = str(path)
        self.transactions = transactions
        self.db: Optional[sqlite3.Connection] = None
        try:
            # If no directory, default to current working directory
            dir_path = os.path.dirname(self.path) or "."
            os.makedirs(dir_path, exist_ok=True)
            # callers serialize access themselves, see CacheProvider
            self.db = sqlite3.connect(self.path, check_same_thread=False)
            self._init()
        except (OSError, sqlite3.Error) as e:
            log.error(f"cannot open ZRTP cache {self.path}: {e}")
            if self.db is not None:
                self.db.close()
                self.db = None
            raise StorageUnavailable(f"cannot open ZRTP cache {self.path}: {e}") from e

    def _conn(self) -> sqlite3.Connection:
        if self.db is None:
            raise StorageError("ZRTP cache is closed")
        return self.db

    @contextmanager
    def _transaction(self):
        db = self._conn()
        if not self.transactions:
            yield db
            return
        db.execute("BEGIN")
        try:
            yield db
        except BaseException:
            db.rollback()
            raise
        db.commit()

    def _init(self) -> None:
        cur = self.db.execute(LOOKUP_TABLES)
        found = cur.fetchone() is not None
        cur.close()
        if not found:
            log.info("no ZRTP cache tables found, creating", extra={"table": "zrtpIdOwn"})
            with self._transaction() as db:
                self._create_tables(db)

    def _create_tables(self, db: sqlite3.Connection) -> None:
        db.execute(CREATE_ID_OWN)
        self._initialize_remote_tables(db)

    def _initialize_remote_tables(self, db: sqlite3.Connection) -> None:
        # Always drop first: if zrtpIdOwn was removed by hand, rows keyed on
        # the old local ZID must not linger
        db.execute(DROP_ID_REMOTE)
        db.execute(DROP_NAMES)
        db.execute(CREATE_ID_REMOTE)
        db.execute(CREATE_NAMES)
        log.info("remote ZID and name tables reset", extra={"table": "zrtpIdRemote"})

    def _write(self, sql: str, params: Tuple) -> int:
        db = self._conn()
        try:
            cur = db.execute(sql, params)
            db.commit()
            return cur.rowcount
        except sqlite3.Error as e:
            if db.in_transaction:
                db.rollback()
            log.error(f"SQLite3 write failed: {e}")
            raise StorageError(f"SQLite3 error: {e}") from e

    def _query(self, sql: str, params: Tuple):
        try:
            return self._conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            log.error(f"SQLite3 read failed: {e}")
            raise StorageError(f"SQLite3 error: {e}") from e

    # --- lifecycle ---

    def clear(self) -> None:
        # outstanding cursors would keep the tables locked against DROP
        self._close_cursors()
        try:
            with self._transaction() as db:
                db.execute(DROP_ID_OWN)
                self._create_tables(db)
        except sqlite3.Error as e:
            log.error(f"clearing ZRTP cache failed: {e}")
            raise StorageError(f"SQLite3 error: {e}") from e
        log.info("ZRTP cache cleared")

    def close(self) -> None:
        if self.db is None:
            return
        self._close_cursors()
        self.db.close()
        self.db = None

    # --- local ZID ---

    def read_local_zid(self, account_info: Optional[str] = None) -> bytes:
        kind, account = local_zid_key(account_info)
        rows = self._query(SELECT_ID_OWN, (int(kind), account))
        if len(rows) > 1:
            log.error("more than one local ZID", extra={"account": account, "rows": len(rows)})
            raise ConsistencyError(
                f"ZRTP cache inconsistent. Found {len(rows)} matching local ZID for account: {account}"
            )
        if rows:
            return decode_zid(rows[0][0])

        zid = random_zid()
        self._write(INSERT_ID_OWN, (encode_zid(zid), int(kind), account))
        log.info("created new local ZID", extra={"account": account})
        return zid

    # --- remote ZID records ---

    def read_remote_record(self, remote_zid: bytes, local_zid: bytes) -> Optional[RemoteZidRecord]:
        rows = self._query(SELECT_ID_REMOTE, (encode_zid(remote_zid), encode_zid(local_zid)))
        if not rows:
            return None
        if len(rows) > 1:
            log.error("more than one remote ZID record", extra={
                "remote_zid": zid_fingerprint(remote_zid), "local_zid": zid_fingerprint(local_zid), "rows": len(rows),
            })
            raise ConsistencyError(f"ZRTP cache inconsistent. More than one remote ZID found: {len(rows)}")
        return _row_to_remote(rows[0])

    def insert_remote_record(self, remote_zid: bytes, local_zid: bytes, record: RemoteZidRecord) -> None:
        record.validate()
        self._write(INSERT_ID_REMOTE, (encode_zid(remote_zid), encode_zid(local_zid)) + _remote_values(record))
        log.debug("inserted remote ZID record", extra={"remote_zid": zid_fingerprint(remote_zid)})

    def update_remote_record(self, remote_zid: bytes, local_zid: bytes, record: RemoteZidRecord) -> None:
        record.validate()
        changed = self._write(UPDATE_ID_REMOTE, _remote_values(record) + (encode_zid(remote_zid), encode_zid(local_zid)))
        log.debug(f"updated remote ZID record ({changed} rows)", extra={"remote_zid": zid_fingerprint(remote_zid)})

    # --- ZID names ---

    def read_name_record(self, remote_zid: bytes, local_zid: bytes,
                         account_info: Optional[str] = None) -> Optional[ZidNameRecord]:
        account = normalize_account(account_info)
        rows = self._query(SELECT_NAMES, (encode_zid(remote_zid), encode_zid(local_zid), account))
        if not rows:
            return None
        if len(rows) > 1:
            log.error("more than one ZID name record", extra={"account": account, "rows": len(rows)})
            raise ConsistencyError(f"ZRTP name cache inconsistent. More than one ZID name found: {len(rows)}")
        flags, last_update, name = rows[0]
        return ZidNameRecord(
            flags=int(flags),
            last_update=int(last_update),
            name=None if name == NO_NAME else name,
        )

    def insert_name_record(self, remote_zid: bytes, local_zid: bytes, record: ZidNameRecord,
                           account_info: Optional[str] = None) -> None:
        record.validate()
        account = normalize_account(account_info)
        self._write(INSERT_NAMES, (
            encode_zid(remote_zid), encode_zid(local_zid), account,
            int(record.flags), now_ts(), record.name if record.name is not None else NO_NAME,
        ))

    def update_name_record(self, remote_zid: bytes, local_zid: bytes, record: ZidNameRecord,
                           account_info: Optional[str] = None) -> None:
        record.validate()
        account = normalize_account(account_info)
        self._write(UPDATE_NAMES, (
            int(record.flags), now_ts(), record.name if record.name is not None else NO_NAME,
            encode_zid(remote_zid), encode_zid(local_zid), account,
        ))

    # --- enumeration ---

    def open_enumeration(self) -> SQLiteRemoteCursor:
        try:
            cur = self._conn().execute(SELECT_ID_REMOTE_ALL)
        except sqlite3.Error as e:
            log.error(f"cannot enumerate remote ZID records: {e}")
            raise StorageError(f"SQLite3 error: {e}") from e
        return self._track(SQLiteRemoteCursor(cur, on_close=self._forget))
