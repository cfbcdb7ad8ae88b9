import os
import pytest

from zrtpcache_core.crypto import random_zid, random_secret
from zrtpcache_core.errors import ConsistencyError, StorageError, InvalidRecordError
from zrtpcache_core.storage import InMemoryCache, RemoteZidRecord


def _record(**overrides) -> RemoteZidRecord:
    fields = dict(
        flags=0x5,
        rs1=random_secret(), rs1_last_use=1_700_000_100, rs1_ttl=1_800_000_000,
        rs2=random_secret(), rs2_last_use=1_600_000_100, rs2_ttl=-1,
        mitm_key=random_secret(), mitm_last_use=1_700_000_200,
        secure_since=1_650_000_000,
        presh_counter=3,
    )
    fields.update(overrides)
    return RemoteZidRecord(**fields)


def test_missing_record_is_absent(cache):
    local = cache.read_local_zid()
    assert cache.read_remote_record(random_zid(), local) is None


def test_insert_then_read_roundtrip(cache):
    local = cache.read_local_zid()
    remote = random_zid()
    rec = _record()
    cache.insert_remote_record(remote, local, rec)

    got = cache.read_remote_record(remote, local)
    assert got == rec
    assert got.rs1 == rec.rs1 and got.mitm_key == rec.mitm_key
    assert got.rs2_ttl == -1
    assert got.identifier is None


def test_records_are_keyed_on_both_zids(cache):
    local = cache.read_local_zid()
    other_local = cache.read_local_zid("alice")
    remote = random_zid()
    cache.insert_remote_record(remote, local, _record(flags=1))

    assert cache.read_remote_record(remote, other_local) is None
    assert cache.read_remote_record(random_zid(), local) is None


def test_update_replaces_every_field(cache):
    local = cache.read_local_zid()
    remote = random_zid()
    cache.insert_remote_record(remote, local, _record())

    replacement = RemoteZidRecord(flags=3, secure_since=42)
    cache.update_remote_record(remote, local, replacement)

    got = cache.read_remote_record(remote, local)
    assert got == replacement
    # nothing from the first write survives
    assert got.rs1 == bytes(32)
    assert got.presh_counter == 0
    assert got.mitm_last_use == 0


def test_update_without_record_writes_nothing(cache):
    local = cache.read_local_zid()
    remote = random_zid()
    cache.update_remote_record(remote, local, _record())
    assert cache.read_remote_record(remote, local) is None


def test_second_insert_for_same_key_fails_at_write_time(cache):
    local = cache.read_local_zid()
    remote = random_zid()
    cache.insert_remote_record(remote, local, _record())
    with pytest.raises(StorageError):
        cache.insert_remote_record(remote, local, _record())

    # the store stays usable after a failed write
    assert cache.read_remote_record(remote, local) is not None
    cache.insert_remote_record(random_zid(), local, _record())


def test_invalid_secret_length_is_rejected(cache):
    local = cache.read_local_zid()
    with pytest.raises(InvalidRecordError):
        cache.insert_remote_record(random_zid(), local, _record(rs1=os.urandom(16)))
    with pytest.raises(InvalidRecordError):
        cache.insert_remote_record(b"tooshort", local, _record())


def test_duplicate_rows_raise_consistency_error(sqlite_cache):
    # Table as created by caches that predate the uniqueness constraint
    sqlite_cache.db.executescript("""
        DROP TABLE zrtpIdRemote;
        CREATE TABLE zrtpIdRemote(remoteZid CHAR(16), localZid CHAR(16), flags INTEGER,
            rs1 BLOB(32), rs1LastUsed TIMESTAMP, rs1TimeToLive TIMESTAMP,
            rs2 BLOB(32), rs2LastUsed TIMESTAMP, rs2TimeToLive TIMESTAMP,
            mitmKey BLOB(32), mitmLastUsed TIMESTAMP, secureSince TIMESTAMP, preshCounter INTEGER);
    """)
    local = sqlite_cache.read_local_zid()
    remote = random_zid()
    sqlite_cache.insert_remote_record(remote, local, _record(flags=1))
    sqlite_cache.insert_remote_record(remote, local, _record(flags=2))

    with pytest.raises(ConsistencyError):
        sqlite_cache.read_remote_record(remote, local)


def test_duplicate_rows_raise_consistency_error_in_memory():
    store = InMemoryCache()
    local = store.read_local_zid()
    remote = random_zid()
    store.insert_remote_record(remote, local, _record())
    store.remote_rows.append(store.remote_rows[0])

    with pytest.raises(ConsistencyError):
        store.read_remote_record(remote, local)


def test_session_walkthrough(cache):
    l1 = cache.read_local_zid(None)
    r1 = random_zid()
    assert cache.read_remote_record(r1, l1) is None

    t = 1_700_000_000
    cache.insert_remote_record(r1, l1, _record(flags=1, secure_since=t))
    got = cache.read_remote_record(r1, l1)
    assert got.flags == 1
    assert got.secure_since == t

    got.flags = 3
    cache.update_remote_record(r1, l1, got)
    again = cache.read_remote_record(r1, l1)
    assert again.flags == 3
    assert again.secure_since == t
    assert again == got


def test_stored_secrets_do_not_follow_caller_buffer(cache):
    local = cache.read_local_zid()
    remote = random_zid()
    rs1 = bytearray(b"\x11" * 32)
    cache.insert_remote_record(remote, local, _record(rs1=rs1))
    rs1[:] = b"\x22" * 32

    assert cache.read_remote_record(remote, local).rs1 == b"\x11" * 32

    mitm = bytearray(32)
    cache.update_remote_record(remote, local, _record(mitm_key=mitm))
    mitm[0] = 0xFF
    assert cache.read_remote_record(remote, local).mitm_key == bytes(32)


def test_returned_records_are_independent_copies(cache):
    local = cache.read_local_zid()
    remote = random_zid()
    rec = _record(rs1=bytearray(32))
    cache.insert_remote_record(remote, local, rec)

    got = cache.read_remote_record(remote, local)
    assert isinstance(got.rs1, bytes)
    got.flags = 7
    got.rs2 = b"\xff" * 32
    assert cache.read_remote_record(remote, local) == rec

    with cache.open_enumeration() as cursor:
        zid, row = cursor.advance()
    assert isinstance(row.rs1, bytes)
    row.presh_counter = 99
    assert cache.read_remote_record(remote, local).presh_counter == 3


@pytest.mark.parametrize("field", ["presh_counter", "secure_since", "rs1_ttl", "flags"])
def test_out_of_range_integers_are_rejected(cache, field):
    local = cache.read_local_zid()
    remote = random_zid()
    with pytest.raises(InvalidRecordError):
        cache.insert_remote_record(remote, local, _record(**{field: 2**64}))
    assert cache.read_remote_record(remote, local) is None

    cache.insert_remote_record(remote, local, _record(presh_counter=2**63 - 1, rs1_ttl=-(2**63)))
    with pytest.raises(InvalidRecordError):
        cache.update_remote_record(remote, local, _record(**{field: -(2**63) - 1}))
    assert cache.read_remote_record(remote, local).presh_counter == 2**63 - 1
