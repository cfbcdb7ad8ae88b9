# zrtpcache_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import IntEnum, IntFlag
from typing import Optional

from zrtpcache_core.constants import IDENTIFIER_LEN, RS_LENGTH, MAX_NAME_LENGTH, DEFAULT_ACCOUNT
from zrtpcache_core.crypto import secrets_equal
from zrtpcache_core.errors import InvalidRecordError
from zrtpcache_core.utils import now_ts

NEVER_EXPIRES = -1
INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1


class ZidKind(IntEnum):
    STANDALONE = 1      # not tied to a specific account
    ACCOUNT_BOUND = 2


class RecordFlags(IntFlag):
    """Conventional bit assignments for remote record flags.

    The store persists the integer verbatim; the protocol layer owns the meaning.
    """
    VALID = 0x1
    SAS_VERIFIED = 0x2
    RS1_VALID = 0x4
    RS2_VALID = 0x8
    MITM_KEY_AVAILABLE = 0x10


def _zero_secret() -> bytes:
    return bytes(RS_LENGTH)


def _check_secret(name: str, value: bytes) -> None:
    if not isinstance(value, (bytes, bytearray)) or len(value) != RS_LENGTH:
        raise InvalidRecordError(f"{name} must be {RS_LENGTH} bytes")


def _check_int64(name: str, value: int) -> None:
    # every integer column is an SQLite INTEGER
    if isinstance(value, bool) or not isinstance(value, int) or not INT64_MIN <= value <= INT64_MAX:
        raise InvalidRecordError(f"{name} must be an integer in signed 64-bit range")


def _ttl_not_expired(ttl: int) -> bool:
    if ttl == NEVER_EXPIRES:
        return True
    if ttl == 0:
        return False
    return now_ts() <= ttl


@dataclass
class LocalZidRecord:
    zid: bytes
    kind: ZidKind = ZidKind.STANDALONE
    account_info: str = DEFAULT_ACCOUNT


@dataclass
class RemoteZidRecord:
    """
    Accumulated trust state between one local ZID and one remote peer.

    Two retained-secret slots each carry their own last-use and TTL
    timestamps (Unix seconds). ``identifier`` is only filled on rows
    produced by enumeration, so callers can correlate without a second lookup.
    """
    flags: int = 0
    rs1: bytes = field(default_factory=_zero_secret)
    rs1_last_use: int = 0
    rs1_ttl: int = 0
    rs2: bytes = field(default_factory=_zero_secret)
    rs2_last_use: int = 0
    rs2_ttl: int = 0
    mitm_key: bytes = field(default_factory=_zero_secret)
    mitm_last_use: int = 0
    secure_since: int = 0
    presh_counter: int = 0
    identifier: Optional[bytes] = field(default=None, compare=False)

    def validate(self) -> None:
        _check_secret("rs1", self.rs1)
        _check_secret("rs2", self.rs2)
        _check_secret("mitm_key", self.mitm_key)
        if self.identifier is not None and len(self.identifier) != IDENTIFIER_LEN:
            raise InvalidRecordError(f"identifier must be {IDENTIFIER_LEN} bytes")
        for name in ("flags", "rs1_last_use", "rs1_ttl", "rs2_last_use", "rs2_ttl",
                     "mitm_last_use", "secure_since", "presh_counter"):
            _check_int64(name, getattr(self, name))

    def detached(self, identifier: Optional[bytes] = None) -> "RemoteZidRecord":
        """Copy with immutable secrets, sharing no buffer with this record."""
        return replace(
            self,
            flags=int(self.flags),
            rs1=bytes(self.rs1),
            rs2=bytes(self.rs2),
            mitm_key=bytes(self.mitm_key),
            identifier=identifier,
        )

    # --- flag helpers ---

    def has_flag(self, flag: RecordFlags) -> bool:
        return bool(self.flags & flag)

    def set_flag(self, flag: RecordFlags) -> None:
        self.flags |= int(flag)

    def clear_flag(self, flag: RecordFlags) -> None:
        self.flags &= ~int(flag)

    # --- retained secrets ---

    def set_new_rs1(self, secret: bytes, expire: int = NEVER_EXPIRES) -> None:
        """Store a new rs1, shifting the current rs1 (value and timestamps) into rs2.

        ``expire`` is a lifetime in seconds; -1 never expires, <= 0 is
        already expired.
        """
        _check_secret("rs1", secret)
        self.rs2 = self.rs1
        self.rs2_last_use = self.rs1_last_use
        self.rs2_ttl = self.rs1_ttl

        now = now_ts()
        self.rs1 = bytes(secret)
        self.rs1_last_use = now
        if expire == NEVER_EXPIRES:
            self.rs1_ttl = NEVER_EXPIRES
        elif expire <= 0:
            self.rs1_ttl = 0
        else:
            self.rs1_ttl = now + expire

        if self.has_flag(RecordFlags.RS1_VALID):
            self.set_flag(RecordFlags.RS2_VALID)
        else:
            self.clear_flag(RecordFlags.RS2_VALID)
        self.set_flag(RecordFlags.RS1_VALID)

    def is_rs1_not_expired(self) -> bool:
        return _ttl_not_expired(self.rs1_ttl)

    def is_rs2_not_expired(self) -> bool:
        return _ttl_not_expired(self.rs2_ttl)

    def rs1_matches(self, secret: bytes) -> bool:
        return self.has_flag(RecordFlags.RS1_VALID) and secrets_equal(self.rs1, secret)

    def rs2_matches(self, secret: bytes) -> bool:
        return self.has_flag(RecordFlags.RS2_VALID) and secrets_equal(self.rs2, secret)

    def set_mitm_data(self, key: bytes) -> None:
        _check_secret("mitm_key", key)
        self.mitm_key = bytes(key)
        self.mitm_last_use = now_ts()
        self.set_flag(RecordFlags.MITM_KEY_AVAILABLE)


@dataclass
class ZidNameRecord:
    """Optional human-readable name bound to (remote, local, account)."""
    flags: int = 0
    name: Optional[str] = None
    last_update: int = 0

    def validate(self) -> None:
        # overlong names are rejected, never truncated
        if self.name is not None and len(self.name) > MAX_NAME_LENGTH:
            raise InvalidRecordError(f"name longer than {MAX_NAME_LENGTH} characters")
        _check_int64("flags", self.flags)
        _check_int64("last_update", self.last_update)
