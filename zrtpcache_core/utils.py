"""
zrtpcache_core.utils
--------------------
Lightweight helpers for base64 utilities, ZID encoding and timestamping.
Every key field passes through encode_zid() before it touches storage so that
comparison and indexing in the backing engine only ever see text-safe content.
"""

from __future__ import annotations
import base64, binascii, time
from typing import Optional
from .constants import IDENTIFIER_LEN, DEFAULT_ACCOUNT, MAX_ACCOUNT_LENGTH
from .errors import InvalidRecordError

def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)

def encode_zid(zid: bytes) -> str:
    # 12 bytes always encode to 16 characters, no padding
    if not isinstance(zid, (bytes, bytearray)) or len(zid) != IDENTIFIER_LEN:
        raise InvalidRecordError(f"ZID must be {IDENTIFIER_LEN} bytes")
    return b64e(bytes(zid))

def decode_zid(text: str) -> bytes:
    try:
        raw = b64d(text)
    except (binascii.Error, ValueError, UnicodeEncodeError, AttributeError) as e:
        raise InvalidRecordError(f"not a base64 ZID: {text!r}") from e
    if len(raw) != IDENTIFIER_LEN:
        raise InvalidRecordError(f"decoded ZID has {len(raw)} bytes, expected {IDENTIFIER_LEN}")
    return raw

def normalize_account(account_info: Optional[str]) -> str:
    if not account_info:
        return DEFAULT_ACCOUNT
    if len(account_info) > MAX_ACCOUNT_LENGTH:
        raise InvalidRecordError(f"account info longer than {MAX_ACCOUNT_LENGTH} characters")
    return account_info

def now_ts() -> int:
    # Unix seconds, the unit every cache timestamp uses
    return int(time.time())
