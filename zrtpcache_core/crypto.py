"""
zrtpcache_core.crypto
---------------------
Randomness and comparison primitives used by the cache:

- random_zid(): fresh local identifiers (unpredictable, not secret)
- random_secret(): retained-secret sized random material
- secrets_equal(): constant-time comparison of retained secrets / MitM keys
- zid_fingerprint(): short, stable digest of a ZID for display and logs
"""

from __future__ import annotations
from cryptography.hazmat.primitives import constant_time, hashes
import os
from .constants import IDENTIFIER_LEN, RS_LENGTH

def random_zid() -> bytes:
    return os.urandom(IDENTIFIER_LEN)

def random_secret() -> bytes:
    return os.urandom(RS_LENGTH)

def secrets_equal(a: bytes, b: bytes) -> bool:
    if len(a) != len(b):
        return False
    return constant_time.bytes_eq(a, b)

def zid_fingerprint(zid: bytes) -> str:
    """
    Hex-encoded SHA256 of the raw ZID, truncated to 16 chars.

    Used to correlate peers in logs and listings without printing the
    identifier itself.
    """
    h = hashes.Hash(hashes.SHA256())
    h.update(zid)
    return h.finalize().hex()[:16]
