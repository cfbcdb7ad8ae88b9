import os
import pytest

from zrtpcache_core.errors import InvalidRecordError
from zrtpcache_core.utils import encode_zid, decode_zid, b64e, b64d, normalize_account


def test_zid_roundtrip():
    samples = [bytes(12), b"\xff" * 12, bytes(range(12))] + [os.urandom(12) for _ in range(200)]
    for zid in samples:
        assert decode_zid(encode_zid(zid)) == zid


def test_zid_encoding_is_fixed_length():
    # 12 bytes -> 16 base64 chars, never padded
    for _ in range(50):
        text = encode_zid(os.urandom(12))
        assert len(text) == 16
        assert "=" not in text


def test_encode_rejects_wrong_length():
    with pytest.raises(InvalidRecordError):
        encode_zid(b"short")
    with pytest.raises(InvalidRecordError):
        encode_zid(bytes(13))


def test_decode_rejects_garbage():
    with pytest.raises(InvalidRecordError):
        decode_zid("not base64 at all!")
    # valid base64, wrong decoded length
    with pytest.raises(InvalidRecordError):
        decode_zid(b64e(bytes(8)))


def test_generic_b64_helpers():
    assert b64d(b64e(b"\x00\x01abc")) == b"\x00\x01abc"


def test_normalize_account():
    assert normalize_account(None) == "_STANDARD_"
    assert normalize_account("") == "_STANDARD_"
    assert normalize_account("alice@example.org") == "alice@example.org"
    with pytest.raises(InvalidRecordError):
        normalize_account("x" * 1001)
