import pytest

from nodekit.core.errors import MalformedKey
from nodekit.core.storage.codec import KeyCodec


@pytest.mark.ut
def test_compose_joins_with_separator():
    assert KeyCodec.compose(b"vm", b"vmroot") == b"vm\x00vmroot"
    assert KeyCodec.compose(b"dbh", b"v") == b"dbh\x00v"


@pytest.mark.ut
def test_decompose_strips_prefix_and_separator():
    assert KeyCodec.decompose(b"vm\x00abc", b"vm") == b"abc"
    assert KeyCodec.decompose(b"vm\x00", b"vm") == b""


@pytest.mark.ut
def test_decompose_rejects_short_key():
    with pytest.raises(MalformedKey):
        KeyCodec.decompose(b"vm", b"vm")


@pytest.mark.ut
@pytest.mark.parametrize("key,prefix,expected", [
    (b"vm\x00a", b"vm", True),
    (b"vmq", b"vm", False),
    (b"vm", b"vm", False),
    (b"vn\x00a", b"vm", False),
    (b"\x00a", b"", False),
])
def test_has_prefix(key, prefix, expected):
    assert KeyCodec.has_prefix(key, prefix) is expected


@pytest.mark.ut
@pytest.mark.parametrize("prefix,expected", [
    (b"vm", b"vn"),
    (b"bloomFilter", b"bloomFiltes"),
    (b"a\xff", b"b"),
    (b"a\xfe\xff\xff", b"a\xff"),
    (b"\xff\xff", None),
    (b"", None),
    (None, None),
])
def test_range_end(prefix, expected):
    assert KeyCodec.range_end(prefix) == expected


@pytest.mark.ut
def test_height_encoding():
    assert KeyCodec.encode_height_be(1) == b"\x00" * 7 + b"\x01"
    assert KeyCodec.decode_height_be(b"\x00" * 7 + b"\x2a") == 42
    assert KeyCodec.decode_height_le(b"\x2a" + b"\x00" * 7) == 42


@pytest.mark.ut
def test_decode_height_uses_first_eight_bytes():
    assert KeyCodec.decode_height_le(b"\x01" + b"\x00" * 7 + b"trailing") == 1


@pytest.mark.ut
def test_decode_height_rejects_short_suffix():
    with pytest.raises(MalformedKey):
        KeyCodec.decode_height_le(b"\x01\x02")
    with pytest.raises(MalformedKey):
        KeyCodec.decode_height_be(b"")


@pytest.mark.ut
def test_rewrite_height_prefix_flips_endianness():
    key = b"bloomFilter\x00" + (5).to_bytes(8, "little")
    out = KeyCodec.rewrite_height_prefix(key, b"bloomFilter", b"bf")
    assert out == b"bf\x00" + b"\x00" * 7 + b"\x05"


@pytest.mark.ut
def test_rewrite_height_prefix_rejects_short_height():
    with pytest.raises(MalformedKey):
        KeyCodec.rewrite_height_prefix(b"txHash\x00\x01\x02", b"txHash", b"th")
