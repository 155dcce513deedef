"""Tests for row bundling and unbundling"""

import pytest

from ssekit.dual import Dual, row_from_values
from ssekit.errors import ConfigError, MalformedStreamError
from ssekit.types import DataType
from ssekit.wire.bundle import (
    BundleLimits,
    Bundler,
    Unbundler,
    decode_bundle,
    encode_bundle,
)
from ssekit.wire.schema import BundledRows


TYPES = [DataType.NUMERIC, DataType.STRING]


def _rows(n):
    return [row_from_values([float(i), f"row-{i}"], TYPES) for i in range(n)]


# TEST201: Test unbundle(bundle(R)) == R for every row limit from 1 to len(R)
def test_roundtrip_all_row_limits():
    rows = _rows(12)
    for max_rows in range(1, len(rows) + 1):
        bundler = Bundler(BundleLimits(max_rows=max_rows, max_bytes=1_000_000))
        bundles = list(bundler.bundle(rows))
        assert list(Unbundler(TYPES).rows(bundles)) == rows
        expected_bundles = -(-len(rows) // max_rows)
        assert len(bundles) == expected_bundles


# TEST202: Test a byte limit splits bundles without losing rows
def test_byte_limit():
    rows = _rows(50)
    bundler = Bundler(BundleLimits(max_rows=10_000, max_bytes=64))
    bundles = list(bundler.bundle(rows))
    assert len(bundles) > 1
    assert list(Unbundler(TYPES).rows(bundles)) == rows
    assert bundler.rows_written == 50
    assert all(len(b) <= 64 for b in bundles)


# TEST203: Test a row larger than the byte limit is sent alone
def test_oversized_row():
    big = row_from_values([1.0, "x" * 500], TYPES)
    bundler = Bundler(BundleLimits(max_rows=100, max_bytes=10))
    payloads = bundler.add(big)
    assert len(payloads) == 1
    assert decode_bundle(payloads[0], TYPES) == [big]
    assert bundler.pending_rows == 0


# TEST213: Test an oversized row flushes pending rows first instead of joining them
def test_oversized_row_after_pending():
    small = row_from_values([1.0, "a" * 40], TYPES)
    big = row_from_values([2.0, "x" * 5000], TYPES)
    bundler = Bundler(BundleLimits(max_rows=1000, max_bytes=100))
    assert bundler.add(small) == []
    payloads = bundler.add(big)
    assert len(payloads) == 2
    assert decode_bundle(payloads[0], TYPES) == [small]
    assert decode_bundle(payloads[1], TYPES) == [big]
    assert len(payloads[0]) <= 100
    assert bundler.pending_rows == 0
    assert bundler.bundles_written == 2


# TEST214: Test a row that would overflow the byte limit starts the next bundle
def test_byte_limit_never_exceeded_by_pending_rows():
    rows = [row_from_values([float(i), "y" * 30], TYPES) for i in range(20)]
    bundler = Bundler(BundleLimits(max_rows=1000, max_bytes=120))
    bundles = list(bundler.bundle(rows))
    assert all(len(b) <= 120 for b in bundles)
    assert list(Unbundler(TYPES).rows(bundles)) == rows


# TEST204: Test the partial bundle is flushed at end of stream
def test_flush_partial():
    bundler = Bundler(BundleLimits(max_rows=5, max_bytes=1_000_000))
    for row in _rows(3):
        assert bundler.add(row) == []
    assert bundler.pending_rows == 3
    payload = bundler.flush()
    assert len(decode_bundle(payload, TYPES)) == 3
    assert bundler.flush() is None


# TEST205: Test empty input yields no bundles
def test_empty_input():
    assert list(Bundler().bundle([])) == []


# TEST206: Test an empty bundle unbundles to no rows
def test_empty_bundle():
    unbundler = Unbundler(TYPES)
    assert unbundler.unbundle(b"") == []
    assert unbundler.unbundle(BundledRows()) == []
    assert unbundler.bundles_read == 2


# TEST207: Test corrupt bytes raise MalformedStreamError
def test_corrupt_bundle():
    payload = encode_bundle(_rows(2))
    with pytest.raises(MalformedStreamError):
        decode_bundle(payload[:-3], TYPES)
    with pytest.raises(MalformedStreamError):
        decode_bundle("not a bundle", TYPES)


# TEST208: Test rows before a corrupt bundle are delivered intact
def test_rows_before_corruption_survive():
    rows = _rows(4)
    good = encode_bundle(rows[:2])
    bad = encode_bundle(rows[2:])[:-2]
    delivered = []
    with pytest.raises(MalformedStreamError):
        for row in Unbundler(TYPES).rows([good, bad]):
            delivered.append(row)
    assert delivered == rows[:2]


# TEST209: Test decoded BundledRows messages are accepted as well as bytes
def test_message_input():
    rows = _rows(3)
    message = BundledRows.FromString(encode_bundle(rows))
    assert decode_bundle(message, TYPES) == rows


# TEST210: Test cells beyond the declared columns are read as DUAL
def test_extra_cells():
    row = (Dual.from_number(1.0), Dual.from_string("a"), Dual.from_both(2.0, "two"))
    decoded = decode_bundle(encode_bundle([row]), TYPES)
    assert decoded == [row]


# TEST211: Test cardinality caps the row limit
def test_cardinality():
    limits = BundleLimits(max_rows=100, max_bytes=1000)
    assert limits.for_cardinality(3).max_rows == 3
    assert limits.for_cardinality(0) is limits
    assert limits.for_cardinality(500) is limits


# TEST212: Test non-positive limits are rejected
def test_invalid_limits():
    with pytest.raises(ConfigError):
        BundleLimits(max_rows=0, max_bytes=10)
    with pytest.raises(ConfigError):
        BundleLimits(max_rows=10, max_bytes=-1)
