"""Row bundling for the data stream

Rows travel in BundledRows messages. A bundle is purely a transport chunking
unit: receivers must not infer meaning from where one bundle ends and the next
begins, and bundling never reorders, drops or duplicates rows.

## Bundler

Accumulates rows and flushes a bundle as soon as either limit is reached:

- max_rows: rows per bundle
- max_bytes: encoded bytes per bundle

Smaller limits lower latency and memory per call at the cost of more messages
and per-message overhead. Larger limits raise throughput and memory use. A
single row larger than max_bytes is sent in a bundle of its own, after any
rows already pending have been flushed. Whatever is
pending at end-of-stream is flushed by flush().

## Unbundler

Decodes bundles back into a flat row sequence using the declared column types.
A bundle is decoded completely before any of its rows are released, so an
undecodable bundle raises MalformedStreamError without touching rows already
delivered. Empty bundles are a no-op.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional, Sequence

from google.protobuf.message import DecodeError

from ssekit.dual import Dual, Row
from ssekit.errors import ConfigError, MalformedStreamError
from ssekit.types import DataType
from ssekit.wire.schema import BundledRows, DualMessage, RowMessage


logger = logging.getLogger(__name__)

# Default maximum rows per bundle
DEFAULT_MAX_BUNDLE_ROWS = 2000

# Default maximum encoded bundle size (256 KB), well below gRPC's 4 MB message cap
DEFAULT_MAX_BUNDLE_BYTES = 262_144


@dataclass(frozen=True)
class BundleLimits:
    """Flush thresholds for the Bundler"""
    max_rows: int
    max_bytes: int

    def __post_init__(self):
        if self.max_rows <= 0:
            raise ConfigError(f"max_rows must be positive, got {self.max_rows}")
        if self.max_bytes <= 0:
            raise ConfigError(f"max_bytes must be positive, got {self.max_bytes}")

    @classmethod
    def default(cls) -> "BundleLimits":
        return cls(max_rows=DEFAULT_MAX_BUNDLE_ROWS, max_bytes=DEFAULT_MAX_BUNDLE_BYTES)

    def for_cardinality(self, cardinality: int) -> "BundleLimits":
        """Cap the row limit to a positive cardinality hint.

        Only meaningful where output rows track input rows (SCALAR).
        """
        if cardinality <= 0 or cardinality >= self.max_rows:
            return self
        return BundleLimits(max_rows=cardinality, max_bytes=self.max_bytes)


def _varint_size(value: int) -> int:
    size = 1
    while value >= 0x80:
        value >>= 7
        size += 1
    return size


def row_to_message(row: Row) -> Any:
    duals = []
    for cell in row:
        num_data, str_data = cell.to_wire()
        duals.append(DualMessage(numData=num_data, strData=str_data))
    return RowMessage(duals=duals)


def row_from_message(message: Any, types: Sequence[DataType]) -> Row:
    """Convert a wire row. Cells beyond the declared columns are read as DUAL."""
    return tuple(
        Dual.from_wire(d.numData, d.strData, types[i] if i < len(types) else DataType.DUAL)
        for i, d in enumerate(message.duals)
    )


def encode_bundle(rows: Iterable[Row]) -> bytes:
    """Encode rows into one serialized BundledRows message"""
    return BundledRows(rows=[row_to_message(r) for r in rows]).SerializeToString()


def decode_bundle(bundle: Any, types: Sequence[DataType]) -> List[Row]:
    """Decode one bundle (raw bytes or a BundledRows message) into rows.

    Raises MalformedStreamError if the bundle cannot be decoded.
    """
    if isinstance(bundle, (bytes, bytearray, memoryview)):
        try:
            bundle = BundledRows.FromString(bytes(bundle))
        except (DecodeError, UnicodeDecodeError) as e:
            raise MalformedStreamError(f"Cannot decode bundle: {e}") from e
    elif not isinstance(bundle, BundledRows):
        raise MalformedStreamError(f"Expected a bundle, got {type(bundle).__name__}")
    return [row_from_message(r, types) for r in bundle.rows]


class Bundler:
    """Groups output rows into size-bounded serialized bundles"""

    def __init__(self, limits: Optional[BundleLimits] = None):
        self.limits = limits if limits is not None else BundleLimits.default()
        self._pending: List[Any] = []
        self._pending_bytes = 0
        self.rows_written = 0
        self.bundles_written = 0

    @property
    def pending_rows(self) -> int:
        return len(self._pending)

    def add(self, row: Row) -> List[bytes]:
        """Queue a row. Returns the bundles that are ready to send, usually none.

        Pending rows are flushed first when the new row would push them past
        max_bytes, so a bundle only exceeds max_bytes when it holds a single
        oversized row.
        """
        message = row_to_message(row)
        size = message.ByteSize()
        # Field tag plus length prefix of the embedded Row
        framed = 1 + _varint_size(size) + size
        payloads = []
        if self._pending and self._pending_bytes + framed > self.limits.max_bytes:
            payloads.append(self._take())
        self._pending_bytes += framed
        self._pending.append(message)
        if len(self._pending) >= self.limits.max_rows or self._pending_bytes >= self.limits.max_bytes:
            payloads.append(self._take())
        return payloads

    def flush(self) -> Optional[bytes]:
        """Serialize whatever is pending. Returns None if nothing is pending."""
        if not self._pending:
            return None
        return self._take()

    def bundle(self, rows: Iterable[Row]) -> Iterator[bytes]:
        """Bundle a whole row sequence, flushing the remainder at the end"""
        for row in rows:
            yield from self.add(row)
        payload = self.flush()
        if payload is not None:
            yield payload

    def _take(self) -> bytes:
        message = BundledRows()
        message.rows.extend(self._pending)
        payload = message.SerializeToString()
        logger.debug("Flushing bundle of %d rows (%d bytes)", len(self._pending), len(payload))
        self.rows_written += len(self._pending)
        self.bundles_written += 1
        self._pending = []
        self._pending_bytes = 0
        return payload


class Unbundler:
    """Turns incoming bundles back into rows typed by the declared columns"""

    def __init__(self, types: Sequence[DataType]):
        self.types = tuple(types)
        self.rows_read = 0
        self.bundles_read = 0

    def unbundle(self, bundle: Any) -> List[Row]:
        rows = decode_bundle(bundle, self.types)
        self.bundles_read += 1
        self.rows_read += len(rows)
        return rows

    def rows(self, bundles: Iterable[Any]) -> Iterator[Row]:
        """Flatten a bundle sequence into its rows, in order"""
        for bundle in bundles:
            yield from self.unbundle(bundle)
