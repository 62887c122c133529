#!/usr/bin/env python3
"""
field_codec.py - Typed field primitives for GPP/TCF bit-packed segments

Each field type is a symmetric decode/encode pair over BitReader/BitWriter,
registered in FIELD_CODECS under the type name used by section schemas.

Supported types:
    uint                       fixed-width unsigned integer (bits)
    bool                       single bit
    datetime                   36-bit deciseconds since the Unix epoch
    string                     N characters x 6 bits, 'A' = 0 (length)
    bitfield                   N flags, bit i set -> ID i+1 (length)
    int_list                   N fixed-width integers (length, bits)
    integer_range              12-bit count + fixed-width range entries (id_bits)
    fibonacci_range            12-bit count + Fibonacci-coded range entries
    optimized_range            16-bit max ID + mode bit + bitfield | integer_range
    optimized_fibonacci_range  16-bit max ID + mode bit + bitfield | fibonacci_range
    restrictions               TCF publisher restrictions (id_bits, drop_truncated)

Parameters such as ``bits`` and ``length`` arrive already resolved: the
schema interpreter substitutes ``$field`` references before calling in.

Usage:
    from field_codec import FIELD_CODECS, RangeEntry

    codec = FIELD_CODECS['bitfield']
    ids = codec.decode(reader, {'length': 24})
    codec.encode(writer, {'length': 24}, ids)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import structlog

from bit_buffer import BitBuffer, BitReader, BitWriter
from gpp_errors import TruncatedInput, ValueOutOfRange


logger = structlog.get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DECISECOND = timedelta(milliseconds=100)

DATETIME_BITS = 36
RANGE_COUNT_BITS = 12
MAX_ID_BITS = 16
DEFAULT_ID_BITS = 16
RESTRICTION_PURPOSE_BITS = 6
RESTRICTION_TYPE_BITS = 2
STRING_CHAR_BITS = 6


# =============================================================================
# Value types
# =============================================================================

@dataclass(frozen=True)
class RangeEntry:
    """A single ID (``end is None``) or an inclusive [start, end] range."""
    start: int
    end: Optional[int] = None

    def __post_init__(self):
        if self.end is not None and self.end < self.start:
            raise ValueOutOfRange(
                f"Range end {self.end} is before start {self.start}")

    @property
    def is_range(self) -> bool:
        return self.end is not None

    @property
    def last(self) -> int:
        return self.start if self.end is None else self.end

    def ids(self) -> range:
        return range(self.start, self.last + 1)


def expand_entries(entries: Iterable[RangeEntry]) -> FrozenSet[int]:
    ids = set()
    for entry in entries:
        ids.update(entry.ids())
    return frozenset(ids)


def entries_from_ids(ids: Iterable[int]) -> Tuple[RangeEntry, ...]:
    """Collapse IDs into sorted entries, consecutive runs becoming ranges."""
    entries = []
    run_start = run_end = None
    for vid in sorted(set(ids)):
        if run_end is not None and vid == run_end + 1:
            run_end = vid
            continue
        if run_start is not None:
            entries.append(RangeEntry(run_start, run_end if run_end != run_start else None))
        run_start = run_end = vid
    if run_start is not None:
        entries.append(RangeEntry(run_start, run_end if run_end != run_start else None))
    return tuple(entries)


@dataclass(frozen=True)
class BitfieldIds:
    """ID set carried as a bitfield of ``max_id`` flags."""
    max_id: int = 0
    ids_set: FrozenSet[int] = frozenset()

    def ids(self) -> FrozenSet[int]:
        return self.ids_set

    def __contains__(self, vid: int) -> bool:
        return vid in self.ids_set

    @classmethod
    def from_ids(cls, ids: Iterable[int]) -> 'BitfieldIds':
        ids = frozenset(ids)
        return cls(max(ids, default=0), ids)


@dataclass(frozen=True)
class RangeIds:
    """ID set carried as range entries."""
    max_id: int = 0
    entries: Tuple[RangeEntry, ...] = ()

    def ids(self) -> FrozenSet[int]:
        return expand_entries(self.entries)

    def __contains__(self, vid: int) -> bool:
        return any(entry.start <= vid <= entry.last for entry in self.entries)

    @classmethod
    def from_ids(cls, ids: Iterable[int]) -> 'RangeIds':
        entries = entries_from_ids(ids)
        return cls(entries[-1].last if entries else 0, entries)


VendorSet = Union[BitfieldIds, RangeIds]


def range_entry_bits(entries: Iterable[RangeEntry], id_bits: int = DEFAULT_ID_BITS) -> int:
    return RANGE_COUNT_BITS + sum(1 + id_bits * (2 if e.is_range else 1) for e in entries)


def optimal_vendor_set(ids: Iterable[int]) -> VendorSet:
    """Pick whichever encoding of ``ids`` is shorter on the wire."""
    as_range = RangeIds.from_ids(ids)
    if range_entry_bits(as_range.entries) < as_range.max_id:
        return as_range
    return BitfieldIds(as_range.max_id, as_range.ids())


class RestrictionType(IntEnum):
    """
    Publisher restriction type (2 bits).

    TCF CA v1 reads 1 and 2 as express and implied consent respectively.
    """
    NOT_ALLOWED = 0
    REQUIRE_CONSENT = 1
    REQUIRE_LEGITIMATE_INTEREST = 2
    UNDEFINED = 3


@dataclass(frozen=True)
class PublisherRestriction:
    purpose_id: int
    restriction_type: RestrictionType
    entries: Tuple[RangeEntry, ...] = ()

    def vendor_ids(self) -> FrozenSet[int]:
        return expand_entries(self.entries)


# =============================================================================
# Primitive codecs
# =============================================================================

def decode_uint(reader: BitReader, params: Dict[str, Any]) -> int:
    return reader.read_uint(params['bits'])


def encode_uint(writer: BitWriter, params: Dict[str, Any], value: int) -> None:
    writer.write_uint(value, params['bits'])


def decode_bool(reader: BitReader, params: Dict[str, Any]) -> bool:
    return reader.read_bool()


def encode_bool(writer: BitWriter, params: Dict[str, Any], value: bool) -> None:
    if not isinstance(value, bool):
        raise ValueOutOfRange(f"Expected a bool, got {value!r}")
    writer.write_bool(value)


def decode_datetime(reader: BitReader, params: Dict[str, Any]) -> datetime:
    return EPOCH + reader.read_uint(DATETIME_BITS) * DECISECOND


def encode_datetime(writer: BitWriter, params: Dict[str, Any], value: datetime) -> None:
    if not isinstance(value, datetime):
        raise ValueOutOfRange(f"Expected a datetime, got {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    writer.write_uint((value - EPOCH) // DECISECOND, DATETIME_BITS)


def decode_string(reader: BitReader, params: Dict[str, Any]) -> str:
    return ''.join(chr(ord('A') + reader.read_uint(STRING_CHAR_BITS))
                   for _ in range(params['length']))


def encode_string(writer: BitWriter, params: Dict[str, Any], value: str) -> None:
    length = params['length']
    if not isinstance(value, str) or len(value) != length:
        raise ValueOutOfRange(f"Expected a {length}-character string, got {value!r}")
    for char in value:
        code = ord(char) - ord('A')
        if not 0 <= code < 64:
            raise ValueOutOfRange(f"Character {char!r} cannot be encoded in 6 bits")
        writer.write_uint(code, STRING_CHAR_BITS)


def decode_bitfield(reader: BitReader, params: Dict[str, Any]) -> FrozenSet[int]:
    length = params['length']
    bits = reader.read_bits(length).value
    return frozenset(length - i for i in range(length) if (bits >> i) & 1)


def encode_bitfield(writer: BitWriter, params: Dict[str, Any], value: Iterable[int]) -> None:
    length = params['length']
    bits = 0
    for vid in value:
        if not 1 <= vid <= length:
            raise ValueOutOfRange(f"ID {vid} outside bitfield of {length} flags")
        bits |= 1 << (length - vid)
    writer.write_bits(BitBuffer(bits, length))


def decode_int_list(reader: BitReader, params: Dict[str, Any]) -> Tuple[int, ...]:
    return tuple(reader.read_uint(params['bits']) for _ in range(params['length']))


def encode_int_list(writer: BitWriter, params: Dict[str, Any], value: Iterable[int]) -> None:
    values = tuple(value)
    if len(values) != params['length']:
        raise ValueOutOfRange(
            f"Expected {params['length']} values, got {len(values)}")
    for item in values:
        writer.write_uint(item, params['bits'])


# =============================================================================
# Fibonacci coding
# =============================================================================

def decode_fibonacci(reader: BitReader) -> int:
    """
    Read a Zeckendorf-coded integer terminated by two consecutive 1 bits.

    Bit i (in wire order) stands for the Fibonacci number F(i+2): 1, 2, 3, 5...
    """
    value = 0
    current, following = 1, 2
    previous = False
    while True:
        bit = reader.read_bool()
        if bit and previous:
            return value
        if bit:
            value += current
        previous = bit
        current, following = following, current + following


def encode_fibonacci(writer: BitWriter, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueOutOfRange(f"Fibonacci coding needs a positive integer, got {value!r}")
    fibs = [1, 2]
    while fibs[-1] + fibs[-2] <= value:
        fibs.append(fibs[-1] + fibs[-2])
    bits = [False] * len(fibs)
    remaining = value
    for i in range(len(fibs) - 1, -1, -1):
        if fibs[i] <= remaining:
            bits[i] = True
            remaining -= fibs[i]
    last = max(i for i, bit in enumerate(bits) if bit)
    for bit in bits[:last + 1]:
        writer.write_bool(bit)
    writer.write_bool(True)


# =============================================================================
# Range codecs
# =============================================================================

def _read_range_pairs(reader: BitReader, id_bits: int) -> List[Tuple[int, Optional[int]]]:
    count = reader.read_uint(RANGE_COUNT_BITS)
    pairs = []
    for _ in range(count):
        if reader.read_bool():
            start = reader.read_uint(id_bits)
            pairs.append((start, reader.read_uint(id_bits)))
        else:
            pairs.append((reader.read_uint(id_bits), None))
    return pairs


def decode_integer_range(reader: BitReader, params: Dict[str, Any]) -> Tuple[RangeEntry, ...]:
    pairs = _read_range_pairs(reader, params.get('id_bits', DEFAULT_ID_BITS))
    return tuple(RangeEntry(start, end) for start, end in pairs)


def encode_integer_range(writer: BitWriter, params: Dict[str, Any],
                         value: Iterable[RangeEntry]) -> None:
    id_bits = params.get('id_bits', DEFAULT_ID_BITS)
    entries = tuple(value)
    writer.write_uint(len(entries), RANGE_COUNT_BITS)
    for entry in entries:
        writer.write_bool(entry.is_range)
        writer.write_uint(entry.start, id_bits)
        if entry.is_range:
            writer.write_uint(entry.end, id_bits)


def decode_fibonacci_range(reader: BitReader, params: Dict[str, Any]) -> Tuple[RangeEntry, ...]:
    count = reader.read_uint(RANGE_COUNT_BITS)
    entries = []
    offset = 0
    for _ in range(count):
        if reader.read_bool():
            start = offset + decode_fibonacci(reader)
            end = start + decode_fibonacci(reader)
            entries.append(RangeEntry(start, end))
            offset = end
        else:
            offset += decode_fibonacci(reader)
            entries.append(RangeEntry(offset))
    return tuple(entries)


def encode_fibonacci_range(writer: BitWriter, params: Dict[str, Any],
                           value: Iterable[RangeEntry]) -> None:
    entries = tuple(value)
    writer.write_uint(len(entries), RANGE_COUNT_BITS)
    offset = 0
    for entry in entries:
        if entry.start <= offset:
            raise ValueOutOfRange(
                f"Fibonacci range entries must increase: {entry.start} after {offset}")
        writer.write_bool(entry.is_range)
        encode_fibonacci(writer, entry.start - offset)
        if entry.is_range:
            if entry.end == entry.start:
                raise ValueOutOfRange(
                    f"Fibonacci range [{entry.start}, {entry.end}] must span two IDs")
            encode_fibonacci(writer, entry.end - entry.start)
        offset = entry.last


def _decode_optimized(reader: BitReader, params: Dict[str, Any],
                      decode_entries: Callable) -> VendorSet:
    max_id = reader.read_uint(MAX_ID_BITS)
    if reader.read_bool():
        return RangeIds(max_id, decode_entries(reader, params))
    return BitfieldIds(max_id, decode_bitfield(reader, {'length': max_id}))


def _encode_optimized(writer: BitWriter, params: Dict[str, Any], value: VendorSet,
                      encode_entries: Callable) -> None:
    if isinstance(value, RangeIds):
        writer.write_uint(value.max_id, MAX_ID_BITS)
        writer.write_bool(True)
        encode_entries(writer, params, value.entries)
    elif isinstance(value, BitfieldIds):
        writer.write_uint(value.max_id, MAX_ID_BITS)
        writer.write_bool(False)
        encode_bitfield(writer, {'length': value.max_id}, value.ids_set)
    else:
        raise ValueOutOfRange(f"Expected BitfieldIds or RangeIds, got {type(value).__name__}")


def decode_optimized_range(reader: BitReader, params: Dict[str, Any]) -> VendorSet:
    return _decode_optimized(reader, params, decode_integer_range)


def encode_optimized_range(writer: BitWriter, params: Dict[str, Any], value: VendorSet) -> None:
    _encode_optimized(writer, params, value, encode_integer_range)


def decode_optimized_fibonacci_range(reader: BitReader, params: Dict[str, Any]) -> VendorSet:
    return _decode_optimized(reader, params, decode_fibonacci_range)


def encode_optimized_fibonacci_range(writer: BitWriter, params: Dict[str, Any],
                                     value: VendorSet) -> None:
    _encode_optimized(writer, params, value, encode_fibonacci_range)


def decode_restrictions(reader: BitReader, params: Dict[str, Any]) -> Tuple[PublisherRestriction, ...]:
    """
    Decode a restriction list.

    With ``drop_truncated``, a restriction after the first that runs past
    the end of the segment ends the list: it and the rest of the segment
    are discarded. Some CMPs declare more restrictions than they write.
    """
    id_bits = params.get('id_bits', DEFAULT_ID_BITS)
    count = reader.read_uint(RANGE_COUNT_BITS)
    restrictions = []
    for index in range(count):
        try:
            purpose_id = reader.read_uint(RESTRICTION_PURPOSE_BITS)
            restriction_type = RestrictionType(reader.read_uint(RESTRICTION_TYPE_BITS))
            pairs = _read_range_pairs(reader, id_bits)
        except TruncatedInput:
            if index == 0 or not params.get('drop_truncated'):
                raise
            logger.debug('gpp.restrictions.truncated', declared=count, kept=index)
            reader.read_bits(reader.remaining_bits())
            break
        entries = tuple(RangeEntry(start, end) for start, end in pairs)
        restrictions.append(PublisherRestriction(purpose_id, restriction_type, entries))
    return tuple(restrictions)


def encode_restrictions(writer: BitWriter, params: Dict[str, Any],
                        value: Iterable[PublisherRestriction]) -> None:
    restrictions = tuple(value)
    writer.write_uint(len(restrictions), RANGE_COUNT_BITS)
    for restriction in restrictions:
        writer.write_uint(restriction.purpose_id, RESTRICTION_PURPOSE_BITS)
        writer.write_uint(int(restriction.restriction_type), RESTRICTION_TYPE_BITS)
        encode_integer_range(writer, params, restriction.entries)


# =============================================================================
# Registry
# =============================================================================

@dataclass(frozen=True)
class FieldCodec:
    """Decode/encode pair plus the schema parameters the type requires."""
    decode: Callable[[BitReader, Dict[str, Any]], Any]
    encode: Callable[[BitWriter, Dict[str, Any], Any], None]
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()
    default: Any = None


FIELD_CODECS: Dict[str, FieldCodec] = {
    'uint': FieldCodec(decode_uint, encode_uint, ('bits',), default=0),
    'bool': FieldCodec(decode_bool, encode_bool, default=False),
    'datetime': FieldCodec(decode_datetime, encode_datetime, default=EPOCH),
    'string': FieldCodec(decode_string, encode_string, ('length',)),
    'bitfield': FieldCodec(decode_bitfield, encode_bitfield, ('length',), default=frozenset()),
    'int_list': FieldCodec(decode_int_list, encode_int_list, ('length', 'bits')),
    'integer_range': FieldCodec(decode_integer_range, encode_integer_range,
                                optional=('id_bits',), default=()),
    'fibonacci_range': FieldCodec(decode_fibonacci_range, encode_fibonacci_range, default=()),
    'optimized_range': FieldCodec(decode_optimized_range, encode_optimized_range,
                                  optional=('id_bits',), default=BitfieldIds()),
    'optimized_fibonacci_range': FieldCodec(decode_optimized_fibonacci_range,
                                            encode_optimized_fibonacci_range,
                                            default=BitfieldIds()),
    'restrictions': FieldCodec(decode_restrictions, encode_restrictions,
                               optional=('id_bits',), default=()),
}
