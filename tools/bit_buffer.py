#!/usr/bin/env python3
"""
bit_buffer.py - Non-byte-aligned bit access for consent string codecs

GPP and TCF segments pack fields at arbitrary bit offsets: a 6-bit version
is followed by 36-bit timestamps, 12-bit IDs, single flags, and bitfields of
any length. Nothing is byte aligned until the very end of an encoded
segment, where the base64url layer pads explicitly.

A BitBuffer is an immutable (value, length) pair. The most significant bit
of ``value`` is the first bit on the wire, so reading is a shift and a mask.

Usage:
    from bit_buffer import BitBuffer, BitReader, BitWriter

    writer = BitWriter()
    writer.write_uint(2, 6)
    writer.write_bool(True)
    buf = writer.to_buffer()          # 7 bits: 0000101

    reader = BitReader(buf)
    reader.read_uint(6)               # 2
    reader.read_bool()                # True
"""

from dataclasses import dataclass
from typing import Iterator

from gpp_errors import TruncatedInput, ValueOutOfRange, InvalidPadding


MAX_UINT_BITS = 64


@dataclass(frozen=True)
class BitBuffer:
    """Immutable, ordered sequence of bits."""
    value: int = 0
    length: int = 0

    def __post_init__(self):
        if self.length < 0:
            raise ValueOutOfRange(f"Negative bit length {self.length}")
        if self.value < 0 or self.value >> self.length:
            raise ValueOutOfRange(
                f"Value {self.value} does not fit in {self.length} bits")

    def __len__(self) -> int:
        return self.length

    def __iter__(self) -> Iterator[bool]:
        for i in range(self.length - 1, -1, -1):
            yield bool((self.value >> i) & 1)

    def bit(self, index: int) -> bool:
        """Bit at ``index``, counting from the first bit on the wire."""
        if not 0 <= index < self.length:
            raise IndexError(f"Bit index {index} out of range for {self.length} bits")
        return bool((self.value >> (self.length - 1 - index)) & 1)

    def concat(self, other: 'BitBuffer') -> 'BitBuffer':
        return BitBuffer((self.value << other.length) | other.value,
                         self.length + other.length)

    def prefix(self, length: int) -> 'BitBuffer':
        """First ``length`` bits of this buffer."""
        if not 0 <= length <= self.length:
            raise ValueOutOfRange(f"Prefix length {length} outside 0..{self.length}")
        return BitBuffer(self.value >> (self.length - length), length)

    def to_bitstring(self) -> str:
        if self.length == 0:
            return ''
        return format(self.value, f'0{self.length}b')

    @classmethod
    def from_bitstring(cls, bits: str) -> 'BitBuffer':
        """Build a buffer from a string of '0' and '1' characters."""
        bits = bits.replace(' ', '').replace('_', '')
        if bits.strip('01'):
            raise ValueError(f"Not a bit string: {bits!r}")
        return cls(int(bits, 2) if bits else 0, len(bits))


class BitReader:
    """Sequential reader with a cursor over a BitBuffer."""

    def __init__(self, buffer: BitBuffer):
        self._buffer = buffer
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    @property
    def length(self) -> int:
        return self._buffer.length

    def remaining_bits(self) -> int:
        return self._buffer.length - self._pos

    def _take(self, n: int, advance: bool = True) -> int:
        if n < 0:
            raise ValueOutOfRange(f"Cannot read {n} bits")
        available = self.remaining_bits()
        if n > available:
            raise TruncatedInput(
                f"Need {n} bits at bit {self._pos}, only {available} left",
                needed=n, available=available)
        shift = self._buffer.length - self._pos - n
        value = (self._buffer.value >> shift) & ((1 << n) - 1)
        if advance:
            self._pos += n
        return value

    def read_uint(self, bits: int) -> int:
        """Read an unsigned integer of 0..64 bits."""
        if not 0 <= bits <= MAX_UINT_BITS:
            raise ValueOutOfRange(f"Integer width {bits} outside 0..{MAX_UINT_BITS}")
        return self._take(bits)

    def peek_uint(self, bits: int) -> int:
        """Read an unsigned integer without moving the cursor."""
        if not 0 <= bits <= MAX_UINT_BITS:
            raise ValueOutOfRange(f"Integer width {bits} outside 0..{MAX_UINT_BITS}")
        return self._take(bits, advance=False)

    def read_bool(self) -> bool:
        return self._take(1) == 1

    def read_bits(self, n: int) -> BitBuffer:
        """Read ``n`` raw bits as a new buffer."""
        return BitBuffer(self._take(n), n)

    def check_padding(self, strict: bool) -> bool:
        """
        Consume the trailing padding bits.

        Returns True when all remaining bits are zero. With ``strict`` a
        non-zero bit raises InvalidPadding instead.
        """
        remaining = self.remaining_bits()
        value = self._take(remaining)
        if value and strict:
            raise InvalidPadding(
                f"{remaining} trailing padding bits are not zero "
                f"({format(value, f'0{remaining}b')})")
        return value == 0


class BitWriter:
    """Append-only bit sink."""

    def __init__(self):
        self._value = 0
        self._length = 0

    @property
    def length(self) -> int:
        return self._length

    def write_uint(self, value: int, bits: int) -> None:
        """Append ``value`` as a ``bits`` wide unsigned integer."""
        if not 0 <= bits <= MAX_UINT_BITS:
            raise ValueOutOfRange(f"Integer width {bits} outside 0..{MAX_UINT_BITS}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueOutOfRange(f"Expected an integer, got {value!r}")
        if value < 0 or value >> bits:
            raise ValueOutOfRange(f"Value {value} does not fit in {bits} bits")
        self._value = (self._value << bits) | value
        self._length += bits

    def write_bool(self, value: bool) -> None:
        self._value = (self._value << 1) | (1 if value else 0)
        self._length += 1

    def write_bits(self, buffer: BitBuffer) -> None:
        self._value = (self._value << buffer.length) | buffer.value
        self._length += buffer.length

    def pad_to_multiple(self, multiple: int) -> None:
        """Append zero bits until the length is a multiple of ``multiple``."""
        extra = -self._length % multiple
        self._value <<= extra
        self._length += extra

    def to_buffer(self) -> BitBuffer:
        return BitBuffer(self._value, self._length)
