"""
Tests for the bit buffer, reader and writer.
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from bit_buffer import BitBuffer, BitReader, BitWriter
from gpp_errors import InvalidPadding, TruncatedInput, ValueOutOfRange


class TestBitBuffer:
    """Tests for the immutable BitBuffer."""

    def test_bitstring_roundtrip(self):
        """Test conversion to and from '0'/'1' strings."""
        buf = BitBuffer.from_bitstring('0000 1011')
        assert buf.length == 8
        assert buf.value == 11
        assert buf.to_bitstring() == '00001011'

    def test_leading_zeros_count(self):
        """Test that leading zero bits are part of the length."""
        assert len(BitBuffer.from_bitstring('000')) == 3
        assert BitBuffer.from_bitstring('000').value == 0

    def test_empty(self):
        """Test the empty buffer."""
        buf = BitBuffer()
        assert len(buf) == 0
        assert buf.to_bitstring() == ''
        assert list(buf) == []

    def test_value_must_fit(self):
        """Test that a value wider than the length is rejected."""
        with pytest.raises(ValueOutOfRange):
            BitBuffer(8, 3)

    def test_iteration_order(self):
        """Test iteration yields wire order, first bit first."""
        buf = BitBuffer.from_bitstring('100')
        assert list(buf) == [True, False, False]
        assert buf.bit(0) is True
        assert buf.bit(2) is False

    def test_bit_out_of_range(self):
        """Test indexing past the end."""
        with pytest.raises(IndexError):
            BitBuffer.from_bitstring('10').bit(2)

    def test_concat_and_prefix(self):
        """Test concatenation and prefix extraction."""
        buf = BitBuffer.from_bitstring('101').concat(BitBuffer.from_bitstring('0011'))
        assert buf.to_bitstring() == '1010011'
        assert buf.prefix(3).to_bitstring() == '101'
        assert buf.prefix(0).length == 0


class TestBitReader:
    """Tests for sequential reads."""

    def test_read_uint(self):
        """Test reading fields at non-aligned offsets."""
        reader = BitReader(BitBuffer.from_bitstring('000011 000001 1'))
        assert reader.read_uint(6) == 3
        assert reader.read_uint(6) == 1
        assert reader.read_bool() is True
        assert reader.remaining_bits() == 0
        assert reader.position == 13

    def test_read_zero_bits(self):
        """Test that a zero-width read returns 0 without moving."""
        reader = BitReader(BitBuffer.from_bitstring('1'))
        assert reader.read_uint(0) == 0
        assert reader.position == 0

    def test_read_64_bits(self):
        """Test the widest supported integer."""
        value = (1 << 64) - 1
        reader = BitReader(BitBuffer(value, 64))
        assert reader.read_uint(64) == value

    def test_read_too_wide(self):
        """Test that widths over 64 bits are rejected."""
        reader = BitReader(BitBuffer(0, 80))
        with pytest.raises(ValueOutOfRange):
            reader.read_uint(65)

    def test_truncated(self):
        """Test reading past the end of the buffer."""
        reader = BitReader(BitBuffer.from_bitstring('10101'))
        reader.read_uint(3)
        with pytest.raises(TruncatedInput) as exc_info:
            reader.read_uint(3)
        assert exc_info.value.needed == 3
        assert exc_info.value.available == 2

    def test_truncated_does_not_advance(self):
        """Test the cursor stays put after a failed read."""
        reader = BitReader(BitBuffer.from_bitstring('10'))
        with pytest.raises(TruncatedInput):
            reader.read_uint(3)
        assert reader.position == 0

    def test_peek(self):
        """Test peeking leaves the cursor unchanged."""
        reader = BitReader(BitBuffer.from_bitstring('011000'))
        assert reader.peek_uint(3) == 3
        assert reader.position == 0
        assert reader.read_uint(3) == 3

    def test_read_bits(self):
        """Test reading a raw sub-buffer."""
        reader = BitReader(BitBuffer.from_bitstring('1 0110 1'))
        reader.read_bool()
        assert reader.read_bits(4).to_bitstring() == '0110'

    def test_padding_zero(self):
        """Test zero padding is accepted in both modes."""
        reader = BitReader(BitBuffer.from_bitstring('1 0000'))
        reader.read_bool()
        assert reader.check_padding(strict=True) is True
        assert reader.remaining_bits() == 0

    def test_padding_nonzero_lenient(self):
        """Test non-zero padding is reported but accepted when lenient."""
        reader = BitReader(BitBuffer.from_bitstring('1 0010'))
        reader.read_bool()
        assert reader.check_padding(strict=False) is False
        assert reader.remaining_bits() == 0

    def test_padding_nonzero_strict(self):
        """Test non-zero padding fails in strict mode."""
        reader = BitReader(BitBuffer.from_bitstring('1 0010'))
        reader.read_bool()
        with pytest.raises(InvalidPadding):
            reader.check_padding(strict=True)


class TestBitWriter:
    """Tests for the append-only writer."""

    def test_write_fields(self):
        """Test writing mixed-width fields."""
        writer = BitWriter()
        writer.write_uint(3, 6)
        writer.write_bool(True)
        writer.write_bits(BitBuffer.from_bitstring('01'))
        assert writer.to_buffer().to_bitstring() == '000011101'
        assert writer.length == 9

    def test_value_too_wide(self):
        """Test that 2**w does not fit in w bits."""
        writer = BitWriter()
        with pytest.raises(ValueOutOfRange):
            writer.write_uint(64, 6)

    def test_negative(self):
        """Test negative values are rejected."""
        with pytest.raises(ValueOutOfRange):
            BitWriter().write_uint(-1, 8)

    def test_non_integer(self):
        """Test bools and floats are not accepted as integers."""
        writer = BitWriter()
        with pytest.raises(ValueOutOfRange):
            writer.write_uint(True, 1)
        with pytest.raises(ValueOutOfRange):
            writer.write_uint(1.0, 8)

    def test_pad_to_multiple(self):
        """Test explicit zero padding."""
        writer = BitWriter()
        writer.write_uint(1, 3)
        writer.pad_to_multiple(8)
        assert writer.to_buffer().to_bitstring() == '00100000'
        writer.pad_to_multiple(8)
        assert writer.length == 8
