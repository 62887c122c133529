"""
Tests for typed field codecs.
"""

import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'tools'))

from bit_buffer import BitBuffer, BitReader, BitWriter
from field_codec import (
    FIELD_CODECS, EPOCH,
    RangeEntry, BitfieldIds, RangeIds, PublisherRestriction, RestrictionType,
    decode_fibonacci, encode_fibonacci, entries_from_ids, expand_entries,
    optimal_vendor_set,
)
from gpp_errors import TruncatedInput, ValueOutOfRange


def reader_for(bits: str) -> BitReader:
    return BitReader(BitBuffer.from_bitstring(bits))


def encoded(type_name: str, params: dict, value) -> str:
    writer = BitWriter()
    FIELD_CODECS[type_name].encode(writer, params, value)
    return writer.to_buffer().to_bitstring()


def decoded(type_name: str, params: dict, bits: str):
    reader = reader_for(bits)
    value = FIELD_CODECS[type_name].decode(reader, params)
    assert reader.remaining_bits() == 0
    return value


class TestRangeEntry:
    """Tests for range entry values."""

    def test_single(self):
        """Test a single-ID entry."""
        entry = RangeEntry(5)
        assert not entry.is_range
        assert entry.last == 5
        assert list(entry.ids()) == [5]

    def test_range(self):
        """Test an inclusive range."""
        entry = RangeEntry(10, 12)
        assert entry.is_range
        assert list(entry.ids()) == [10, 11, 12]

    def test_end_before_start(self):
        """Test end < start is rejected, never swapped."""
        with pytest.raises(ValueOutOfRange):
            RangeEntry(12, 10)

    def test_entries_from_ids(self):
        """Test consecutive IDs collapse into ranges."""
        assert entries_from_ids([12, 5, 10, 11]) == (RangeEntry(5), RangeEntry(10, 12))
        assert entries_from_ids([]) == ()
        assert expand_entries(entries_from_ids({1, 2, 3, 7})) == {1, 2, 3, 7}


class TestVendorSets:
    """Tests for bitfield and range ID sets."""

    def test_bitfield_membership(self):
        """Test BitfieldIds membership and max_id."""
        ids = BitfieldIds.from_ids({3, 7})
        assert ids.max_id == 7
        assert 3 in ids
        assert 4 not in ids

    def test_range_membership(self):
        """Test RangeIds membership without expansion."""
        ids = RangeIds(12, (RangeEntry(5), RangeEntry(10, 12)))
        assert 11 in ids
        assert 6 not in ids
        assert ids.ids() == {5, 10, 11, 12}

    def test_optimal_prefers_bitfield_for_dense(self):
        """Test dense small sets are carried as a bitfield."""
        assert isinstance(optimal_vendor_set({5, 10, 11, 12}), BitfieldIds)

    def test_optimal_prefers_range_for_sparse(self):
        """Test sparse sets with a large max ID use ranges."""
        vendors = optimal_vendor_set({1, 1000})
        assert isinstance(vendors, RangeIds)
        assert vendors.max_id == 1000


class TestPrimitives:
    """Tests for uint, bool, datetime and string fields."""

    def test_uint(self):
        """Test fixed-width integers."""
        assert encoded('uint', {'bits': 12}, 31) == '000000011111'
        assert decoded('uint', {'bits': 12}, '000000011111') == 31

    def test_uint_overflow(self):
        """Test a value one past the width fails."""
        with pytest.raises(ValueOutOfRange):
            encoded('uint', {'bits': 6}, 64)

    def test_bool(self):
        """Test single-bit flags."""
        assert encoded('bool', {}, True) == '1'
        assert decoded('bool', {}, '0') is False

    def test_bool_rejects_int(self):
        """Test integers are not silently accepted as flags."""
        with pytest.raises(ValueOutOfRange):
            encoded('bool', {}, 1)

    def test_datetime(self):
        """Test deciseconds since the epoch."""
        moment = datetime(2022, 4, 20, 22, 0, tzinfo=timezone.utc)
        bits = encoded('datetime', {}, moment)
        assert len(bits) == 36
        assert int(bits, 2) == 16504920000
        assert decoded('datetime', {}, bits) == moment

    def test_datetime_epoch(self):
        """Test the zero timestamp."""
        assert decoded('datetime', {}, '0' * 36) == EPOCH

    def test_naive_datetime_is_utc(self):
        """Test naive datetimes encode as UTC."""
        naive = datetime(2022, 4, 20, 22, 0)
        aware = naive.replace(tzinfo=timezone.utc)
        assert encoded('datetime', {}, naive) == encoded('datetime', {}, aware)

    def test_string(self):
        """Test 6-bit letter codes."""
        assert encoded('string', {'length': 2}, 'EN') == '000100001101'
        assert decoded('string', {'length': 2}, '000011000100') == 'DE'

    @pytest.mark.parametrize('value', ['E', 'ENG', 'eé', 5])
    def test_string_invalid(self, value):
        """Test wrong lengths and out-of-alphabet characters."""
        with pytest.raises(ValueOutOfRange):
            encoded('string', {'length': 2}, value)


class TestBitfield:
    """Tests for fixed-length bitfields."""

    def test_decode(self):
        """Test bit i maps to ID i+1."""
        assert decoded('bitfield', {'length': 4}, '0101') == {2, 4}

    def test_encode(self):
        """Test purposes 1 and 3 in a 24-bit field."""
        assert encoded('bitfield', {'length': 24}, {1, 3}) == '101' + '0' * 21

    def test_zero_length(self):
        """Test an empty bitfield reads nothing."""
        assert decoded('bitfield', {'length': 0}, '') == frozenset()

    def test_id_outside_length(self):
        """Test IDs beyond the field length fail."""
        with pytest.raises(ValueOutOfRange):
            encoded('bitfield', {'length': 4}, {5})
        with pytest.raises(ValueOutOfRange):
            encoded('bitfield', {'length': 4}, {0})


class TestIntList:
    """Tests for lists of fixed-width integers."""

    def test_roundtrip(self):
        """Test 2-bit values."""
        bits = encoded('int_list', {'length': 3, 'bits': 2}, (1, 2, 0))
        assert bits == '011000'
        assert decoded('int_list', {'length': 3, 'bits': 2}, bits) == (1, 2, 0)

    def test_wrong_length(self):
        """Test the value count must match the declared length."""
        with pytest.raises(ValueOutOfRange):
            encoded('int_list', {'length': 3, 'bits': 2}, (1, 2))


class TestFibonacci:
    """Tests for Fibonacci (Zeckendorf) integers."""

    @pytest.mark.parametrize('value,bits', [
        (1, '11'),
        (2, '011'),
        (3, '0011'),
        (4, '1011'),
        (5, '00011'),
        (6, '10011'),
        (7, '01011'),
        (12, '101011'),
    ])
    def test_known_codes(self, value, bits):
        """Test known Zeckendorf codes."""
        writer = BitWriter()
        encode_fibonacci(writer, value)
        assert writer.to_buffer().to_bitstring() == bits
        assert decode_fibonacci(reader_for(bits)) == value

    def test_zero_not_encodable(self):
        """Test Fibonacci coding starts at 1."""
        with pytest.raises(ValueOutOfRange):
            encode_fibonacci(BitWriter(), 0)

    def test_unterminated(self):
        """Test a code without its 11 terminator runs out of input."""
        with pytest.raises(TruncatedInput):
            decode_fibonacci(reader_for('0101010'))


class TestRanges:
    """Tests for integer and Fibonacci range lists."""

    ENTRIES = (RangeEntry(5), RangeEntry(10, 12))

    def test_integer_range_layout(self):
        """Test count, is-range flag and 16-bit IDs."""
        bits = encoded('integer_range', {}, self.ENTRIES)
        assert bits == (
            '000000000010'
            + '0' + format(5, '016b')
            + '1' + format(10, '016b') + format(12, '016b')
        )
        assert decoded('integer_range', {}, bits) == self.ENTRIES

    def test_integer_range_custom_width(self):
        """Test the ID width parameter."""
        bits = encoded('integer_range', {'id_bits': 6}, (RangeEntry(3),))
        assert bits == '000000000001' + '0' + '000011'

    def test_integer_range_end_before_start(self):
        """Test a decoded range with end < start fails."""
        bits = '000000000001' + '1' + format(10, '016b') + format(5, '016b')
        with pytest.raises(ValueOutOfRange):
            decoded('integer_range', {}, bits)

    def test_integer_range_truncated_count(self):
        """Test a count larger than the available entries."""
        bits = '000000000010' + '0' + format(5, '016b')
        with pytest.raises(TruncatedInput):
            FIELD_CODECS['integer_range'].decode(reader_for(bits), {})

    def test_fibonacci_range(self):
        """Test offsets relative to the previous ID."""
        bits = '000000000010' + '0' + '011' + '1' + '11' + '011'
        assert decoded('fibonacci_range', {}, bits) == (RangeEntry(2), RangeEntry(3, 5))
        assert encoded('fibonacci_range', {}, (RangeEntry(2), RangeEntry(3, 5))) == bits

    def test_fibonacci_range_must_increase(self):
        """Test repeated or descending IDs cannot be Fibonacci coded."""
        with pytest.raises(ValueOutOfRange):
            encoded('fibonacci_range', {}, (RangeEntry(5), RangeEntry(5)))
        with pytest.raises(ValueOutOfRange):
            encoded('fibonacci_range', {}, (RangeEntry(6), RangeEntry(2)))


class TestOptimizedRange:
    """Tests for the bitfield/range tagged union."""

    def test_range_mode(self):
        """Test mode bit 1 carries range entries."""
        value = RangeIds(12, (RangeEntry(5), RangeEntry(10, 12)))
        bits = encoded('optimized_range', {}, value)
        assert bits[:17] == format(12, '016b') + '1'
        assert decoded('optimized_range', {}, bits) == value

    def test_bitfield_mode(self):
        """Test mode bit 0 carries a bitfield of max_id flags."""
        value = BitfieldIds(4, frozenset({1, 4}))
        bits = encoded('optimized_range', {}, value)
        assert bits == format(4, '016b') + '0' + '1001'
        assert decoded('optimized_range', {}, bits) == value

    def test_empty(self):
        """Test max_id 0 with an empty bitfield."""
        assert decoded('optimized_range', {}, '0' * 17) == BitfieldIds()

    def test_fibonacci_variant(self):
        """Test the Fibonacci-coded range mode."""
        value = RangeIds(737, (RangeEntry(2), RangeEntry(700, 737)))
        bits = encoded('optimized_fibonacci_range', {}, value)
        assert decoded('optimized_fibonacci_range', {}, bits) == value

    def test_rejects_plain_sets(self):
        """Test a bare set must be wrapped in a VendorSet."""
        with pytest.raises(ValueOutOfRange):
            encoded('optimized_range', {}, {1, 2})


class TestRestrictions:
    """Tests for TCF publisher restrictions."""

    def test_roundtrip(self):
        """Test purpose, type and vendor ranges survive a round trip."""
        value = (
            PublisherRestriction(2, RestrictionType.REQUIRE_CONSENT,
                                 (RangeEntry(8), RangeEntry(20, 25))),
            PublisherRestriction(7, RestrictionType.NOT_ALLOWED, (RangeEntry(1),)),
        )
        bits = encoded('restrictions', {}, value)
        assert bits.startswith('000000000010' + '000010' + '01')
        result = decoded('restrictions', {}, bits)
        assert result == value
        assert result[0].vendor_ids() == {8, 20, 21, 22, 23, 24, 25}
        assert result[0].restriction_type is RestrictionType.REQUIRE_CONSENT

    def test_none(self):
        """Test a zero count."""
        assert decoded('restrictions', {}, '0' * 12) == ()

    # count 3, then purpose 2 / require consent / vendor 8
    FIRST = ('000000000011'
             + '000010' + '01' + '000000000001' + '0' + format(8, '016b'))
    # purpose 7 / not allowed / two entries: 20-11, then a cut-off single
    CUT_SECOND = ('000111' + '00' + '000000000010'
                  + '1' + format(20, '016b') + format(11, '016b') + '0' + '00101')

    def test_cut_restriction_raises(self):
        """Test a restriction running past the end fails by default."""
        with pytest.raises(TruncatedInput):
            FIELD_CODECS['restrictions'].decode(reader_for(self.FIRST + self.CUT_SECOND), {})

    def test_drop_truncated(self):
        """Test a cut-off restriction and everything after it are dropped."""
        result = decoded('restrictions', {'drop_truncated': True}, self.FIRST + self.CUT_SECOND)
        assert result == (PublisherRestriction(2, RestrictionType.REQUIRE_CONSENT,
                                               (RangeEntry(8),)),)

    def test_drop_truncated_keeps_first(self):
        """Test a cut-off first restriction still fails."""
        bits = '000000000010' + self.CUT_SECOND
        with pytest.raises(TruncatedInput):
            FIELD_CODECS['restrictions'].decode(reader_for(bits), {'drop_truncated': True})

    def test_drop_truncated_checks_kept(self):
        """Test a complete restriction with end < start still fails."""
        complete = ('000111' + '00' + '000000000001'
                    + '1' + format(20, '016b') + format(11, '016b'))
        bits = self.FIRST.replace('000000000011', '000000000010', 1) + complete
        with pytest.raises(ValueOutOfRange):
            FIELD_CODECS['restrictions'].decode(reader_for(bits), {'drop_truncated': True})
