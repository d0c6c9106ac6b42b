"""
Unit tests for value normalization
"""

import pytest
from datetime import datetime

from core.exceptions import NumericOverflowError
from indexer.normalizer import (
    I64_MAX,
    from_decimal_text,
    normalize_address,
    normalize_hash,
    parse_quantity,
    timestamp_to_datetime,
    to_decimal_text,
    to_i64,
    to_i64_or_none,
)


class TestNarrowing:

    def test_largest_signed_64_bit_value_is_accepted(self):
        assert to_i64(2 ** 63 - 1, "raffleId") == I64_MAX

    def test_one_past_the_limit_overflows(self):
        with pytest.raises(NumericOverflowError) as exc_info:
            to_i64(2 ** 63, "raffleId")

        assert exc_info.value.context["field"] == "raffleId"
        assert exc_info.value.context["value"] == str(2 ** 63)

    def test_optional_narrowing_drops_out_of_range(self):
        assert to_i64_or_none(None) is None
        assert to_i64_or_none(42) == 42
        assert to_i64_or_none(2 ** 255) is None

    def test_timestamp_conversion(self):
        assert timestamp_to_datetime(1767225600, "endTime") == datetime(2026, 1, 1)

    def test_unrepresentable_timestamp(self):
        with pytest.raises(NumericOverflowError):
            timestamp_to_datetime(2 ** 62, "endTime")


class TestDecimalText:

    def test_full_precision_round_trip(self):
        big = 2 ** 256 - 1
        assert from_decimal_text(to_decimal_text(big)) == big

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            to_decimal_text(-1)

    def test_non_digit_rejected(self):
        with pytest.raises(ValueError):
            from_decimal_text("12a")


class TestHexNormalization:

    def test_address_is_lower_cased(self):
        mixed = "0xF39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        assert normalize_address(mixed) == mixed.lower()

    def test_address_from_bytes(self):
        assert normalize_address(b"\x11" * 20) == "0x" + "11" * 20

    def test_short_address_rejected(self):
        with pytest.raises(ValueError):
            normalize_address("0x1234")

    def test_hash_gets_prefix(self):
        assert normalize_hash("AB" * 32) == "0x" + "ab" * 32

    @pytest.mark.parametrize("raw,expected", [
        ("0x0", 0),
        ("0x1a", 26),
        ("26", 26),
        (26, 26),
    ])
    def test_parse_quantity(self, raw, expected):
        assert parse_quantity(raw) == expected

    @pytest.mark.parametrize("raw", ["0x", "", "abc", None, True])
    def test_parse_quantity_rejects_garbage(self, raw):
        with pytest.raises(ValueError):
            parse_quantity(raw)
