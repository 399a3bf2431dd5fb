from datetime import datetime
from decimal import Decimal

import pytest

from retailpos.money import (
    AmountError,
    as_number,
    digits_to_number,
    extract_digits,
    format_currency,
    parse_amount,
    round_money,
    to_decimal,
)
from retailpos.time_utils import format_duration, shift_elapsed_seconds, to_utc_z


class TestAmounts:
    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_bool_is_not_an_amount(self):
        with pytest.raises(AmountError):
            to_decimal(True)

    @pytest.mark.parametrize("value", ["abc", "NaN", None, [1]])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(AmountError):
            to_decimal(value)

    def test_parse_amount_rounds_half_up_and_rejects_negative(self):
        assert parse_amount("10.005") == Decimal("10.01")
        with pytest.raises(AmountError):
            parse_amount(-1)
        assert parse_amount(-1, allow_negative=True) == Decimal("-1.00")

    def test_round_money(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")

    def test_as_number(self):
        assert as_number(Decimal("10000.00")) == 10000
        assert isinstance(as_number(Decimal("10000.00")), int)
        assert as_number(Decimal("12.50")) == 12.5
        assert as_number(None) is None


class TestDisplay:
    @pytest.mark.parametrize("value,expected", [
        (0, "Rp 0"),
        (10000, "Rp 10.000"),
        (Decimal("1250000.4"), "Rp 1.250.000"),
        (-2000, "-Rp 2.000"),
    ])
    def test_format_currency(self, value, expected):
        assert format_currency(value) == expected

    def test_masked_input_digits(self):
        assert extract_digits("Rp 12.500") == "12500"
        assert digits_to_number("Rp 12.500") == 12500
        assert digits_to_number("") == 0
        assert digits_to_number(None) == 0


class TestShiftDuration:
    def test_open_shift_runs_against_now(self):
        opened = datetime(2024, 5, 1, 8, 0, 0)
        now = datetime(2024, 5, 1, 9, 30, 15)
        assert shift_elapsed_seconds(opened, None, "OPEN", now) == 5415
        assert shift_elapsed_seconds(opened, None, "ACTIVE", now) == 5415

    def test_closed_shift_uses_closed_at(self):
        opened = datetime(2024, 5, 1, 8, 0, 0)
        closed = datetime(2024, 5, 1, 16, 0, 0)
        later = datetime(2024, 5, 2, 0, 0, 0)
        assert shift_elapsed_seconds(opened, closed, "CLOSED", later) == 8 * 3600

    def test_clock_skew_is_absolute(self):
        opened = datetime(2024, 5, 1, 8, 0, 10)
        now = datetime(2024, 5, 1, 8, 0, 0)
        assert shift_elapsed_seconds(opened, None, "OPEN", now) == 10

    @pytest.mark.parametrize("seconds,expected", [
        (0, "00:00:00"),
        (5415, "01:30:15"),
        (-5, "00:00:00"),
        (360000, "100:00:00"),
    ])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_to_utc_z(self):
        assert to_utc_z(datetime(2024, 5, 1, 8, 0, 0, 123)) == "2024-05-01T08:00:00Z"
