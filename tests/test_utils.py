"""Tests for shared utility functions."""

from datetime import date, datetime

import pytest

from formengine.utils import is_blank, normalize_phone, parse_hhmm, parse_iso_date, to_iso_date


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("0412 345 678") == "0412345678"

    def test_strips_dashes(self):
        assert normalize_phone("0412-345-678") == "0412345678"

    def test_strips_parentheses(self):
        assert normalize_phone("(04) 1234 5678") == "0412345678"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+1 555 010 2030") == "+15550102030"

    def test_strips_whitespace(self):
        assert normalize_phone("  0412345678  ") == "0412345678"


class TestIsBlank:
    @pytest.mark.parametrize("value", [None, "", "   ", [], {}, ()])
    def test_blank(self, value):
        assert is_blank(value)

    @pytest.mark.parametrize("value", [0, False, "x", ["a"], {"k": None}, 0.0])
    def test_not_blank(self, value):
        assert not is_blank(value)


class TestDates:
    def test_parse_iso_date(self):
        assert parse_iso_date(" 2025-06-10 ") == date(2025, 6, 10)

    def test_parse_iso_date_rejects_other_formats(self):
        with pytest.raises(ValueError):
            parse_iso_date("10/06/2025")

    def test_parse_hhmm(self):
        assert parse_hhmm("09:30").hour == 9

    def test_parse_hhmm_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            parse_hhmm("24:10")

    @pytest.mark.parametrize("value,expected", [
        ("1985-04-12T00:00:00.000Z", "1985-04-12"),
        ("1985-04-12", "1985-04-12"),
        (date(1985, 4, 12), "1985-04-12"),
        (datetime(1985, 4, 12, 23, 59), "1985-04-12"),
        ("12 April 1985", None),
        ("1985-02-30", None),
        (None, None),
    ])
    def test_to_iso_date(self, value, expected):
        assert to_iso_date(value) == expected
