"""Unit tests for parsers module."""

from datetime import date
from decimal import Decimal

import pytest

from condobill.services.parsers import (
    parse_boolean,
    parse_currency,
    parse_date,
    parse_decimal,
    parse_percentage,
)


class TestParseDate:
    """Tests for parse_date function."""

    def test_parse_iso_date(self):
        assert parse_date("2025-11-05") == date(2025, 11, 5)

    def test_parse_us_date(self):
        """Receipts use month/day/year."""
        assert parse_date("11/05/2025") == date(2025, 11, 5)

    def test_parse_empty_string(self):
        assert parse_date("") is None

    def test_parse_none(self):
        assert parse_date(None) is None

    def test_parse_whitespace_only(self):
        assert parse_date("   ") is None

    def test_parse_invalid_format(self):
        with pytest.raises(ValueError, match="Cannot parse date"):
            parse_date("05.11.2025")

    def test_parse_invalid_date(self):
        """Test parsing an impossible date raises ValueError."""
        with pytest.raises(ValueError, match="Cannot parse date"):
            parse_date("2025-02-30")


class TestParseDecimal:
    def test_thousand_separators(self):
        assert parse_decimal("1,234.50") == Decimal("1234.50")

    def test_plain_number(self):
        assert parse_decimal("8.39") == Decimal("8.39")

    def test_empty_returns_none(self):
        assert parse_decimal("") is None
        assert parse_decimal(None) is None

    def test_invalid_number(self):
        with pytest.raises(ValueError, match="Cannot parse decimal"):
            parse_decimal("1.2.3")

    def test_not_a_number_rejected(self):
        with pytest.raises(ValueError, match="not a finite number"):
            parse_decimal("NaN")


class TestParseCurrency:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("₱7,000.00", Decimal("7000.00")),
            ("PHP 1,500", Decimal("1500")),
            ("Php 250.75", Decimal("250.75")),
            ("P100", Decimal("100")),
            ("  3,150.00 ", Decimal("3150.00")),
        ],
    )
    def test_prefixes(self, value, expected):
        assert parse_currency(value) == expected

    def test_empty_returns_none(self):
        assert parse_currency("") is None

    def test_invalid_amount(self):
        with pytest.raises(ValueError, match="Cannot parse currency"):
            parse_currency("₱12abc")


class TestParsePercentage:
    def test_percent_sign(self):
        assert parse_percentage("10%") == Decimal("0.10")

    def test_fractional_percent(self):
        assert parse_percentage("2.5 %") == Decimal("0.025")

    def test_bare_number_is_a_rate(self):
        assert parse_percentage("0.10") == Decimal("0.10")

    def test_invalid(self):
        with pytest.raises(ValueError, match="Cannot parse percentage"):
            parse_percentage("ten%")


class TestParseBoolean:
    @pytest.mark.parametrize("value", ["Yes", "y", "TRUE", "1", " yes "])
    def test_truthy(self, value):
        assert parse_boolean(value) is True

    @pytest.mark.parametrize("value", ["No", "0", "", None, "maybe"])
    def test_falsy(self, value):
        assert parse_boolean(value) is False
