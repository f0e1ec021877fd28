"""Unit tests for electric and water charge calculation."""

from decimal import Decimal

import pytest

from condobill.models import UnitType, UtilityType
from condobill.services.errors import ValidationError
from condobill.services.rates import DEFAULT_COMMERCIAL_WATER, DEFAULT_RESIDENTIAL_WATER, RateTable
from condobill.services.utility_charge_service import (
    compute_electric_charge,
    compute_utility_charge,
    compute_water_charge,
    water_tier_for,
)


class TestElectricCharge:
    """Electric: consumption x rate with a minimum floor."""

    @pytest.mark.parametrize(
        "consumption, expected",
        [
            ("0", Decimal("50")),
            ("5", Decimal("50")),
            ("6", Decimal("50.34")),
            ("100", Decimal("839.00")),
        ],
    )
    def test_minimum_is_a_floor(self, consumption, expected):
        """Minimum replaces small charges, it is never added on top."""
        result = compute_electric_charge(Decimal(consumption), Decimal("8.39"), Decimal("50"))
        assert result == expected

    def test_negative_consumption_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            compute_electric_charge(Decimal("-1"), Decimal("8.39"), Decimal("50"))

    def test_no_intermediate_rounding(self):
        result = compute_electric_charge(Decimal("10.333"), Decimal("8.39"), Decimal("50"))
        assert result == Decimal("86.69387")


class TestWaterResidential:
    """Residential seven-tier schedule with default boundaries."""

    @pytest.mark.parametrize(
        "consumption, expected",
        [
            ("0", "80"),
            ("1", "80"),
            ("2", "200"),
            ("5", "200"),
            ("6", "370"),
            ("10", "370"),
            ("11", "410"),
            ("20", "770"),
            ("21", "815"),
            ("30", "1220"),
            ("31", "1270"),
            ("40", "1720"),
            ("41", "1775"),
            ("45", "1995"),
        ],
    )
    def test_tier_amounts(self, consumption, expected):
        assert compute_water_charge(Decimal(consumption), DEFAULT_RESIDENTIAL_WATER) == Decimal(expected)

    def test_fractional_consumption_between_first_boundaries(self):
        assert compute_water_charge(Decimal("1.5"), DEFAULT_RESIDENTIAL_WATER) == Decimal("200")

    def test_charge_never_decreases(self):
        """Charge is non-decreasing over consumption, including across tier changes."""
        previous = Decimal("0")
        for tenth in range(0, 601):
            amount = compute_water_charge(Decimal(tenth) / 10, DEFAULT_RESIDENTIAL_WATER)
            assert amount >= previous
            previous = amount

    def test_negative_consumption_rejected(self):
        with pytest.raises(ValidationError):
            compute_water_charge(Decimal("-0.5"), DEFAULT_RESIDENTIAL_WATER)


class TestWaterCommercial:
    @pytest.mark.parametrize(
        "consumption, expected",
        [
            ("0", "200"),
            ("3", "250"),
            ("6", "740"),
            ("11", "795"),
            ("21", "1350"),
            ("31", "1955"),
            ("41", "2625"),
        ],
    )
    def test_tier_amounts(self, consumption, expected):
        assert compute_water_charge(Decimal(consumption), DEFAULT_COMMERCIAL_WATER) == Decimal(expected)


class TestWaterTierFor:
    @pytest.mark.parametrize(
        "consumption, tier",
        [("0", 1), ("1", 1), ("2", 2), ("6", 3), ("11", 4), ("21", 5), ("31", 6), ("41", 7), ("100", 7)],
    )
    def test_tier_number(self, consumption, tier):
        assert water_tier_for(Decimal(consumption), DEFAULT_RESIDENTIAL_WATER) == tier


class TestComputeUtilityCharge:
    """Dispatch by utility type and customer class."""

    def test_electric(self, rate_table):
        assert compute_utility_charge(Decimal("6"), rate_table, UnitType.RESIDENTIAL, UtilityType.ELECTRIC) == Decimal(
            "50.34"
        )

    def test_water_uses_customer_class(self, rate_table):
        residential = compute_utility_charge(Decimal("0"), rate_table, UnitType.RESIDENTIAL, UtilityType.WATER)
        commercial = compute_utility_charge(Decimal("0"), rate_table, "COMMERCIAL", "WATER")
        assert residential == Decimal("80")
        assert commercial == Decimal("200")

    def test_custom_rate_table(self):
        table = RateTable(electric_rate=Decimal("10"), electric_min_charge=Decimal("0"))
        assert compute_utility_charge(Decimal("3"), table, utility_type=UtilityType.ELECTRIC) == Decimal("30")

    def test_unknown_utility_type(self, rate_table):
        with pytest.raises(ValidationError, match="Unknown utility type"):
            compute_utility_charge(Decimal("1"), rate_table, UnitType.RESIDENTIAL, "GAS")
