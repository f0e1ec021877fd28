"""Unit tests for area-based charges."""

from decimal import Decimal

import pytest

from condobill.services.dues_service import compute_dues_charge, compute_parking_fee
from condobill.services.errors import ValidationError


class TestDuesCharge:
    def test_area_times_rate(self):
        assert compute_dues_charge(Decimal("40"), Decimal("60")) == Decimal("2400")

    def test_fractional_area_is_not_rounded(self):
        assert compute_dues_charge(Decimal("33.333"), Decimal("60")) == Decimal("1999.980")

    def test_zero_area(self):
        assert compute_dues_charge(Decimal("0"), Decimal("60")) == Decimal("0")

    def test_negative_area_rejected(self):
        with pytest.raises(ValidationError, match="area cannot be negative"):
            compute_dues_charge(Decimal("-1"), Decimal("60"))


class TestParkingFee:
    def test_parking_area_times_rate(self):
        assert compute_parking_fee(Decimal("12.5"), Decimal("60")) == Decimal("750")

    def test_negative_parking_area_rejected(self):
        with pytest.raises(ValidationError, match="Parking area"):
            compute_parking_fee(Decimal("-12.5"), Decimal("60"))
