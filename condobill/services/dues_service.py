"""Area-based charges: association dues and parking."""

from decimal import Decimal

from condobill.services.errors import ValidationError
from condobill.services.money import ZERO, as_decimal


def _area_charge(area, rate, label: str) -> Decimal:
    area_value = as_decimal(area)
    if area_value < ZERO:
        raise ValidationError(f"{label} area cannot be negative: {area_value}")
    rate_value = as_decimal(rate)
    if rate_value < ZERO:
        raise ValidationError(f"{label} rate cannot be negative: {rate_value}")
    return area_value * rate_value


def compute_dues_charge(area, rate) -> Decimal:
    """Association dues: floor area (sq.m) x dues rate. Unrounded."""
    return _area_charge(area, rate, "Unit")


def compute_parking_fee(parking_area, rate) -> Decimal:
    """Parking fee: parking area (sq.m) x parking rate. Unrounded."""
    return _area_charge(parking_area, rate, "Parking")


__all__ = ["compute_dues_charge", "compute_parking_fee"]
