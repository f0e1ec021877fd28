"""Utility charge calculator: electric with a minimum, water by seven tiers.

Amounts are returned unrounded; they are quantized when stored on a Bill.
"""

from decimal import Decimal

from condobill.models.meter_reading import UtilityType
from condobill.models.unit import UnitType
from condobill.services.errors import ValidationError
from condobill.services.money import ZERO, as_decimal
from condobill.services.rates import RateTable, WaterTierSchedule


def _consumption(value) -> Decimal:
    consumption = as_decimal(value)
    if consumption < ZERO:
        raise ValidationError(f"Consumption cannot be negative: {consumption}")
    return consumption


def compute_electric_charge(consumption, rate, minimum_charge) -> Decimal:
    """Electric charge: consumption x rate, floored at the minimum charge.

    The minimum is a floor, not an addition: 0 kWh and 5 kWh at 8.39 with a
    50.00 minimum both cost 50, 6 kWh costs 50.34.

    Raises:
        ValidationError: If consumption is negative
    """
    amount = _consumption(consumption) * as_decimal(rate)
    minimum = as_decimal(minimum_charge)
    return amount if amount > minimum else minimum


def water_tier_for(consumption, schedule: WaterTierSchedule) -> int:
    """Tier number (1-7) a consumption falls into."""
    c = _consumption(consumption)
    b = schedule.boundaries
    if c <= b[0]:
        return 1
    if c < b[1]:
        return 2
    for tier in range(3, 7):
        if b[tier - 2] <= c < b[tier - 1]:
            return tier
    return 7


def compute_water_charge(consumption, schedule: WaterTierSchedule) -> Decimal:
    """Water charge by tier.

    Tiers 1-3 are flat fees. Tiers 4-7 charge the tier's rate on the
    consumption above the tier anchor (previous boundary minus one) on top
    of the accumulated total of the tiers below.

    Raises:
        ValidationError: If consumption is negative
    """
    c = _consumption(consumption)
    tier = water_tier_for(c, schedule)
    if tier <= 3:
        return schedule.fees[tier - 1]
    return schedule.base(tier) + (c - schedule.anchor(tier)) * schedule.marginal_rate(tier)


def compute_utility_charge(
    consumption,
    rate_table: RateTable,
    customer_class: UnitType | str = UnitType.RESIDENTIAL,
    utility_type: UtilityType | str = UtilityType.ELECTRIC,
) -> Decimal:
    """Charge for one utility using the given rate table.

    Args:
        consumption: Metered consumption (kWh or cu.m), non-negative
        rate_table: Rates to apply
        customer_class: RESIDENTIAL or COMMERCIAL (selects the water schedule)
        utility_type: ELECTRIC or WATER

    Returns:
        Unrounded charge as Decimal

    Raises:
        ValidationError: If consumption is negative or the utility type is unknown
    """
    try:
        utility = UtilityType(utility_type)
    except ValueError as e:
        raise ValidationError(f"Unknown utility type: {utility_type}") from e

    if utility == UtilityType.ELECTRIC:
        return compute_electric_charge(
            consumption, rate_table.electric_rate, rate_table.electric_min_charge
        )
    return compute_water_charge(consumption, rate_table.water_schedule(customer_class))


__all__ = [
    "compute_electric_charge",
    "compute_utility_charge",
    "compute_water_charge",
    "water_tier_for",
]
