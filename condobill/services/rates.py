"""Rate tables passed explicitly into every calculator.

A ``RateTable`` is an immutable, validated snapshot of a tenant's
``RateSettings`` row. Calculators never look settings up themselves, so
several rate-table versions can be evaluated side by side in tests or
threads.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from condobill.models.rate_settings import RateSettings
from condobill.models.unit import UnitType
from condobill.services.config import load_config
from condobill.services.errors import ConsistencyError, NotFoundError, ValidationError
from condobill.services.money import ZERO, as_decimal

logger = logging.getLogger(__name__)

TIER_COUNT = 7


@dataclass(frozen=True)
class WaterTierSchedule:
    """Seven-tier water schedule for one customer class.

    ``boundaries`` are the six upper bounds of tiers 1-6 (tier 7 is open).
    ``fees`` are the flat amounts of tiers 1-3 and ``rates`` the marginal
    per-cu.m rates of tiers 4-7.
    """

    boundaries: tuple[Decimal, Decimal, Decimal, Decimal, Decimal, Decimal]
    fees: tuple[Decimal, Decimal, Decimal]
    rates: tuple[Decimal, Decimal, Decimal, Decimal]

    def __post_init__(self):
        if len(self.boundaries) != 6 or len(self.fees) != 3 or len(self.rates) != 4:
            raise ConsistencyError("Water schedule needs 6 boundaries, 3 flat fees and 4 rates")
        previous = None
        for index, boundary in enumerate(self.boundaries, start=1):
            if previous is not None and boundary <= previous:
                raise ConsistencyError(
                    f"Water tier {index} boundary {boundary} must be greater than "
                    f"tier {index - 1} boundary {previous}"
                )
            previous = boundary
        for value in self.fees + self.rates:
            if value < ZERO:
                raise ConsistencyError(f"Water tier fees and rates must be non-negative, got {value}")

    def anchor(self, tier: int) -> Decimal:
        """Consumption subtracted in a marginal tier (tiers 4-7): boundary of tier-1 minus one."""
        return self.boundaries[tier - 2] - 1

    def base(self, tier: int) -> Decimal:
        """Flat total a marginal tier (4-7) builds on.

        Tier 4 builds on the tier 3 fee; every later tier adds the full
        width of the previous marginal tier at that tier's rate.
        """
        total = self.fees[2]
        for previous in range(4, tier):
            width = self.anchor(previous + 1) - self.anchor(previous)
            total += width * self.marginal_rate(previous)
        return total

    def marginal_rate(self, tier: int) -> Decimal:
        return self.rates[tier - 4]


@dataclass(frozen=True)
class RateTable:
    """Rates of one tenant at one point in time."""

    electric_rate: Decimal = Decimal("8.39")
    electric_min_charge: Decimal = Decimal("50")
    association_dues_rate: Decimal = Decimal("60")
    parking_rate: Decimal = Decimal("60")
    penalty_rate: Decimal = Decimal("0.10")
    sp_assessment_rate: Decimal = Decimal("0")
    residential_water: WaterTierSchedule = field(default_factory=lambda: DEFAULT_RESIDENTIAL_WATER)
    commercial_water: WaterTierSchedule = field(default_factory=lambda: DEFAULT_COMMERCIAL_WATER)

    def __post_init__(self):
        for name in (
            "electric_rate",
            "electric_min_charge",
            "association_dues_rate",
            "parking_rate",
            "penalty_rate",
            "sp_assessment_rate",
        ):
            if getattr(self, name) < ZERO:
                raise ConsistencyError(f"{name} must be non-negative, got {getattr(self, name)}")

    def water_schedule(self, customer_class: UnitType | str) -> WaterTierSchedule:
        if UnitType(customer_class) == UnitType.COMMERCIAL:
            return self.commercial_water
        return self.residential_water

    @classmethod
    def from_settings(cls, settings: RateSettings) -> "RateTable":
        """Build a validated table from a tenant's settings row."""

        def water(prefix: str) -> WaterTierSchedule:
            value = lambda name: as_decimal(getattr(settings, f"water_{prefix}_{name}"))  # noqa: E731
            return WaterTierSchedule(
                boundaries=tuple(value(f"tier{n}_max") for n in range(1, 7)),
                fees=tuple(value(f"tier{n}_rate") for n in range(1, 4)),
                rates=tuple(value(f"tier{n}_rate") for n in range(4, 8)),
            )

        return cls(
            electric_rate=as_decimal(settings.electric_rate),
            electric_min_charge=as_decimal(settings.electric_min_charge),
            association_dues_rate=as_decimal(settings.association_dues_rate),
            parking_rate=as_decimal(settings.parking_rate),
            penalty_rate=as_decimal(settings.penalty_rate),
            sp_assessment_rate=as_decimal(settings.sp_assessment_rate),
            residential_water=water("res"),
            commercial_water=water("com"),
        )


DEFAULT_RESIDENTIAL_WATER = WaterTierSchedule(
    boundaries=(Decimal("1"), Decimal("6"), Decimal("11"), Decimal("21"), Decimal("31"), Decimal("41")),
    fees=(Decimal("80"), Decimal("200"), Decimal("370")),
    rates=(Decimal("40"), Decimal("45"), Decimal("50"), Decimal("55")),
)

DEFAULT_COMMERCIAL_WATER = WaterTierSchedule(
    boundaries=(Decimal("1"), Decimal("6"), Decimal("11"), Decimal("21"), Decimal("31"), Decimal("41")),
    fees=(Decimal("200"), Decimal("250"), Decimal("740")),
    rates=(Decimal("55"), Decimal("60"), Decimal("65"), Decimal("85")),
)


def _check_column(name: str) -> None:
    if name in ("id", "tenant_id", "created_at", "updated_at") or not hasattr(RateSettings, name):
        raise ValueError(f"Unknown rate setting: {name}")


class RateSettingsService:
    """Loads and updates the current rate snapshot of a tenant."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_settings(self, tenant_id: int) -> RateSettings:
        settings = self.db.execute(
            select(RateSettings).where(RateSettings.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if settings is None:
            raise NotFoundError(f"Rate settings not found for tenant {tenant_id}")
        return settings

    def get_rate_table(self, tenant_id: int) -> RateTable:
        """Current rate table of a tenant.

        Raises:
            NotFoundError: If the tenant has no settings row
            ConsistencyError: If the stored tiers are not ascending
        """
        return RateTable.from_settings(self.get_settings(tenant_id))

    def create_settings(self, tenant_id: int, penalty_rate=None, **values) -> RateTable:
        """Create a tenant's settings row from the column defaults.

        Args:
            tenant_id: New tenant
            penalty_rate: Initial penalty rate (default: DEFAULT_PENALTY_RATE)
            **values: Column name -> value overriding other defaults

        Returns:
            The validated RateTable of the new row

        Raises:
            ValidationError: If the tenant already has settings
            ValueError: If a value names an unknown column
            ConsistencyError: If the values break tier ordering
        """
        existing = self.db.execute(
            select(RateSettings.id).where(RateSettings.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError(f"Rate settings already exist for tenant {tenant_id}")
        for name in values:
            _check_column(name)
        if penalty_rate is None:
            penalty_rate = load_config().default_penalty_rate

        settings = RateSettings(tenant_id=tenant_id, penalty_rate=as_decimal(penalty_rate), **values)
        self.db.add(settings)
        try:
            # Column defaults are only filled in on flush
            self.db.flush()
            table = RateTable.from_settings(settings)
        except ConsistencyError:
            self.db.rollback()
            raise

        self.db.commit()
        logger.info("Created rate settings for tenant %d (penalty rate %s)", tenant_id, table.penalty_rate)
        return table

    def update_rates(self, tenant_id: int, **values) -> RateTable:
        """Update settings columns and validate the result before committing.

        Args:
            tenant_id: Tenant whose settings change
            **values: Column name -> new value (e.g. electric_rate="9.10")

        Returns:
            The validated RateTable after the update

        Raises:
            ValueError: If a value names an unknown column
            ConsistencyError: If the update would break tier ordering
        """
        settings = self.get_settings(tenant_id)
        for name, value in values.items():
            _check_column(name)
            setattr(settings, name, value)

        try:
            table = RateTable.from_settings(settings)
        except ConsistencyError:
            self.db.rollback()
            raise

        self.db.commit()
        logger.info("Updated rate settings for tenant %d: %s", tenant_id, sorted(values))
        return table


__all__ = [
    "DEFAULT_COMMERCIAL_WATER",
    "DEFAULT_RESIDENTIAL_WATER",
    "RateSettingsService",
    "RateTable",
    "WaterTierSchedule",
]
