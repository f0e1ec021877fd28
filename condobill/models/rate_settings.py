"""Rate settings ORM model: the single current rate snapshot of a tenant."""

from decimal import Decimal

from sqlalchemy import Numeric
from sqlalchemy.orm import Mapped, mapped_column

from condobill.models import Base, BaseModel


def _money(default: str, comment: str) -> Mapped[Decimal]:
    return mapped_column(Numeric(12, 4), nullable=False, default=Decimal(default), comment=comment)


class RateSettings(Base, BaseModel):
    """Per-tenant rates and billing schedule.

    Water tiers are stored column-per-value for both customer classes:
    six ascending upper boundaries (``*_tier{n}_max``), the flat fee of
    tiers 1-3 and the marginal rate of tiers 4-7 (``*_tier{n}_rate``).
    Use ``condobill.services.rates.RateTable.from_settings`` to turn a row
    into the validated value passed to the calculators.
    """

    __tablename__ = "rate_settings"

    tenant_id: Mapped[int] = mapped_column(
        nullable=False,
        unique=True,
        index=True,
        comment="Owning tenant (one current snapshot per tenant)",
    )

    # Electric and area rates
    electric_rate: Mapped[Decimal] = _money("8.39", "Electric rate per kWh")
    electric_min_charge: Mapped[Decimal] = _money("50", "Electric minimum charge")
    association_dues_rate: Mapped[Decimal] = _money("60", "Association dues per sq.m")
    parking_rate: Mapped[Decimal] = _money("60", "Parking fee per sq.m")
    penalty_rate: Mapped[Decimal] = _money("0.10", "Monthly penalty rate (0.10 = 10%)")
    sp_assessment_rate: Mapped[Decimal] = _money("0", "Flat special assessment per unit")

    # Billing schedule
    reading_day: Mapped[int] = mapped_column(nullable=False, default=26)
    billing_day_of_month: Mapped[int] = mapped_column(nullable=False, default=27)
    statement_delay: Mapped[int] = mapped_column(nullable=False, default=10)
    due_date_delay: Mapped[int] = mapped_column(nullable=False, default=10)
    grace_period_days: Mapped[int] = mapped_column(nullable=False, default=0)

    # Water - residential
    water_res_tier1_max: Mapped[Decimal] = _money("1", "Residential tier 1 upper bound")
    water_res_tier1_rate: Mapped[Decimal] = _money("80", "Residential tier 1 flat fee")
    water_res_tier2_max: Mapped[Decimal] = _money("6", "Residential tier 2 upper bound")
    water_res_tier2_rate: Mapped[Decimal] = _money("200", "Residential tier 2 flat fee")
    water_res_tier3_max: Mapped[Decimal] = _money("11", "Residential tier 3 upper bound")
    water_res_tier3_rate: Mapped[Decimal] = _money("370", "Residential tier 3 flat fee")
    water_res_tier4_max: Mapped[Decimal] = _money("21", "Residential tier 4 upper bound")
    water_res_tier4_rate: Mapped[Decimal] = _money("40", "Residential tier 4 rate per cu.m")
    water_res_tier5_max: Mapped[Decimal] = _money("31", "Residential tier 5 upper bound")
    water_res_tier5_rate: Mapped[Decimal] = _money("45", "Residential tier 5 rate per cu.m")
    water_res_tier6_max: Mapped[Decimal] = _money("41", "Residential tier 6 upper bound")
    water_res_tier6_rate: Mapped[Decimal] = _money("50", "Residential tier 6 rate per cu.m")
    water_res_tier7_rate: Mapped[Decimal] = _money("55", "Residential tier 7 rate per cu.m")

    # Water - commercial
    water_com_tier1_max: Mapped[Decimal] = _money("1", "Commercial tier 1 upper bound")
    water_com_tier1_rate: Mapped[Decimal] = _money("200", "Commercial tier 1 flat fee")
    water_com_tier2_max: Mapped[Decimal] = _money("6", "Commercial tier 2 upper bound")
    water_com_tier2_rate: Mapped[Decimal] = _money("250", "Commercial tier 2 flat fee")
    water_com_tier3_max: Mapped[Decimal] = _money("11", "Commercial tier 3 upper bound")
    water_com_tier3_rate: Mapped[Decimal] = _money("740", "Commercial tier 3 flat fee")
    water_com_tier4_max: Mapped[Decimal] = _money("21", "Commercial tier 4 upper bound")
    water_com_tier4_rate: Mapped[Decimal] = _money("55", "Commercial tier 4 rate per cu.m")
    water_com_tier5_max: Mapped[Decimal] = _money("31", "Commercial tier 5 upper bound")
    water_com_tier5_rate: Mapped[Decimal] = _money("60", "Commercial tier 5 rate per cu.m")
    water_com_tier6_max: Mapped[Decimal] = _money("41", "Commercial tier 6 upper bound")
    water_com_tier6_rate: Mapped[Decimal] = _money("65", "Commercial tier 6 rate per cu.m")
    water_com_tier7_rate: Mapped[Decimal] = _money("85", "Commercial tier 7 rate per cu.m")

    def __repr__(self) -> str:
        return (
            f"<RateSettings(id={self.id}, tenant_id={self.tenant_id}, "
            f"electric_rate={self.electric_rate}, dues_rate={self.association_dues_rate}, "
            f"penalty_rate={self.penalty_rate})>"
        )


__all__ = ["RateSettings"]
