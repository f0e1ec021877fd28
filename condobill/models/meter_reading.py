"""Meter reading ORM model for electric and water consumption per billing period."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condobill.models import Base, BaseModel


class UtilityType(str, Enum):
    """Metered utilities."""

    ELECTRIC = "ELECTRIC"
    WATER = "WATER"


class MeterReading(Base, BaseModel):
    """Previous/present reading pair for one unit, utility and billing period.

    ``billing_period`` is the first day of the month whose reading day closes
    the period. A bill for month M consumes the readings of month M-1.
    """

    __tablename__ = "meter_readings"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )
    utility_type: Mapped[UtilityType] = mapped_column(
        String(20),
        nullable=False,
    )
    billing_period: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="First day of the reading month",
    )
    previous_reading: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    present_reading: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    unit: Mapped["Unit"] = relationship("Unit", foreign_keys=[unit_id])  # noqa: F821

    __table_args__ = (
        Index(
            "idx_reading_unit_type_period",
            "unit_id",
            "utility_type",
            "billing_period",
            unique=True,
        ),
    )

    @property
    def consumption(self) -> Decimal:
        """Present minus previous. Negative means rollover or a data error."""
        return Decimal(str(self.present_reading)) - Decimal(str(self.previous_reading))

    @property
    def is_rollover(self) -> bool:
        return self.consumption < 0

    def __repr__(self) -> str:
        return (
            f"<MeterReading(id={self.id}, unit_id={self.unit_id}, type={self.utility_type}, "
            f"period={self.billing_period}, previous={self.previous_reading}, "
            f"present={self.present_reading})>"
        )


__all__ = ["MeterReading", "UtilityType"]
