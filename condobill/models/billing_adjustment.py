"""Billing adjustment ORM model: per-unit special assessment and discounts for a month."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from condobill.models import Base, BaseModel


class BillingAdjustment(Base, BaseModel):
    """Amounts entered by the administrator before generating a billing month."""

    __tablename__ = "billing_adjustments"

    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )
    billing_month: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the billing month the adjustment applies to",
    )
    sp_assessment: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )
    discounts: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_adjustment_unit_month", "unit_id", "billing_month", unique=True),
    )

    def __repr__(self) -> str:
        return (
            f"<BillingAdjustment(unit_id={self.unit_id}, month={self.billing_month}, "
            f"sp_assessment={self.sp_assessment}, discounts={self.discounts})>"
        )


__all__ = ["BillingAdjustment"]
