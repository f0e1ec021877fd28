"""Advance balance ORM model: per-unit credit held against future bills."""

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condobill.models import Base, BaseModel


class UnitAdvanceBalance(Base, BaseModel):
    """Running non-negative credit split into dues and utilities buckets."""

    __tablename__ = "unit_advance_balances"

    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )
    advance_dues: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Credit usable against association dues",
    )
    advance_utilities: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Credit usable against electric and water",
    )

    unit: Mapped["Unit"] = relationship("Unit", foreign_keys=[unit_id])  # noqa: F821

    __table_args__ = (
        Index("idx_advance_tenant_unit", "tenant_id", "unit_id", unique=True),
        CheckConstraint("advance_dues >= 0", name="ck_advance_dues_non_negative"),
        CheckConstraint("advance_utilities >= 0", name="ck_advance_utilities_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<UnitAdvanceBalance(unit_id={self.unit_id}, dues={self.advance_dues}, "
            f"utilities={self.advance_utilities})>"
        )


__all__ = ["UnitAdvanceBalance"]
