"""Payment ORM model for money received from a unit."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condobill.models import Base, BaseModel


class PaymentStatus(str, Enum):
    """Payment lifecycle. Components are immutable once CONFIRMED."""

    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


def _component(comment: str) -> Mapped[Decimal]:
    return mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"), comment=comment)


class Payment(Base, BaseModel):
    """Model representing one received-money event for a unit.

    The payer's money is split into named components; ``total_amount``
    equals their sum. Allocation against bills is recorded as BillPayment
    rows; whatever could not be allocated is credited to the unit's
    advance balance and remembered in the ``*_credited`` columns so a void
    can reverse it exactly.
    """

    __tablename__ = "payments"

    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
        comment="Unit the payment was received for",
    )

    # Receipt details
    or_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        comment="Official receipt number (unique per tenant)",
    )
    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    payment_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="CASH",
    )
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Components
    electric_amount: Mapped[Decimal] = _component("Paid toward electric")
    water_amount: Mapped[Decimal] = _component("Paid toward water")
    dues_amount: Mapped[Decimal] = _component("Paid toward dues and parking")
    past_dues_amount: Mapped[Decimal] = _component("Paid toward penalty and arrears")
    sp_assessment_amount: Mapped[Decimal] = _component("Paid toward special assessment")
    advance_dues_amount: Mapped[Decimal] = _component("Explicit advance for dues")
    advance_util_amount: Mapped[Decimal] = _component("Explicit advance for utilities")
    other_advance_amount: Mapped[Decimal] = _component("Other advance")
    total_amount: Mapped[Decimal] = _component("Sum of components")

    # Advance credit actually posted by allocation
    advance_dues_credited: Mapped[Decimal] = _component("Posted to advance dues bucket")
    advance_utilities_credited: Mapped[Decimal] = _component("Posted to advance utilities bucket")

    status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.CONFIRMED,
        index=True,
    )

    # Relationships
    unit: Mapped["Unit"] = relationship(  # noqa: F821
        "Unit",
        back_populates="payments",
        foreign_keys=[unit_id],
    )
    bill_payments: Mapped[list["BillPayment"]] = relationship(  # noqa: F821
        "BillPayment",
        back_populates="payment",
    )

    __table_args__ = (
        Index("idx_payment_tenant_or", "tenant_id", "or_number", unique=True),
        Index("idx_payment_unit_date", "unit_id", "payment_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, unit_id={self.unit_id}, or_number={self.or_number!r}, "
            f"total={self.total_amount}, date={self.payment_date}, status={self.status})>"
        )


__all__ = ["Payment", "PaymentStatus"]
