"""BillPayment ORM model: the part of one payment applied to one bill."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condobill.models import Base, BaseModel


def _component(comment: str) -> Mapped[Decimal]:
    return mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"), comment=comment)


class BillPayment(Base, BaseModel):
    """Allocation record, broken down by the payment component categories.

    ``total_amount`` equals the sum of the component columns. Rows belonging
    to a cancelled payment are kept for audit and ignored when computing
    what has been paid on a bill.
    """

    __tablename__ = "bill_payments"

    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id"),
        nullable=False,
        index=True,
    )
    bill_id: Mapped[int] = mapped_column(
        ForeignKey("bills.id"),
        nullable=False,
        index=True,
    )

    electric_amount: Mapped[Decimal] = _component("Applied to electric")
    water_amount: Mapped[Decimal] = _component("Applied to water")
    dues_amount: Mapped[Decimal] = _component("Applied to dues and parking")
    penalty_amount: Mapped[Decimal] = _component("Applied to penalty and arrears")
    sp_assessment_amount: Mapped[Decimal] = _component("Applied to special assessment")
    total_amount: Mapped[Decimal] = _component("Sum of components")

    # Relationships
    payment: Mapped["Payment"] = relationship(  # noqa: F821
        "Payment",
        back_populates="bill_payments",
        foreign_keys=[payment_id],
    )
    bill: Mapped["Bill"] = relationship(  # noqa: F821
        "Bill",
        back_populates="bill_payments",
        foreign_keys=[bill_id],
    )

    __table_args__ = (Index("idx_bill_payment_pair", "payment_id", "bill_id", unique=True),)

    def __repr__(self) -> str:
        return (
            f"<BillPayment(id={self.id}, payment_id={self.payment_id}, bill_id={self.bill_id}, "
            f"total={self.total_amount})>"
        )


__all__ = ["BillPayment"]
