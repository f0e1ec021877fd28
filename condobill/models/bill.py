"""Bill ORM model: one statement per unit per billing month, or an opening balance."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condobill.models import Base, BaseModel
from condobill.services.errors import ConsistencyError
from condobill.services.money import CURRENCY_EPSILON, ZERO, as_decimal, to_money


class BillType(str, Enum):
    """Kinds of bills."""

    REGULAR = "REGULAR"
    """Monthly bill produced by bill generation"""

    OPENING_BALANCE = "OPENING_BALANCE"
    """One-off bill seeded from legacy records"""


class BillStatus(str, Enum):
    """Persisted lifecycle status. OVERDUE is only ever derived."""

    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


OUTSTANDING_STATUSES = (BillStatus.UNPAID, BillStatus.PARTIAL, BillStatus.OVERDUE)


def resolve_status(balance: Decimal, paid_amount: Decimal) -> BillStatus:
    """Balance-driven status rule applied after every allocation."""
    if as_decimal(balance) <= CURRENCY_EPSILON:
        return BillStatus.PAID
    if as_decimal(paid_amount) > CURRENCY_EPSILON:
        return BillStatus.PARTIAL
    return BillStatus.UNPAID


def _amount(comment: str) -> Mapped[Decimal]:
    return mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"), comment=comment)


class Bill(Base, BaseModel):
    """
    Bill for a unit and billing month.

    ``total_amount`` is always derived from the stored components and
    ``balance`` from total and paid; use ``recompute_total`` and
    ``apply_paid_amount`` instead of assigning them directly.
    ``version_id`` guards concurrent allocation against lost updates.
    """

    __tablename__ = "bills"

    bill_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="Sequential number, e.g. MT-202511-0001",
    )
    tenant_id: Mapped[int] = mapped_column(nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )
    bill_type: Mapped[BillType] = mapped_column(
        String(20),
        nullable=False,
        default=BillType.REGULAR,
    )

    # Schedule
    billing_month: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="First day of the billing month",
    )
    billing_period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    billing_period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    statement_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Components
    electric_amount: Mapped[Decimal] = _amount("Electric charge")
    water_amount: Mapped[Decimal] = _amount("Water charge")
    association_dues: Mapped[Decimal] = _amount("Association dues")
    parking_fee: Mapped[Decimal] = _amount("Parking fee")
    sp_assessment: Mapped[Decimal] = _amount("Special assessment")
    penalty_amount: Mapped[Decimal] = _amount("Penalty on earlier unpaid bills")
    other_charges: Mapped[Decimal] = _amount("Other charges, incl. legacy arrears")

    # Deductions
    discounts: Mapped[Decimal] = _amount("Discounts")
    advance_dues_applied: Mapped[Decimal] = _amount("Advance dues credit drawn")
    advance_util_applied: Mapped[Decimal] = _amount("Advance utilities credit drawn")

    # Settlement
    total_amount: Mapped[Decimal] = _amount("Components minus deductions")
    paid_amount: Mapped[Decimal] = _amount("Sum of confirmed allocations")
    balance: Mapped[Decimal] = _amount("max(0, total - paid)")
    status: Mapped[BillStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BillStatus.UNPAID,
        index=True,
    )
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)

    version_id: Mapped[int] = mapped_column(nullable=False)

    # Relationships
    unit: Mapped["Unit"] = relationship(  # noqa: F821
        "Unit",
        back_populates="bills",
        foreign_keys=[unit_id],
    )
    bill_payments: Mapped[list["BillPayment"]] = relationship(  # noqa: F821
        "BillPayment",
        back_populates="bill",
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index("idx_bill_tenant_number", "tenant_id", "bill_number", unique=True),
        Index("idx_bill_unit_month", "unit_id", "billing_month"),
        Index("idx_bill_unit_status", "unit_id", "status"),
    )

    @property
    def charges(self) -> Decimal:
        """Sum of the positive components."""
        return sum(
            (
                as_decimal(value)
                for value in (
                    self.electric_amount,
                    self.water_amount,
                    self.association_dues,
                    self.parking_fee,
                    self.sp_assessment,
                    self.penalty_amount,
                    self.other_charges,
                )
            ),
            ZERO,
        )

    @property
    def deductions(self) -> Decimal:
        return (
            as_decimal(self.discounts)
            + as_decimal(self.advance_dues_applied)
            + as_decimal(self.advance_util_applied)
        )

    def compute_total(self) -> Decimal:
        """Total derived from components, rounded to currency precision."""
        return to_money(self.charges - self.deductions)

    def recompute_total(self) -> Decimal:
        self.total_amount = self.compute_total()
        self.apply_paid_amount(as_decimal(self.paid_amount))
        return self.total_amount

    def apply_paid_amount(self, paid_amount: Decimal) -> None:
        """Set paid amount and re-derive balance and status."""
        paid = to_money(paid_amount)
        remaining = as_decimal(self.total_amount) - paid
        self.paid_amount = paid
        self.balance = to_money(remaining if remaining > ZERO else ZERO)
        self.status = resolve_status(self.balance, paid)

    def check_consistency(self) -> None:
        """Raise ConsistencyError if stored balance disagrees with total and paid."""
        total = as_decimal(self.total_amount)
        paid = as_decimal(self.paid_amount)
        expected = total - paid
        if expected < ZERO:
            expected = ZERO
        if to_money(expected) != to_money(self.balance):
            raise ConsistencyError(
                f"Bill {self.bill_number}: balance {self.balance} != "
                f"max(0, total {total} - paid {paid})"
            )

    def display_status(self, as_of: date) -> BillStatus:
        """Persisted status, or OVERDUE when unsettled past the due date."""
        status = BillStatus(self.status)
        if status in (BillStatus.UNPAID, BillStatus.PARTIAL) and self.due_date and as_of > self.due_date:
            return BillStatus.OVERDUE
        return status

    def __repr__(self) -> str:
        return (
            f"<Bill(id={self.id}, number={self.bill_number}, unit_id={self.unit_id}, "
            f"month={self.billing_month}, type={self.bill_type}, total={self.total_amount}, "
            f"paid={self.paid_amount}, balance={self.balance}, status={self.status})>"
        )


__all__ = ["Bill", "BillStatus", "BillType", "OUTSTANDING_STATUSES", "resolve_status"]
