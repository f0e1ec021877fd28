"""Payment allocation engine.

Distributes one payment, already split into components, across a unit's
outstanding bills. The algorithm is an ordered reduction:

    for each component in (electric, water, dues, past dues, special assessment):
        for each outstanding bill, oldest billing month first:
            take min(remaining, bill's outstanding for the component,
                     bill's unallocated balance)
        stop the component once its remaining amount is zero

It terminates when every component is exhausted or the bill list is.
Whatever is left is credited to the advance balance: electric and water
leftovers to the utilities bucket, every other leftover to the dues
bucket, together with the amounts the payer marked as advance. Every
peso of the payment therefore lands either on a bill or in the advance
balance:

    sum(bill allocations) + advance delta == payment total

This module is pure. It works on frozen snapshots and returns a result
for the transactional layer (``payment_service``) to persist.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal

from condobill.models.bill import OUTSTANDING_STATUSES, Bill, BillStatus, resolve_status
from condobill.services.errors import ValidationError
from condobill.services.money import CENT, ZERO, as_decimal, non_negative, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComponentAmounts:
    """Amounts per bill component category."""

    electric: Decimal = ZERO
    water: Decimal = ZERO
    dues: Decimal = ZERO
    """Association dues and parking"""
    penalty: Decimal = ZERO
    """Penalty and legacy arrears (paid from the past-dues component)"""
    sp_assessment: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.electric + self.water + self.dues + self.penalty + self.sp_assessment

    @property
    def utilities(self) -> Decimal:
        return self.electric + self.water

    def plus(self, other: "ComponentAmounts") -> "ComponentAmounts":
        return ComponentAmounts(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    def minus(self, other: "ComponentAmounts") -> "ComponentAmounts":
        """Component-wise difference, floored at zero."""
        return ComponentAmounts(
            **{f.name: non_negative(getattr(self, f.name) - getattr(other, f.name)) for f in fields(self)}
        )

    def with_amount(self, component: str, amount: Decimal) -> "ComponentAmounts":
        return replace(self, **{component: getattr(self, component) + amount})


# Allocation order: payment component -> bill component
ALLOCATION_ORDER = (
    ("electric", "electric"),
    ("water", "water"),
    ("dues", "dues"),
    ("past_dues", "penalty"),
    ("sp_assessment", "sp_assessment"),
)

# Deductions are netted from components in these orders
_ADVANCE_UTILITIES_ORDER = ("electric", "water")
_ADVANCE_DUES_ORDER = ("dues", "sp_assessment", "penalty")
_DISCOUNT_ORDER = ("dues", "sp_assessment", "penalty", "electric", "water")


@dataclass(frozen=True)
class PaymentComponents:
    """A payment split by the payer into named components.

    ``total`` is the declared total; when omitted it is the component sum.
    """

    electric: Decimal = ZERO
    water: Decimal = ZERO
    dues: Decimal = ZERO
    past_dues: Decimal = ZERO
    sp_assessment: Decimal = ZERO
    advance_dues: Decimal = ZERO
    advance_utilities: Decimal = ZERO
    other_advance: Decimal = ZERO
    total: Decimal | None = None

    def amounts(self) -> dict[str, Decimal]:
        return {f.name: as_decimal(getattr(self, f.name)) for f in fields(self) if f.name != "total"}

    @property
    def component_sum(self) -> Decimal:
        return sum(self.amounts().values(), ZERO)

    @property
    def declared_total(self) -> Decimal:
        return self.component_sum if self.total is None else as_decimal(self.total)

    def validate(self) -> None:
        """Reject negative components, sub-centavo amounts and a total mismatch.

        Raises:
            ValidationError: On any invalid amount
        """
        for name, amount in self.amounts().items():
            if amount < ZERO:
                raise ValidationError(f"Payment component {name} cannot be negative: {amount}")
            if amount != amount.quantize(CENT):
                raise ValidationError(f"Payment component {name} has more than 2 decimals: {amount}")
        if self.declared_total != self.component_sum:
            raise ValidationError(
                f"Payment total {self.declared_total} does not equal the sum of its "
                f"components {self.component_sum}"
            )

    @classmethod
    def from_payment(cls, payment) -> "PaymentComponents":
        return cls(
            electric=as_decimal(payment.electric_amount),
            water=as_decimal(payment.water_amount),
            dues=as_decimal(payment.dues_amount),
            past_dues=as_decimal(payment.past_dues_amount),
            sp_assessment=as_decimal(payment.sp_assessment_amount),
            advance_dues=as_decimal(payment.advance_dues_amount),
            advance_utilities=as_decimal(payment.advance_util_amount),
            other_advance=as_decimal(payment.other_advance_amount),
            total=as_decimal(payment.total_amount),
        )


def _deduct(amounts: ComponentAmounts, deduction: Decimal, order) -> tuple[ComponentAmounts, Decimal]:
    remaining = deduction
    for component in order:
        if remaining <= ZERO:
            break
        available = getattr(amounts, component)
        taken = min(available, remaining)
        amounts = replace(amounts, **{component: available - taken})
        remaining -= taken
    return amounts, remaining


def payable_components(bill: Bill) -> ComponentAmounts:
    """What a bill asks to be paid per component, net of its deductions.

    Advance credit already applied reduces the components it was drawn
    for; discounts reduce dues first. When deductions exceed charges
    every component is zero.
    """
    amounts = ComponentAmounts(
        electric=as_decimal(bill.electric_amount),
        water=as_decimal(bill.water_amount),
        dues=as_decimal(bill.association_dues) + as_decimal(bill.parking_fee),
        penalty=as_decimal(bill.penalty_amount) + as_decimal(bill.other_charges),
        sp_assessment=as_decimal(bill.sp_assessment),
    )
    amounts, rest = _deduct(amounts, as_decimal(bill.advance_util_applied), _ADVANCE_UTILITIES_ORDER)
    amounts, rest_dues = _deduct(amounts, as_decimal(bill.advance_dues_applied), _ADVANCE_DUES_ORDER)
    amounts, _ = _deduct(amounts, as_decimal(bill.discounts) + rest + rest_dues, _DISCOUNT_ORDER)
    return amounts


@dataclass(frozen=True)
class OutstandingBill:
    """Snapshot of an outstanding bill as the allocator sees it."""

    bill_id: int
    billing_month: date
    total_amount: Decimal
    paid_amount: Decimal
    payable: ComponentAmounts
    paid: ComponentAmounts = field(default_factory=ComponentAmounts)
    status: BillStatus = BillStatus.UNPAID
    bill_number: str = ""

    @property
    def balance(self) -> Decimal:
        return non_negative(self.total_amount - self.paid_amount)

    @property
    def outstanding(self) -> ComponentAmounts:
        return self.payable.minus(self.paid)

    @classmethod
    def from_bill(cls, bill: Bill, paid: ComponentAmounts | None = None) -> "OutstandingBill":
        """Snapshot a stored bill.

        Args:
            bill: Bill row
            paid: Already-paid amounts per component (from confirmed BillPayments)

        Raises:
            ConsistencyError: If the stored balance disagrees with total and paid
        """
        bill.check_consistency()
        return cls(
            bill_id=bill.id,
            billing_month=bill.billing_month,
            total_amount=as_decimal(bill.total_amount),
            paid_amount=as_decimal(bill.paid_amount),
            payable=payable_components(bill),
            paid=paid or ComponentAmounts(),
            status=BillStatus(bill.status),
            bill_number=bill.bill_number,
        )


@dataclass(frozen=True)
class BillAllocation:
    """Money from this payment applied to one bill (becomes a BillPayment)."""

    bill_id: int
    amounts: ComponentAmounts

    @property
    def total(self) -> Decimal:
        return self.amounts.total


@dataclass(frozen=True)
class BillUpdate:
    bill_id: int
    paid_amount: Decimal
    balance: Decimal
    status: BillStatus


@dataclass(frozen=True)
class AdvanceBalanceDelta:
    advance_dues: Decimal = ZERO
    advance_utilities: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.advance_dues + self.advance_utilities


@dataclass(frozen=True)
class AllocationResult:
    unit_id: int
    bill_payments: list[BillAllocation]
    updated_bills: list[BillUpdate]
    advance_delta: AdvanceBalanceDelta

    @property
    def allocated_total(self) -> Decimal:
        return sum((allocation.total for allocation in self.bill_payments), ZERO)


def allocate_payment(unit_id, payment_components: PaymentComponents, outstanding_bills) -> AllocationResult:
    """Allocate a payment across a unit's outstanding bills, oldest first.

    Args:
        unit_id: Unit the payment belongs to
        payment_components: Validated against negatives and the declared total
        outstanding_bills: OutstandingBill snapshots. Bills not in
            UNPAID/PARTIAL/OVERDUE are ignored; order does not matter,
            they are sorted by billing month.

    Returns:
        AllocationResult with one BillAllocation per touched bill, the
        resulting paid/balance/status of each and the advance credit.

    Raises:
        ValidationError: On a missing unit id or invalid components
    """
    if unit_id is None:
        raise ValidationError("Payment allocation requires a unit id")
    payment_components.validate()

    bills = sorted(
        (bill for bill in outstanding_bills if BillStatus(bill.status) in OUTSTANDING_STATUSES),
        key=lambda bill: (bill.billing_month, bill.bill_id),
    )
    allocated = {bill.bill_id: ComponentAmounts() for bill in bills}
    leftover = {}

    for payment_field, bill_component in ALLOCATION_ORDER:
        remaining = as_decimal(getattr(payment_components, payment_field))
        for bill in bills:
            if remaining <= ZERO:
                break
            taken = allocated[bill.bill_id]
            component_open = getattr(bill.outstanding, bill_component) - getattr(taken, bill_component)
            balance_open = bill.balance - taken.total
            amount = min(remaining, component_open, balance_open)
            if amount <= ZERO:
                continue
            allocated[bill.bill_id] = taken.with_amount(bill_component, amount)
            logger.debug(
                "Unit %s: %s %s to %s of bill %s",
                unit_id,
                payment_field,
                amount,
                bill_component,
                bill.bill_number or bill.bill_id,
            )
            remaining -= amount
        leftover[payment_field] = remaining

    bill_payments = []
    updated_bills = []
    for bill in bills:
        amounts = allocated[bill.bill_id]
        if amounts.total <= ZERO:
            continue
        bill_payments.append(BillAllocation(bill_id=bill.bill_id, amounts=amounts))
        paid = to_money(bill.paid_amount + amounts.total)
        balance = to_money(non_negative(bill.total_amount - paid))
        updated_bills.append(
            BillUpdate(bill_id=bill.bill_id, paid_amount=paid, balance=balance, status=resolve_status(balance, paid))
        )

    advance_delta = AdvanceBalanceDelta(
        advance_utilities=leftover["electric"]
        + leftover["water"]
        + as_decimal(payment_components.advance_utilities),
        advance_dues=leftover["dues"]
        + leftover["past_dues"]
        + leftover["sp_assessment"]
        + as_decimal(payment_components.advance_dues)
        + as_decimal(payment_components.other_advance),
    )

    result = AllocationResult(
        unit_id=unit_id,
        bill_payments=bill_payments,
        updated_bills=updated_bills,
        advance_delta=advance_delta,
    )
    logger.debug(
        "Allocated payment for unit %s: %s to %d bills, %s to advance",
        unit_id,
        result.allocated_total,
        len(bill_payments),
        advance_delta.total,
    )
    return result


__all__ = [
    "ALLOCATION_ORDER",
    "AdvanceBalanceDelta",
    "AllocationResult",
    "BillAllocation",
    "BillUpdate",
    "ComponentAmounts",
    "OutstandingBill",
    "PaymentComponents",
    "allocate_payment",
    "payable_components",
]
