"""Penalty accrual on unpaid bills.

Penalty is charged on the unpaid principal (electric + water + association
dues) of bills whose due date has passed, compounding across bills oldest
month first:

    first overdue bill:  running = P1 * rate
    every later bill:    base = running + Pn * rate
                         running = base + base * rate

At rate 0.10 a single overdue 1000.00 bill yields 100.00; adding a second
1000.00 bill yields (100 + 100) + 20 = 220.00.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from condobill.models.bill import Bill
from condobill.services.allocation_service import ComponentAmounts, payable_components
from condobill.services.errors import ValidationError
from condobill.services.money import ZERO, as_decimal, non_negative
from condobill.services.period_service import BillingMonth


@dataclass(frozen=True)
class UnpaidBillForPenalty:
    """Principal and due date of one unpaid bill."""

    billing_month: str
    principal_amount: Decimal
    due_date: date


@dataclass(frozen=True)
class PenaltyBreakdownItem:
    billing_month: str
    principal: Decimal
    months_overdue: int
    rate_share: Decimal
    """principal x rate"""
    compound_interest: Decimal
    """Interest on the running total; zero for the first overdue bill"""
    penalty_amount: Decimal
    """Cumulative penalty after this bill"""


@dataclass(frozen=True)
class PenaltyResult:
    total_penalty: Decimal = ZERO
    breakdown: list[PenaltyBreakdownItem] = field(default_factory=list)


def _months_overdue(due_date: date, as_of: date) -> int:
    # Statement display convention: whole 30-day blocks, at least one
    return max(1, math.ceil((as_of - due_date).days / 30))


def calculate_penalty(unpaid_bills, rate, as_of: date) -> PenaltyResult:
    """Compounding penalty across overdue bills.

    Args:
        unpaid_bills: Iterable of UnpaidBillForPenalty
        rate: Monthly penalty rate, e.g. Decimal("0.10")
        as_of: Date to evaluate; only bills due strictly before it count

    Returns:
        PenaltyResult with the unrounded total and a per-bill breakdown.
        Zero and an empty breakdown when nothing is overdue.

    Raises:
        ValidationError: If the rate or a principal is negative
    """
    penalty_rate = as_decimal(rate)
    if penalty_rate < ZERO:
        raise ValidationError(f"Penalty rate cannot be negative: {penalty_rate}")

    bills = list(unpaid_bills)
    for bill in bills:
        if as_decimal(bill.principal_amount) < ZERO:
            raise ValidationError(
                f"Penalty principal cannot be negative for {bill.billing_month}: {bill.principal_amount}"
            )

    overdue = sorted(
        (bill for bill in bills if bill.due_date < as_of),
        key=lambda bill: BillingMonth.parse(bill.billing_month),
    )
    if not overdue:
        return PenaltyResult()

    running = ZERO
    breakdown = []
    for index, bill in enumerate(overdue):
        principal = as_decimal(bill.principal_amount)
        rate_share = principal * penalty_rate
        if index == 0:
            compound = ZERO
            running = rate_share
        else:
            base = running + rate_share
            compound = base * penalty_rate
            running = base + compound

        breakdown.append(
            PenaltyBreakdownItem(
                billing_month=bill.billing_month,
                principal=principal,
                months_overdue=_months_overdue(bill.due_date, as_of),
                rate_share=rate_share,
                compound_interest=compound,
                penalty_amount=running,
            )
        )

    return PenaltyResult(total_penalty=running, breakdown=breakdown)


def penalty_principal_for_bill(bill: Bill, paid: ComponentAmounts | None = None) -> Decimal:
    """Unpaid electric + water + association dues portion of a stored bill.

    Components are taken net of the advance credit and discounts on the
    bill. Dues deductions and payments settle association dues before
    parking, which is never penalized. The principal never exceeds the
    bill's balance.

    Args:
        bill: Bill to evaluate
        paid: Amounts already paid per component. When omitted, everything
            paid on the bill counts against the principal.
    """
    outstanding = payable_components(bill)
    if paid is not None:
        outstanding = outstanding.minus(paid)
    association_dues = non_negative(outstanding.dues - as_decimal(bill.parking_fee))
    principal = outstanding.electric + outstanding.water + association_dues
    if paid is None:
        principal -= as_decimal(bill.paid_amount)
    return min(non_negative(principal), as_decimal(bill.balance))


def unpaid_bill_for_penalty(bill: Bill, paid: ComponentAmounts | None = None) -> UnpaidBillForPenalty:
    return UnpaidBillForPenalty(
        billing_month=str(BillingMonth.parse(bill.billing_month)),
        principal_amount=penalty_principal_for_bill(bill, paid),
        due_date=bill.due_date,
    )


__all__ = [
    "PenaltyBreakdownItem",
    "PenaltyResult",
    "UnpaidBillForPenalty",
    "calculate_penalty",
    "penalty_principal_for_bill",
    "unpaid_bill_for_penalty",
]
