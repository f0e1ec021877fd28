"""Unit tests for Bill totals, balance and status derivation."""

from datetime import date
from decimal import Decimal

import pytest

from condobill.models import Bill, BillStatus
from condobill.models.bill import resolve_status
from condobill.services.errors import ConsistencyError


@pytest.fixture
def bill():
    bill = Bill(
        bill_number="MT-202511-0001",
        billing_month=date(2025, 11, 1),
        due_date=date(2025, 12, 17),
        electric_amount=Decimal("839.00"),
        water_amount=Decimal("410.00"),
        association_dues=Decimal("2400.00"),
        parking_fee=Decimal("750.00"),
        paid_amount=Decimal("0"),
    )
    bill.recompute_total()
    return bill


class TestBillTotals:
    def test_total_is_sum_of_components(self, bill):
        assert bill.total_amount == Decimal("4399.00")
        assert bill.balance == Decimal("4399.00")
        assert bill.status == BillStatus.UNPAID

    def test_deductions_reduce_total(self, bill):
        bill.discounts = Decimal("99.00")
        bill.advance_dues_applied = Decimal("300.00")
        bill.recompute_total()

        assert bill.total_amount == Decimal("4000.00")

    def test_total_rounded_half_up(self, bill):
        bill.electric_amount = Decimal("839.005")
        assert bill.compute_total() == Decimal("4399.01")

    def test_recompute_keeps_paid_amount(self, bill):
        bill.apply_paid_amount(Decimal("399.00"))
        bill.penalty_amount = Decimal("100.00")
        bill.recompute_total()

        assert bill.paid_amount == Decimal("399.00")
        assert bill.balance == Decimal("4100.00")
        assert bill.status == BillStatus.PARTIAL


class TestApplyPaidAmount:
    def test_partial(self, bill):
        bill.apply_paid_amount(Decimal("1000"))
        assert bill.balance == Decimal("3399.00")
        assert bill.status == BillStatus.PARTIAL

    def test_within_a_centavo_is_paid(self, bill):
        bill.apply_paid_amount(Decimal("4398.99"))
        assert bill.balance == Decimal("0.01")
        assert bill.status == BillStatus.PAID

    def test_overpaid_balance_is_zero(self, bill):
        bill.apply_paid_amount(Decimal("5000"))
        assert bill.balance == Decimal("0.00")
        assert bill.status == BillStatus.PAID

    def test_reversal_back_to_unpaid(self, bill):
        bill.apply_paid_amount(Decimal("4399"))
        bill.apply_paid_amount(Decimal("0"))
        assert bill.balance == Decimal("4399.00")
        assert bill.status == BillStatus.UNPAID


class TestConsistency:
    def test_consistent_bill_passes(self, bill):
        bill.apply_paid_amount(Decimal("100"))
        bill.check_consistency()

    def test_tampered_balance(self, bill):
        bill.balance = Decimal("10.00")
        with pytest.raises(ConsistencyError, match="MT-202511-0001"):
            bill.check_consistency()


class TestDisplayStatus:
    def test_unpaid_after_due_date_is_overdue(self, bill):
        assert bill.display_status(date(2025, 12, 18)) == BillStatus.OVERDUE

    def test_on_due_date_not_overdue(self, bill):
        assert bill.display_status(date(2025, 12, 17)) == BillStatus.UNPAID

    def test_paid_bill_never_overdue(self, bill):
        bill.apply_paid_amount(Decimal("4399"))
        assert bill.display_status(date(2026, 6, 1)) == BillStatus.PAID


@pytest.mark.parametrize(
    "balance, paid, status",
    [
        ("0", "100", BillStatus.PAID),
        ("0.01", "0", BillStatus.PAID),
        ("0.02", "0.01", BillStatus.UNPAID),
        ("0.02", "0.02", BillStatus.PARTIAL),
        ("100", "0", BillStatus.UNPAID),
    ],
)
def test_resolve_status(balance, paid, status):
    assert resolve_status(Decimal(balance), Decimal(paid)) == status
