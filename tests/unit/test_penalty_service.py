"""Unit tests for compounding penalty calculation."""

from datetime import date
from decimal import Decimal

import pytest

from condobill.models import Bill
from condobill.services.allocation_service import ComponentAmounts
from condobill.services.errors import ValidationError
from condobill.services.penalty_service import (
    UnpaidBillForPenalty,
    calculate_penalty,
    penalty_principal_for_bill,
    unpaid_bill_for_penalty,
)

RATE = Decimal("0.10")


def unpaid(month, principal, due):
    return UnpaidBillForPenalty(billing_month=month, principal_amount=Decimal(principal), due_date=due)


class TestCalculatePenalty:
    def test_single_overdue_bill(self):
        result = calculate_penalty([unpaid("2025-01", "1000", date(2025, 2, 16))], RATE, date(2025, 3, 1))

        assert result.total_penalty == Decimal("100")
        assert len(result.breakdown) == 1
        item = result.breakdown[0]
        assert item.rate_share == Decimal("100")
        assert item.compound_interest == Decimal("0")
        assert item.penalty_amount == Decimal("100")

    def test_two_bills_compound(self):
        bills = [
            unpaid("2025-01", "1000", date(2025, 2, 16)),
            unpaid("2025-02", "1000", date(2025, 3, 16)),
        ]
        result = calculate_penalty(bills, RATE, date(2025, 4, 1))

        assert result.total_penalty == Decimal("220")
        second = result.breakdown[1]
        assert second.rate_share == Decimal("100")
        assert second.compound_interest == Decimal("20")
        assert second.penalty_amount == Decimal("220")

    def test_bills_sorted_by_month_before_compounding(self):
        """Given newest first, the oldest month still starts the chain."""
        bills = [
            unpaid("2025-02", "500", date(2025, 3, 16)),
            unpaid("2025-01", "1000", date(2025, 2, 16)),
        ]
        result = calculate_penalty(bills, RATE, date(2025, 4, 1))

        # (100 + 50) * 1.10
        assert result.total_penalty == Decimal("165")
        assert [item.billing_month for item in result.breakdown] == ["2025-01", "2025-02"]

    def test_not_yet_due_bills_ignored(self):
        bills = [
            unpaid("2025-01", "1000", date(2025, 2, 16)),
            unpaid("2025-02", "1000", date(2025, 3, 16)),
        ]
        result = calculate_penalty(bills, RATE, date(2025, 3, 16))

        assert result.total_penalty == Decimal("100")
        assert len(result.breakdown) == 1

    def test_due_today_is_not_overdue(self):
        result = calculate_penalty([unpaid("2025-01", "1000", date(2025, 2, 16))], RATE, date(2025, 2, 16))
        assert result.total_penalty == Decimal("0")
        assert result.breakdown == []

    def test_no_bills(self):
        result = calculate_penalty([], RATE, date(2025, 3, 1))
        assert result.total_penalty == Decimal("0")
        assert result.breakdown == []

    def test_zero_rate(self):
        result = calculate_penalty([unpaid("2025-01", "1000", date(2025, 2, 16))], Decimal("0"), date(2025, 3, 1))
        assert result.total_penalty == Decimal("0")

    def test_result_is_not_rounded(self):
        result = calculate_penalty([unpaid("2025-01", "333.33", date(2025, 2, 16))], Decimal("0.035"), date(2025, 3, 1))
        assert result.total_penalty == Decimal("11.66655")

    @pytest.mark.parametrize(
        "as_of, months",
        [(date(2025, 2, 17), 1), (date(2025, 3, 18), 1), (date(2025, 3, 19), 2), (date(2025, 6, 1), 4)],
    )
    def test_breakdown_months_overdue(self, as_of, months):
        result = calculate_penalty([unpaid("2025-01", "1000", date(2025, 2, 16))], RATE, as_of)
        assert result.breakdown[0].months_overdue == months

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError, match="rate"):
            calculate_penalty([], Decimal("-0.1"), date(2025, 3, 1))

    def test_negative_principal_rejected(self):
        with pytest.raises(ValidationError, match="principal"):
            calculate_penalty([unpaid("2025-01", "-1", date(2025, 2, 16))], RATE, date(2025, 3, 1))


class TestPenaltyPrincipal:
    @pytest.fixture
    def bill(self):
        bill = Bill(
            bill_number="MT-202501-0001",
            billing_month=date(2025, 1, 1),
            due_date=date(2025, 2, 16),
            electric_amount=Decimal("500.00"),
            water_amount=Decimal("200.00"),
            association_dues=Decimal("2400.00"),
            parking_fee=Decimal("750.00"),
            penalty_amount=Decimal("80.00"),
            paid_amount=Decimal("0"),
        )
        bill.recompute_total()
        return bill

    def test_principal_excludes_parking_and_penalty(self, bill):
        assert penalty_principal_for_bill(bill) == Decimal("3100.00")

    def test_paid_amount_reduces_principal(self, bill):
        bill.apply_paid_amount(Decimal("1000.00"))
        assert penalty_principal_for_bill(bill) == Decimal("2100.00")

    def test_paid_components(self, bill):
        bill.apply_paid_amount(Decimal("1000.00"))
        paid = ComponentAmounts(electric=Decimal("100"), dues=Decimal("900"))
        assert penalty_principal_for_bill(bill, paid) == Decimal("2100.00")

    def test_parking_paid_last(self, bill):
        bill.apply_paid_amount(Decimal("2600.00"))
        paid = ComponentAmounts(dues=Decimal("2600"))
        # 550.00 of parking is still open but does not count
        assert penalty_principal_for_bill(bill, paid) == Decimal("700.00")

    def test_advance_credit_and_discounts_reduce_principal(self, bill):
        bill.advance_util_applied = Decimal("300.00")
        bill.advance_dues_applied = Decimal("2000.00")
        bill.discounts = Decimal("100.00")
        bill.recompute_total()

        # electric 200 + water 200 + dues 300
        assert penalty_principal_for_bill(bill, ComponentAmounts()) == Decimal("700.00")

    def test_capped_at_balance(self, bill):
        bill.apply_paid_amount(Decimal("3800.00"))
        assert bill.balance == Decimal("130.00")
        assert penalty_principal_for_bill(bill, ComponentAmounts()) == Decimal("130.00")

    def test_principal_floored_at_zero(self, bill):
        paid = ComponentAmounts(electric=Decimal("500"), water=Decimal("200"), dues=Decimal("5000"))
        assert penalty_principal_for_bill(bill, paid) == Decimal("0")

    def test_unpaid_bill_for_penalty(self, bill):
        item = unpaid_bill_for_penalty(bill)
        assert item.billing_month == "2025-01"
        assert item.principal_amount == Decimal("3100.00")
        assert item.due_date == date(2025, 2, 16)
