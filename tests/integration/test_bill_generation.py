"""Integration tests for monthly bill generation and opening balances.

The reference unit is 40 sq.m residential with a 12.5 sq.m parking slot.
With default rates, October readings of 100 kWh and 11 cu.m bill November 2025 at

    839.00 electric + 410.00 water + 2400.00 dues + 750.00 parking = 4399.00
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from condobill.models import (
    AuditLog,
    Bill,
    BillingAdjustment,
    BillStatus,
    BillType,
    Unit,
    UnitType,
)
from condobill.services.advance_balance_service import AdvanceBalanceService
from condobill.services.allocation_service import PaymentComponents
from condobill.services.bills_service import BillingService
from condobill.services.errors import NotFoundError, ValidationError
from condobill.services.payment_service import PaymentService

OCTOBER = date(2025, 10, 1)
NOVEMBER = "2025-11"


def bill_count(db_session):
    return db_session.scalar(select(func.count()).select_from(Bill))


@pytest.fixture
def service(db_session, rate_settings):
    return BillingService(db_session)


@pytest.fixture
def readings(unit, add_reading):
    return (
        add_reading(unit, "ELECTRIC", OCTOBER, 1000, 1100),
        add_reading(unit, "WATER", OCTOBER, 50, 61),
    )


class TestPreview:
    def test_preview_amounts(self, db_session, service, unit, readings):
        [preview] = service.preview_bills(unit.tenant_id, NOVEMBER)

        assert preview.unit_number == "M2-2F-16"
        assert preview.unit_type == "RESIDENTIAL"
        assert preview.electric_consumption == Decimal("100")
        assert preview.water_consumption == Decimal("11")
        assert preview.water_tier == 4
        assert preview.electric_amount == Decimal("839.00")
        assert preview.water_amount == Decimal("410")
        assert preview.association_dues == Decimal("2400")
        assert preview.parking_fee == Decimal("750")
        assert preview.penalty_amount == Decimal("0.00")
        assert preview.total_amount == Decimal("4399.00")
        assert preview.warnings == []
        assert bill_count(db_session) == 0

    def test_missing_readings_bill_the_minimum(self, service, unit):
        [preview] = service.preview_bills(unit.tenant_id, NOVEMBER)

        assert preview.electric_amount == Decimal("50")
        assert preview.water_amount == Decimal("80")
        assert preview.total_amount == Decimal("3280.00")
        assert preview.warnings == ["Missing electric meter reading", "Missing water meter reading"]

    def test_negative_consumption_flagged(self, service, unit, add_reading):
        add_reading(unit, "ELECTRIC", OCTOBER, 99990, 20)
        add_reading(unit, "WATER", OCTOBER, 50, 61)

        [preview] = service.preview_bills(unit.tenant_id, NOVEMBER)

        assert preview.has_negative_consumption
        assert "Negative electric consumption" in preview.warnings[0]
        assert preview.electric_amount == Decimal("50")

    def test_commercial_unit_uses_commercial_water(self, db_session, service, add_reading):
        shop = Unit(tenant_id=1, unit_number="G-01", area=Decimal("20"), unit_type=UnitType.COMMERCIAL)
        db_session.add(shop)
        db_session.commit()
        add_reading(shop, "WATER", OCTOBER, 0, 11)

        [preview] = service.preview_bills(1, NOVEMBER)

        assert preview.unit_type == "COMMERCIAL"
        assert preview.water_amount == Decimal("795")

    def test_inactive_units_skipped(self, db_session, service, unit):
        db_session.add(Unit(tenant_id=1, unit_number="M2-2F-17", area=Decimal("40"), is_active=False))
        db_session.commit()

        assert [p.unit_number for p in service.preview_bills(1, NOVEMBER)] == ["M2-2F-16"]

    def test_tenant_without_rate_settings(self, db_session, unit):
        with pytest.raises(NotFoundError, match="Rate settings"):
            BillingService(db_session).preview_bills(unit.tenant_id, NOVEMBER)

    def test_malformed_month(self, service, unit):
        with pytest.raises(ValidationError):
            service.preview_bills(unit.tenant_id, "November 2025")


class TestGenerateBills:
    def test_generated_bill(self, db_session, service, unit, readings):
        result = service.generate_bills(unit.tenant_id, NOVEMBER, actor_id=3)

        [bill] = result.bills
        assert result.total_amount == Decimal("4399.00")
        assert bill.bill_number == "MT-202511-0001"
        assert bill.bill_type == BillType.REGULAR
        assert bill.billing_month == date(2025, 11, 1)
        assert bill.billing_period_start == date(2025, 10, 26)
        assert bill.billing_period_end == date(2025, 11, 26)
        assert bill.statement_date == date(2025, 12, 7)
        assert bill.due_date == date(2025, 12, 17)
        assert bill.total_amount == Decimal("4399.00")
        assert bill.balance == Decimal("4399.00")
        assert bill.status == BillStatus.UNPAID

        audit = db_session.execute(select(AuditLog).where(AuditLog.entity_type == "billing_month")).scalar_one()
        assert audit.entity_id == 202511
        assert audit.action == "generate"
        assert audit.actor_id == 3
        assert audit.changes["total"] == "4399.00"

    def test_existing_bills_require_regenerate(self, db_session, service, unit, readings):
        service.generate_bills(unit.tenant_id, NOVEMBER)

        with pytest.raises(ValidationError, match="Bills already exist for 2025-11"):
            service.generate_bills(unit.tenant_id, NOVEMBER)
        assert bill_count(db_session) == 1

    def test_negative_consumption_blocks_generation(self, db_session, service, unit, add_reading):
        add_reading(unit, "ELECTRIC", OCTOBER, 99990, 20)

        with pytest.raises(ValidationError, match="M2-2F-16"):
            service.generate_bills(unit.tenant_id, NOVEMBER)
        assert bill_count(db_session) == 0

    def test_bill_numbers_continue_across_months(self, db_session, service, unit, readings, add_reading):
        service.generate_bills(unit.tenant_id, NOVEMBER)
        add_reading(unit, "ELECTRIC", date(2025, 11, 1), 1100, 1150)

        result = service.generate_bills(unit.tenant_id, "2025-12")

        assert result.bills[0].bill_number == "MT-202512-0002"

    def test_adjustments_applied(self, db_session, service, unit, readings):
        db_session.add(
            BillingAdjustment(
                tenant_id=1,
                unit_id=unit.id,
                billing_month=date(2025, 11, 1),
                sp_assessment=Decimal("1000"),
                discounts=Decimal("100"),
            )
        )
        db_session.commit()

        [bill] = service.generate_bills(unit.tenant_id, NOVEMBER).bills

        assert bill.sp_assessment == Decimal("1000.00")
        assert bill.discounts == Decimal("100.00")
        assert bill.total_amount == Decimal("5299.00")

    def test_advance_credit_applied_and_drawn(self, db_session, service, unit, readings):
        AdvanceBalanceService(db_session).credit(1, unit.id, dues=Decimal("500"), utilities=Decimal("2000"))
        db_session.commit()

        [bill] = service.generate_bills(unit.tenant_id, NOVEMBER).bills

        assert bill.advance_dues_applied == Decimal("500.00")
        assert bill.advance_util_applied == Decimal("1249.00")
        assert bill.total_amount == Decimal("2650.00")
        balance = AdvanceBalanceService(db_session).get_balance(unit.id)
        assert balance.advance_dues == Decimal("0.00")
        assert balance.advance_utilities == Decimal("751.00")

    def test_penalty_on_overdue_bill(self, db_session, service, unit, readings, make_bill):
        make_bill(unit, OCTOBER, "MT-202510-0001", electric="1000", due_date=date(2025, 11, 16))

        [preview] = service.preview_bills(unit.tenant_id, NOVEMBER)
        assert preview.penalty_amount == Decimal("100.00")
        assert preview.previous_balance == Decimal("1000.00")

        [bill] = service.generate_bills(unit.tenant_id, NOVEMBER).bills
        assert bill.bill_number == "MT-202511-0002"
        assert bill.penalty_amount == Decimal("100.00")
        # Previous balance is shown, not billed again
        assert bill.total_amount == Decimal("4499.00")

    def test_paid_principal_not_penalized(self, db_session, service, unit, readings, make_bill):
        make_bill(unit, OCTOBER, "MT-202510-0001", electric="1000", due_date=date(2025, 11, 16))
        PaymentService(db_session).record_payment(
            1, unit.id, PaymentComponents(electric=Decimal("600")), date(2025, 11, 20)
        )

        [preview] = service.preview_bills(unit.tenant_id, NOVEMBER)

        assert preview.penalty_amount == Decimal("40.00")

    def test_advance_settled_dues_not_penalized(self, db_session, service, unit, readings):
        AdvanceBalanceService(db_session).credit(1, unit.id, dues=Decimal("2400"))
        db_session.commit()
        [november] = service.generate_bills(unit.tenant_id, NOVEMBER).bills
        assert november.total_amount == Decimal("1999.00")

        [preview] = service.preview_bills(unit.tenant_id, "2025-12")

        # Unpaid electric 839.00 + water 410.00; parking is not penalized
        assert preview.penalty_amount == Decimal("124.90")

    def test_opening_balance_never_penalized(self, service, unit, readings):
        service.set_opening_balance(1, unit.id, Decimal("12500"), date(2025, 10, 15))

        [preview] = service.preview_bills(unit.tenant_id, NOVEMBER)

        assert preview.penalty_amount == Decimal("0.00")
        assert preview.previous_balance == Decimal("12500.00")


class TestRegenerate:
    def test_unpaid_bills_replaced(self, db_session, service, unit, readings):
        service.generate_bills(unit.tenant_id, NOVEMBER)
        electric, _ = readings
        electric.present_reading = Decimal("1200")
        db_session.commit()

        result = service.generate_bills(unit.tenant_id, NOVEMBER, regenerate=True)

        assert result.replaced == 1
        assert result.bills[0].electric_amount == Decimal("1678.00")
        assert bill_count(db_session) == 1

    def test_drawn_advance_returned_before_redraw(self, db_session, service, unit, readings):
        AdvanceBalanceService(db_session).credit(1, unit.id, dues=Decimal("500"))
        db_session.commit()
        service.generate_bills(unit.tenant_id, NOVEMBER)

        [bill] = service.generate_bills(unit.tenant_id, NOVEMBER, regenerate=True).bills

        assert bill.advance_dues_applied == Decimal("500.00")
        assert AdvanceBalanceService(db_session).get_balance(unit.id).advance_dues == Decimal("0.00")

    def test_bills_with_payments_kept(self, db_session, service, unit, readings):
        [original] = service.generate_bills(unit.tenant_id, NOVEMBER).bills
        PaymentService(db_session).record_payment(
            1, unit.id, PaymentComponents(electric=Decimal("100")), date(2025, 12, 1)
        )

        result = service.generate_bills(unit.tenant_id, NOVEMBER, regenerate=True)

        assert result.bills == []
        assert result.replaced == 0
        assert result.skipped_units == ["M2-2F-16"]
        assert service.get_bill(original.id).paid_amount == Decimal("100.00")


class TestAdjustments:
    def test_saved_adjustment_feeds_generation(self, db_session, service, unit, readings):
        adjustment = service.set_adjustment(
            1, unit.id, NOVEMBER, sp_assessment="1000", discounts="100", remarks="Roof repair", actor_id=3
        )

        assert adjustment.billing_month == date(2025, 11, 1)
        assert adjustment.remarks == "Roof repair"
        [bill] = service.generate_bills(unit.tenant_id, NOVEMBER).bills
        assert bill.sp_assessment == Decimal("1000.00")
        assert bill.total_amount == Decimal("5299.00")
        audit = db_session.execute(select(AuditLog).where(AuditLog.action == "adjustment")).scalar_one()
        assert audit.entity_id == unit.id
        assert audit.changes["discounts"] == "100.00"

    def test_update_keeps_single_row(self, service, unit):
        service.set_adjustment(1, unit.id, NOVEMBER, discounts="100")
        service.set_adjustment(1, unit.id, NOVEMBER, discounts="250")

        [adjustment] = service.list_adjustments(1, NOVEMBER)
        assert adjustment.discounts == Decimal("250.00")
        assert adjustment.sp_assessment == Decimal("0.00")

    def test_all_zero_removes_adjustment(self, service, unit):
        service.set_adjustment(1, unit.id, NOVEMBER, discounts="100")

        assert service.set_adjustment(1, unit.id, NOVEMBER) is None
        assert service.list_adjustments(1, NOVEMBER) == []

    def test_negative_amount_rejected(self, service, unit):
        with pytest.raises(ValidationError, match="cannot be negative"):
            service.set_adjustment(1, unit.id, NOVEMBER, discounts="-1")

    def test_unknown_unit(self, service, unit):
        with pytest.raises(NotFoundError):
            service.set_adjustment(1, 999, NOVEMBER, discounts="1")


class TestSpAssessment:
    @pytest.fixture
    def sp_rate(self, db_session, rate_settings):
        rate_settings.sp_assessment_rate = Decimal("1500")
        db_session.commit()

    def test_flat_rate_for_every_active_unit(self, db_session, service, unit, sp_rate):
        penthouse = Unit(tenant_id=1, unit_number="M2-9F-01", area=Decimal("120"), unit_type=UnitType.RESIDENTIAL)
        closed = Unit(tenant_id=1, unit_number="M2-9F-02", area=Decimal("40"), is_active=False)
        db_session.add_all([penthouse, closed])
        db_session.commit()
        service.set_adjustment(1, unit.id, NOVEMBER, discounts="100")

        result = service.apply_sp_assessment(1, NOVEMBER)

        assert result.rate == Decimal("1500.00")
        assert (result.created, result.updated, result.units) == (1, 1, 2)
        adjustments = {adjustment.unit_id: adjustment for adjustment in service.list_adjustments(1, NOVEMBER)}
        assert set(adjustments) == {unit.id, penthouse.id}
        # Same amount regardless of floor area; earlier discounts stay
        assert adjustments[unit.id].sp_assessment == Decimal("1500.00")
        assert adjustments[penthouse.id].sp_assessment == Decimal("1500.00")
        assert adjustments[unit.id].discounts == Decimal("100.00")

    def test_generated_bill_carries_assessment(self, service, unit, readings, sp_rate):
        service.apply_sp_assessment(1, NOVEMBER)

        [bill] = service.generate_bills(unit.tenant_id, NOVEMBER).bills

        assert bill.sp_assessment == Decimal("1500.00")
        assert bill.total_amount == Decimal("5899.00")

    def test_rate_not_set(self, service, unit):
        with pytest.raises(ValidationError, match="not set"):
            service.apply_sp_assessment(1, NOVEMBER)

    def test_no_active_units(self, db_session, service, unit, sp_rate):
        unit.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError, match="No active units"):
            service.apply_sp_assessment(1, NOVEMBER)

    def test_clear(self, service, unit, sp_rate, db_session):
        other = Unit(tenant_id=1, unit_number="M2-2F-18", area=Decimal("40"))
        db_session.add(other)
        db_session.commit()
        service.apply_sp_assessment(1, NOVEMBER)
        service.set_adjustment(1, unit.id, NOVEMBER, sp_assessment="1500", discounts="100")

        assert service.clear_sp_assessment(1, NOVEMBER) == 2

        [adjustment] = service.list_adjustments(1, NOVEMBER)
        assert adjustment.unit_id == unit.id
        assert adjustment.sp_assessment == Decimal("0.00")
        assert adjustment.discounts == Decimal("100.00")


class TestOpeningBalance:
    def test_create(self, db_session, service, unit):
        bill = service.set_opening_balance(1, unit.id, Decimal("12500"), date(2025, 10, 15), actor_id=3)

        assert bill.bill_number == "OB-M2-2F-16"
        assert bill.bill_type == BillType.OPENING_BALANCE
        assert bill.other_charges == Decimal("12500.00")
        assert bill.total_amount == Decimal("12500.00")
        assert bill.status == BillStatus.UNPAID
        assert bill.remarks == "Opening Balance"
        audit = db_session.execute(select(AuditLog).where(AuditLog.entity_type == "bill")).scalar_one()
        assert audit.changes["action"] == "create"

    def test_update_keeps_single_bill(self, db_session, service, unit):
        first = service.set_opening_balance(1, unit.id, Decimal("12500"), date(2025, 10, 15))
        second = service.set_opening_balance(1, unit.id, Decimal("13000"), date(2025, 10, 15), remarks="Per audit")

        assert second.id == first.id
        assert second.total_amount == Decimal("13000.00")
        assert second.remarks == "Per audit"
        assert bill_count(db_session) == 1

    def test_paid_through_past_dues(self, db_session, service, unit):
        bill = service.set_opening_balance(1, unit.id, Decimal("12500"), date(2025, 10, 15))

        PaymentService(db_session).record_payment(
            1, unit.id, PaymentComponents(past_dues=Decimal("12500")), date(2025, 11, 2)
        )

        assert bill.status == BillStatus.PAID

    def test_amount_must_be_positive(self, service, unit):
        with pytest.raises(ValidationError, match="must be positive"):
            service.set_opening_balance(1, unit.id, Decimal("0"), date(2025, 10, 15))

    def test_unknown_unit(self, service, unit):
        with pytest.raises(NotFoundError):
            service.set_opening_balance(1, 999, Decimal("100"), date(2025, 10, 15))


class TestQueries:
    def test_list_and_get(self, service, unit, readings):
        [bill] = service.generate_bills(unit.tenant_id, NOVEMBER).bills

        assert [b.id for b in service.list_bills(1, NOVEMBER)] == [bill.id]
        assert service.list_bills(1, "2025-12") == []
        with pytest.raises(NotFoundError):
            service.get_bill(bill.id + 100)
