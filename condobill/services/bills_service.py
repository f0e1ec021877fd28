"""Bill generation for a billing month, and opening balances.

A bill for month M uses the meter readings recorded for month M-1 (the
reading period closing on M's reading day). Per active unit it combines
utility charges, dues, parking, the month's adjustments, the penalty on
earlier unpaid bills and the advance credit the unit holds.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from condobill.models import (
    Bill,
    BillingAdjustment,
    BillPayment,
    BillType,
    MeterReading,
    Unit,
    UnitType,
    UtilityType,
)
from condobill.models.bill import OUTSTANDING_STATUSES
from condobill.services.advance_balance_service import (
    AdvanceBalanceService,
    compute_advance_application,
)
from condobill.services.allocation_service import ComponentAmounts
from condobill.services.audit_service import AuditService
from condobill.services.dues_service import compute_dues_charge, compute_parking_fee
from condobill.services.errors import BillingError, NotFoundError, ValidationError
from condobill.services.money import ZERO, as_decimal, to_money
from condobill.services.payment_service import paid_components_by_bill
from condobill.services.penalty_service import (
    PenaltyResult,
    UnpaidBillForPenalty,
    calculate_penalty,
    penalty_principal_for_bill,
)
from condobill.services.period_service import (
    BillingMonth,
    BillingPeriodInfo,
    ScheduleSettings,
    get_billing_period_info,
)
from condobill.services.rates import RateSettingsService, RateTable
from condobill.services.utility_charge_service import (
    compute_electric_charge,
    compute_water_charge,
    water_tier_for,
)

logger = logging.getLogger(__name__)


@dataclass
class BillPreview:
    """Computed, not yet persisted, bill of one unit."""

    unit_id: int
    unit_number: str
    unit_type: str
    electric_consumption: Decimal | None
    water_consumption: Decimal | None
    water_tier: int | None
    electric_amount: Decimal
    water_amount: Decimal
    association_dues: Decimal
    parking_fee: Decimal
    sp_assessment: Decimal
    discounts: Decimal
    penalty: PenaltyResult
    advance_dues_applied: Decimal
    advance_util_applied: Decimal
    previous_balance: Decimal
    """Unpaid balance of earlier bills; shown on the statement, not added to the total"""
    warnings: list[str] = field(default_factory=list)
    has_negative_consumption: bool = False

    @property
    def penalty_amount(self) -> Decimal:
        return to_money(self.penalty.total_penalty)

    @property
    def subtotal(self) -> Decimal:
        return (
            to_money(self.electric_amount)
            + to_money(self.water_amount)
            + to_money(self.association_dues)
            + to_money(self.parking_fee)
            + to_money(self.sp_assessment)
        )

    @property
    def total_amount(self) -> Decimal:
        return to_money(
            self.subtotal
            + self.penalty_amount
            - to_money(self.discounts)
            - self.advance_dues_applied
            - self.advance_util_applied
        )


@dataclass
class GenerationResult:
    billing_month: str
    period: BillingPeriodInfo
    bills: list[Bill] = field(default_factory=list)
    replaced: int = 0
    skipped_units: list[str] = field(default_factory=list)
    """Units whose existing bill already has money applied and was kept"""

    @property
    def total_amount(self) -> Decimal:
        return sum((as_decimal(bill.total_amount) for bill in self.bills), ZERO)


@dataclass
class SpAssessmentResult:
    billing_month: str
    rate: Decimal
    created: int = 0
    updated: int = 0

    @property
    def units(self) -> int:
        return self.created + self.updated


class BillingService:
    """Bill generation and opening balances for one tenant at a time."""

    def __init__(self, db_session: Session):
        self.db = db_session
        self.rates = RateSettingsService(db_session)

    def _context(self, tenant_id: int, billing_month) -> tuple[BillingMonth, RateTable, BillingPeriodInfo]:
        month = BillingMonth.parse(billing_month)
        settings = self.rates.get_settings(tenant_id)
        rate_table = RateTable.from_settings(settings)
        period = get_billing_period_info(month, ScheduleSettings.from_settings(settings))
        return month, rate_table, period

    def preview_bills(self, tenant_id: int, billing_month) -> list[BillPreview]:
        """Compute the bills of every active unit without persisting anything.

        Args:
            tenant_id: Tenant to bill
            billing_month: "YYYY-MM"

        Returns:
            One BillPreview per active unit, ordered by unit number

        Raises:
            ValidationError: Malformed month
            NotFoundError: Tenant has no rate settings
            ConsistencyError: Invalid rate table or inconsistent stored bill
        """
        month, rate_table, period = self._context(tenant_id, billing_month)
        return self._build_previews(tenant_id, month, rate_table, period)

    def generate_bills(
        self,
        tenant_id: int,
        billing_month,
        regenerate: bool = False,
        actor_id: int | None = None,
    ) -> GenerationResult:
        """Persist the month's bills in one transaction.

        Existing regular bills of the month are an error unless
        ``regenerate`` is set; then bills with no money applied are
        replaced (their drawn advance credit is returned first) and units
        whose bill has payments are skipped.

        Raises:
            ValidationError: Bills already exist, or a reading has negative consumption
            NotFoundError: Tenant has no rate settings
        """
        month, rate_table, period = self._context(tenant_id, billing_month)
        month_start = month.first_day()
        result = GenerationResult(billing_month=str(month), period=period)

        try:
            existing = list(
                self.db.execute(
                    select(Bill)
                    .where(
                        Bill.tenant_id == tenant_id,
                        Bill.billing_month == month_start,
                        Bill.bill_type == BillType.REGULAR.value,
                    )
                    .with_for_update()
                ).scalars()
            )
            kept_units = set()
            if existing:
                if not regenerate:
                    raise ValidationError(
                        f"Bills already exist for {month}. Found {len(existing)} existing bill(s). "
                        f"Use regenerate to replace them."
                    )
                kept_units = self._remove_unpaid_bills(tenant_id, existing)
                result.replaced = len(existing) - len(kept_units)

            previews = self._build_previews(tenant_id, month, rate_table, period)
            negative = [p.unit_number for p in previews if p.has_negative_consumption]
            if negative:
                raise ValidationError(
                    f"Negative consumption for unit(s) {', '.join(negative)}; fix the readings before billing"
                )

            advances = AdvanceBalanceService(self.db)
            counter = self._last_bill_counter(tenant_id)
            for preview in previews:
                if preview.unit_id in kept_units:
                    result.skipped_units.append(preview.unit_number)
                    continue

                counter += 1
                bill = Bill(
                    bill_number=f"MT-{month.year:04d}{month.month:02d}-{counter:04d}",
                    tenant_id=tenant_id,
                    unit_id=preview.unit_id,
                    bill_type=BillType.REGULAR,
                    billing_month=month_start,
                    billing_period_start=period.reading_period_start,
                    billing_period_end=period.reading_period_end,
                    statement_date=period.statement_date,
                    due_date=period.due_date,
                    electric_amount=to_money(preview.electric_amount),
                    water_amount=to_money(preview.water_amount),
                    association_dues=to_money(preview.association_dues),
                    parking_fee=to_money(preview.parking_fee),
                    sp_assessment=to_money(preview.sp_assessment),
                    penalty_amount=preview.penalty_amount,
                    other_charges=ZERO,
                    discounts=to_money(preview.discounts),
                    advance_dues_applied=preview.advance_dues_applied,
                    advance_util_applied=preview.advance_util_applied,
                    paid_amount=ZERO,
                )
                bill.recompute_total()
                self.db.add(bill)

                if preview.advance_dues_applied or preview.advance_util_applied:
                    advances.draw(
                        tenant_id,
                        preview.unit_id,
                        dues=preview.advance_dues_applied,
                        utilities=preview.advance_util_applied,
                    )
                result.bills.append(bill)

            self.db.flush()
            AuditService.log(
                self.db,
                "billing_month",
                month.year * 100 + month.month,
                "generate",
                actor_id,
                {
                    "tenant_id": tenant_id,
                    "bills": len(result.bills),
                    "replaced": result.replaced,
                    "skipped": result.skipped_units,
                    "total": result.total_amount,
                },
            )
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error("Failed to generate bills for %s (tenant %d)", month, tenant_id, exc_info=True)
            raise

        logger.info(
            "Generated %d bills for %s (tenant %d): total=%s, replaced=%d, skipped=%d",
            len(result.bills),
            month,
            tenant_id,
            result.total_amount,
            result.replaced,
            len(result.skipped_units),
        )
        return result

    def set_opening_balance(
        self,
        tenant_id: int,
        unit_id: int,
        amount,
        as_of: date,
        remarks: str | None = None,
        actor_id: int | None = None,
    ) -> Bill:
        """Create or update a unit's one-off opening balance bill.

        The legacy amount is stored as other charges, so it is payable
        through the past-dues component and never earns penalty.

        Raises:
            ValidationError: Amount not positive
            NotFoundError: Unknown unit
        """
        amount = to_money(amount)
        if amount <= ZERO:
            raise ValidationError(f"Opening balance must be positive, got {amount}")

        try:
            unit = self.db.execute(
                select(Unit).where(Unit.id == unit_id, Unit.tenant_id == tenant_id).with_for_update()
            ).scalar_one_or_none()
            if unit is None:
                raise NotFoundError(f"Unit {unit_id} not found for tenant {tenant_id}")

            bill = self.db.execute(
                select(Bill)
                .where(Bill.unit_id == unit.id, Bill.bill_type == BillType.OPENING_BALANCE.value)
                .with_for_update()
            ).scalar_one_or_none()

            if bill is None:
                bill = Bill(
                    bill_number=f"OB-{unit.unit_number}",
                    tenant_id=tenant_id,
                    unit_id=unit.id,
                    bill_type=BillType.OPENING_BALANCE,
                    billing_month=BillingMonth.parse(as_of).first_day(),
                    billing_period_start=as_of,
                    billing_period_end=as_of,
                    statement_date=as_of,
                    due_date=as_of,
                    other_charges=amount,
                    paid_amount=ZERO,
                    remarks=remarks or "Opening Balance",
                )
                self.db.add(bill)
                action = "create"
            else:
                bill.other_charges = amount
                if remarks:
                    bill.remarks = remarks
                action = "update"

            bill.recompute_total()
            self.db.flush()
            AuditService.log(
                self.db,
                "bill",
                bill.id,
                "opening_balance",
                actor_id,
                {"unit_id": unit.id, "amount": amount, "action": action},
            )
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error("Failed to set opening balance for unit %d", unit_id, exc_info=True)
            raise

        logger.info("Opening balance %s for unit %d: %s", action, unit_id, amount)
        return bill

    def set_adjustment(
        self,
        tenant_id: int,
        unit_id: int,
        billing_month,
        sp_assessment=ZERO,
        discounts=ZERO,
        remarks: str | None = None,
        actor_id: int | None = None,
    ) -> BillingAdjustment | None:
        """Save a unit's special assessment and discounts for a billing month.

        Generation of that month picks the values up; bills already
        generated change only when the month is regenerated. All-zero
        values remove the unit's adjustment.

        Returns:
            The saved adjustment, or None when it was removed

        Raises:
            ValidationError: Malformed month or a negative amount
            NotFoundError: Unknown unit
        """
        month = BillingMonth.parse(billing_month)
        sp_assessment, discounts = to_money(sp_assessment), to_money(discounts)
        if sp_assessment < ZERO or discounts < ZERO:
            raise ValidationError(
                f"Adjustments cannot be negative: sp_assessment={sp_assessment}, discounts={discounts}"
            )

        try:
            unit = self.db.execute(
                select(Unit).where(Unit.id == unit_id, Unit.tenant_id == tenant_id).with_for_update()
            ).scalar_one_or_none()
            if unit is None:
                raise NotFoundError(f"Unit {unit_id} not found for tenant {tenant_id}")

            adjustment = self._adjustments(tenant_id, month, [unit.id]).get(unit.id)
            if sp_assessment == ZERO and discounts == ZERO:
                if adjustment is not None:
                    self.db.delete(adjustment)
                adjustment = None
            else:
                if adjustment is None:
                    adjustment = BillingAdjustment(
                        tenant_id=tenant_id,
                        unit_id=unit.id,
                        billing_month=month.first_day(),
                    )
                    self.db.add(adjustment)
                adjustment.sp_assessment = sp_assessment
                adjustment.discounts = discounts
                adjustment.remarks = remarks

            self.db.flush()
            AuditService.log(
                self.db,
                "unit",
                unit.id,
                "adjustment",
                actor_id,
                {"billing_month": str(month), "sp_assessment": sp_assessment, "discounts": discounts},
            )
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error("Failed to save adjustment of unit %d for %s", unit_id, month, exc_info=True)
            raise

        logger.info(
            "Adjustment of unit %d for %s: sp_assessment=%s discounts=%s",
            unit_id,
            month,
            sp_assessment,
            discounts,
        )
        return adjustment

    def list_adjustments(self, tenant_id: int, billing_month) -> list[BillingAdjustment]:
        month = BillingMonth.parse(billing_month)
        return list(
            self.db.execute(
                select(BillingAdjustment)
                .where(
                    BillingAdjustment.tenant_id == tenant_id,
                    BillingAdjustment.billing_month == month.first_day(),
                )
                .order_by(BillingAdjustment.unit_id)
            ).scalars()
        )

    def apply_sp_assessment(
        self, tenant_id: int, billing_month, actor_id: int | None = None
    ) -> SpAssessmentResult:
        """Charge the tenant's special assessment to every active unit for a month.

        The rate is a flat amount per unit, written into each unit's
        adjustment for the month; discounts already entered are kept.

        Raises:
            ValidationError: Malformed month or no special assessment rate set
            NotFoundError: Tenant has no rate settings or no active units
        """
        month, rate_table, _ = self._context(tenant_id, billing_month)
        rate = to_money(rate_table.sp_assessment_rate)
        if rate <= ZERO:
            raise ValidationError(f"Special assessment rate is not set for tenant {tenant_id}")
        result = SpAssessmentResult(billing_month=str(month), rate=rate)

        try:
            unit_ids = list(
                self.db.execute(
                    select(Unit.id)
                    .where(Unit.tenant_id == tenant_id, Unit.is_active.is_(True))
                    .order_by(Unit.unit_number)
                ).scalars()
            )
            if not unit_ids:
                raise NotFoundError(f"No active units for tenant {tenant_id}")

            existing = self._adjustments(tenant_id, month, unit_ids)
            for unit_id in unit_ids:
                adjustment = existing.get(unit_id)
                if adjustment is None:
                    self.db.add(
                        BillingAdjustment(
                            tenant_id=tenant_id,
                            unit_id=unit_id,
                            billing_month=month.first_day(),
                            sp_assessment=rate,
                            discounts=ZERO,
                        )
                    )
                    result.created += 1
                else:
                    adjustment.sp_assessment = rate
                    result.updated += 1

            self.db.flush()
            AuditService.log(
                self.db,
                "billing_month",
                month.year * 100 + month.month,
                "apply_sp_assessment",
                actor_id,
                {"tenant_id": tenant_id, "rate": rate, "created": result.created, "updated": result.updated},
            )
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error("Failed to apply special assessment for %s (tenant %d)", month, tenant_id, exc_info=True)
            raise

        logger.info(
            "Applied special assessment %s for %s (tenant %d) to %d units",
            rate,
            month,
            tenant_id,
            result.units,
        )
        return result

    def clear_sp_assessment(self, tenant_id: int, billing_month, actor_id: int | None = None) -> int:
        """Remove the special assessment from every adjustment of a month.

        Adjustments left without any amount are deleted.

        Returns:
            Number of adjustments that carried a special assessment
        """
        month = BillingMonth.parse(billing_month)
        cleared = 0
        try:
            for adjustment in self.list_adjustments(tenant_id, month):
                if as_decimal(adjustment.sp_assessment) == ZERO:
                    continue
                cleared += 1
                if as_decimal(adjustment.discounts) == ZERO:
                    self.db.delete(adjustment)
                else:
                    adjustment.sp_assessment = ZERO

            self.db.flush()
            AuditService.log(
                self.db,
                "billing_month",
                month.year * 100 + month.month,
                "clear_sp_assessment",
                actor_id,
                {"tenant_id": tenant_id, "cleared": cleared},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error("Failed to clear special assessment for %s (tenant %d)", month, tenant_id, exc_info=True)
            raise

        logger.info("Cleared special assessment for %s (tenant %d) from %d units", month, tenant_id, cleared)
        return cleared

    # Helpers

    def _build_previews(
        self,
        tenant_id: int,
        month: BillingMonth,
        rate_table: RateTable,
        period: BillingPeriodInfo,
    ) -> list[BillPreview]:
        units = list(
            self.db.execute(
                select(Unit)
                .where(Unit.tenant_id == tenant_id, Unit.is_active.is_(True))
                .order_by(Unit.unit_number)
            ).scalars()
        )
        if not units:
            logger.warning("No active units for tenant %d", tenant_id)
            return []
        unit_ids = [unit.id for unit in units]

        reading_period = month.previous().first_day()
        readings = {
            (reading.unit_id, UtilityType(reading.utility_type)): reading
            for reading in self.db.execute(
                select(MeterReading).where(
                    MeterReading.unit_id.in_(unit_ids),
                    MeterReading.billing_period == reading_period,
                )
            ).scalars()
        }
        adjustments = self._adjustments(tenant_id, month, unit_ids)
        earlier_bills = {}
        for bill in self.db.execute(
            select(Bill)
            .where(
                Bill.unit_id.in_(unit_ids),
                Bill.billing_month < month.first_day(),
                Bill.status.in_([status.value for status in OUTSTANDING_STATUSES]),
            )
            .order_by(Bill.billing_month, Bill.id)
        ).scalars():
            earlier_bills.setdefault(bill.unit_id, []).append(bill)
        paid = paid_components_by_bill(
            self.db, [bill.id for bills in earlier_bills.values() for bill in bills]
        )
        advances = AdvanceBalanceService(self.db)

        previews = []
        for unit in units:
            balance = advances.get_balance(unit.id)
            preview = self._preview_unit(
                unit,
                rate_table,
                period,
                electric=readings.get((unit.id, UtilityType.ELECTRIC)),
                water=readings.get((unit.id, UtilityType.WATER)),
                adjustment=adjustments.get(unit.id),
                earlier_bills=earlier_bills.get(unit.id, []),
                paid=paid,
                available_dues=balance.advance_dues if balance else ZERO,
                available_utilities=balance.advance_utilities if balance else ZERO,
            )
            previews.append(preview)

        logger.debug(
            "Previewed %d bills for %s (tenant %d), %d with warnings",
            len(previews),
            month,
            tenant_id,
            sum(1 for preview in previews if preview.warnings),
        )
        return previews

    def _preview_unit(
        self,
        unit: Unit,
        rate_table: RateTable,
        period: BillingPeriodInfo,
        electric: MeterReading | None,
        water: MeterReading | None,
        adjustment: BillingAdjustment | None,
        earlier_bills: list[Bill],
        paid: dict,
        available_dues,
        available_utilities,
    ) -> BillPreview:
        warnings = []
        negative = False

        def consumption(reading: MeterReading | None, label: str) -> Decimal | None:
            nonlocal negative
            if reading is None:
                warnings.append(f"Missing {label} meter reading")
                return None
            value = reading.consumption
            if value < ZERO:
                warnings.append(f"Negative {label} consumption ({value}); check for meter rollover")
                negative = True
            return value

        electric_consumption = consumption(electric, "electric")
        water_consumption = consumption(water, "water")
        # Missing or invalid readings bill the minimum
        electric_billable = electric_consumption if electric_consumption and electric_consumption > ZERO else ZERO
        water_billable = water_consumption if water_consumption and water_consumption > ZERO else ZERO
        water_schedule = rate_table.water_schedule(unit.unit_type)

        electric_amount = compute_electric_charge(
            electric_billable, rate_table.electric_rate, rate_table.electric_min_charge
        )
        water_amount = compute_water_charge(water_billable, water_schedule)
        dues = compute_dues_charge(unit.area, rate_table.association_dues_rate)
        parking = compute_parking_fee(unit.parking_area, rate_table.parking_rate)

        sp_assessment = as_decimal(adjustment.sp_assessment) if adjustment else ZERO
        discounts = as_decimal(adjustment.discounts) if adjustment else ZERO

        unpaid = []
        previous_balance = ZERO
        for bill in earlier_bills:
            bill.check_consistency()
            previous_balance += as_decimal(bill.balance)
            if bill.due_date is None:
                continue
            principal = penalty_principal_for_bill(bill, paid.get(bill.id) or ComponentAmounts())
            # Bills without principal (opening balances, settled utilities) do not enter the compounding
            if principal <= ZERO:
                continue
            unpaid.append(
                UnpaidBillForPenalty(
                    billing_month=str(BillingMonth.parse(bill.billing_month)),
                    principal_amount=principal,
                    due_date=bill.due_date,
                )
            )
        penalty = calculate_penalty(unpaid, rate_table.penalty_rate, period.bill_generation_date)

        application = compute_advance_application(
            available_dues,
            available_utilities,
            to_money(dues),
            to_money(electric_amount) + to_money(water_amount),
        )

        return BillPreview(
            unit_id=unit.id,
            unit_number=unit.unit_number,
            unit_type=UnitType(unit.unit_type).value,
            electric_consumption=electric_consumption,
            water_consumption=water_consumption,
            water_tier=water_tier_for(water_billable, water_schedule),
            electric_amount=electric_amount,
            water_amount=water_amount,
            association_dues=dues,
            parking_fee=parking,
            sp_assessment=sp_assessment,
            discounts=discounts,
            penalty=penalty,
            advance_dues_applied=application.advance_dues_applied,
            advance_util_applied=application.advance_util_applied,
            previous_balance=to_money(previous_balance),
            warnings=warnings,
            has_negative_consumption=negative,
        )

    def _adjustments(self, tenant_id: int, month: BillingMonth, unit_ids) -> dict[int, BillingAdjustment]:
        return {
            adjustment.unit_id: adjustment
            for adjustment in self.db.execute(
                select(BillingAdjustment).where(
                    BillingAdjustment.tenant_id == tenant_id,
                    BillingAdjustment.unit_id.in_(unit_ids),
                    BillingAdjustment.billing_month == month.first_day(),
                )
            ).scalars()
        }

    def _remove_unpaid_bills(self, tenant_id: int, bills: list[Bill]) -> set[int]:
        """Delete bills with no money applied; returns unit ids of bills kept."""
        applied = set(
            self.db.execute(
                select(BillPayment.bill_id).where(BillPayment.bill_id.in_([bill.id for bill in bills]))
            ).scalars()
        )
        advances = AdvanceBalanceService(self.db)
        kept = set()
        for bill in bills:
            if bill.id in applied or as_decimal(bill.paid_amount) > ZERO:
                kept.add(bill.unit_id)
                continue
            advances.credit(
                tenant_id,
                bill.unit_id,
                dues=as_decimal(bill.advance_dues_applied),
                utilities=as_decimal(bill.advance_util_applied),
            )
            self.db.delete(bill)
        self.db.flush()
        if kept:
            logger.warning("Kept %d bills with payments applied during regeneration", len(kept))
        return kept

    def _last_bill_counter(self, tenant_id: int) -> int:
        counter = 0
        for number in self.db.execute(
            select(Bill.bill_number).where(
                Bill.tenant_id == tenant_id, Bill.bill_type == BillType.REGULAR.value
            )
        ).scalars():
            suffix = number.rsplit("-", 1)[-1]
            if suffix.isdigit():
                counter = max(counter, int(suffix))
        return counter

    def get_bill(self, bill_id: int) -> Bill:
        bill = self.db.get(Bill, bill_id)
        if bill is None:
            raise NotFoundError(f"Bill {bill_id} not found")
        return bill

    def list_bills(self, tenant_id: int, billing_month) -> list[Bill]:
        month = BillingMonth.parse(billing_month)
        return list(
            self.db.execute(
                select(Bill)
                .where(Bill.tenant_id == tenant_id, Bill.billing_month == month.first_day())
                .order_by(Bill.bill_number)
            ).scalars()
        )


__all__ = ["BillPreview", "BillingService", "GenerationResult", "SpAssessmentResult"]
