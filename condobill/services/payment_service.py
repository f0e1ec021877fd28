"""Payment service: records and voids payments against a unit's ledger.

Each operation is one transaction. The unit row and the bill rows being
changed are locked (SELECT ... FOR UPDATE) before they are read, so two
payments for the same unit cannot interleave; payments for different
units do not block each other. Bills also carry a version counter, so a
write based on a stale read fails instead of overwriting.

On any failure the session is rolled back and bills, allocation records
and the advance balance are left exactly as they were.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from condobill.models import (
    Bill,
    BillPayment,
    Payment,
    PaymentStatus,
    Unit,
)
from condobill.models.bill import OUTSTANDING_STATUSES
from condobill.services.advance_balance_service import AdvanceBalanceService
from condobill.services.allocation_service import (
    ComponentAmounts,
    OutstandingBill,
    PaymentComponents,
    allocate_payment,
)
from condobill.services.audit_service import AuditService
from condobill.services.errors import (
    BillingError,
    ConcurrencyError,
    NotFoundError,
    ValidationError,
)
from condobill.services.money import ZERO, as_decimal, to_money

logger = logging.getLogger(__name__)


def _locked(query):
    # Row lock plus a reload, so rows already in the session are not read stale
    return query.with_for_update().execution_options(populate_existing=True)


def paid_components_by_bill(db: Session, bill_ids) -> dict[int, ComponentAmounts]:
    """Sum of confirmed allocations per bill and component.

    Allocation records of cancelled payments are ignored.
    """
    bill_ids = list(bill_ids)
    if not bill_ids:
        return {}

    rows = db.execute(
        select(
            BillPayment.bill_id,
            func.coalesce(func.sum(BillPayment.electric_amount), 0),
            func.coalesce(func.sum(BillPayment.water_amount), 0),
            func.coalesce(func.sum(BillPayment.dues_amount), 0),
            func.coalesce(func.sum(BillPayment.penalty_amount), 0),
            func.coalesce(func.sum(BillPayment.sp_assessment_amount), 0),
        )
        .join(Payment, Payment.id == BillPayment.payment_id)
        .where(BillPayment.bill_id.in_(bill_ids))
        .where(Payment.status == PaymentStatus.CONFIRMED.value)
        .group_by(BillPayment.bill_id)
    ).all()

    return {
        bill_id: ComponentAmounts(
            electric=as_decimal(electric),
            water=as_decimal(water),
            dues=as_decimal(dues),
            penalty=as_decimal(penalty),
            sp_assessment=as_decimal(sp_assessment),
        )
        for bill_id, electric, water, dues, penalty, sp_assessment in rows
    }


class PaymentService:
    """Transactional payment operations for one database session."""

    def __init__(self, db_session: Session, lock_timeout_seconds: int | None = None):
        """Initialize payment service.

        Args:
            db_session: SQLAlchemy session; each operation commits or rolls it back
            lock_timeout_seconds: Upper bound on waiting for row locks (PostgreSQL only)
        """
        self.db = db_session
        self.lock_timeout_seconds = lock_timeout_seconds

    # Queries

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    def list_payments(self, unit_id: int, include_cancelled: bool = False) -> list[Payment]:
        """Payments of a unit, newest first."""
        query = select(Payment).where(Payment.unit_id == unit_id)
        if not include_cancelled:
            query = query.where(Payment.status == PaymentStatus.CONFIRMED.value)
        query = query.order_by(Payment.payment_date.desc(), Payment.id.desc())
        return list(self.db.execute(query).scalars())

    def get_outstanding_bills(self, unit_id: int) -> list[Bill]:
        """Unsettled bills of a unit, oldest billing month first."""
        return list(self.db.execute(self._outstanding_bills_query(unit_id)).scalars())

    # Operations

    def record_payment(
        self,
        tenant_id: int,
        unit_id: int,
        components: PaymentComponents,
        payment_date: date,
        or_number: str | None = None,
        payment_method: str = "CASH",
        reference_number: str | None = None,
        remarks: str | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """Record a payment and allocate it to the unit's outstanding bills.

        Bills are paid oldest first per component; leftovers go to the
        unit's advance balance. Bills, allocation records, advance balance
        and the audit entry commit together.

        Args:
            tenant_id: Tenant owning the unit
            unit_id: Unit paying
            components: Payment split into components (total must match)
            payment_date: Date the money was received
            or_number: Official receipt number, unique per tenant
            payment_method: CASH, CHECK, BANK_TRANSFER, ...
            reference_number: Check or transfer reference
            remarks: Free text
            actor_id: Administrator recording the payment

        Returns:
            The committed Payment

        Raises:
            ValidationError: Invalid components, zero total or duplicate OR number
            NotFoundError: Unknown unit
            ConsistencyError: A locked bill's stored balance is inconsistent
            ConcurrencyError: Lock timeout or concurrent modification; safe to retry
        """
        if unit_id is None:
            raise ValidationError("Payment requires a unit id")
        if payment_date is None:
            raise ValidationError("Payment requires a payment date")
        components.validate()
        if components.component_sum <= ZERO:
            raise ValidationError("Payment total must be greater than zero")

        try:
            self._set_lock_timeout()
            unit = self._lock_unit(tenant_id, unit_id)
            self._check_or_number(tenant_id, or_number)

            bills = list(self.db.execute(_locked(self._outstanding_bills_query(unit.id))).scalars())
            paid = paid_components_by_bill(self.db, [bill.id for bill in bills])
            snapshots = [OutstandingBill.from_bill(bill, paid.get(bill.id)) for bill in bills]

            result = allocate_payment(unit.id, components, snapshots)

            payment = Payment(
                tenant_id=tenant_id,
                unit_id=unit.id,
                or_number=or_number,
                payment_date=payment_date,
                payment_method=payment_method,
                reference_number=reference_number,
                remarks=remarks,
                electric_amount=to_money(components.electric),
                water_amount=to_money(components.water),
                dues_amount=to_money(components.dues),
                past_dues_amount=to_money(components.past_dues),
                sp_assessment_amount=to_money(components.sp_assessment),
                advance_dues_amount=to_money(components.advance_dues),
                advance_util_amount=to_money(components.advance_utilities),
                other_advance_amount=to_money(components.other_advance),
                total_amount=to_money(components.component_sum),
                advance_dues_credited=to_money(result.advance_delta.advance_dues),
                advance_utilities_credited=to_money(result.advance_delta.advance_utilities),
                status=PaymentStatus.CONFIRMED,
            )
            self.db.add(payment)
            self.db.flush()

            for allocation in result.bill_payments:
                amounts = allocation.amounts
                self.db.add(
                    BillPayment(
                        payment_id=payment.id,
                        bill_id=allocation.bill_id,
                        electric_amount=to_money(amounts.electric),
                        water_amount=to_money(amounts.water),
                        dues_amount=to_money(amounts.dues),
                        penalty_amount=to_money(amounts.penalty),
                        sp_assessment_amount=to_money(amounts.sp_assessment),
                        total_amount=to_money(amounts.total),
                    )
                )

            bills_by_id = {bill.id: bill for bill in bills}
            for update in result.updated_bills:
                bill = bills_by_id[update.bill_id]
                bill.paid_amount = update.paid_amount
                bill.balance = update.balance
                bill.status = update.status

            AdvanceBalanceService(self.db).credit(
                tenant_id,
                unit.id,
                dues=result.advance_delta.advance_dues,
                utilities=result.advance_delta.advance_utilities,
            )

            AuditService.log(
                self.db,
                "payment",
                payment.id,
                "record",
                actor_id,
                {
                    "unit_id": unit.id,
                    "total": payment.total_amount,
                    "allocated": result.allocated_total,
                    "advance_dues": payment.advance_dues_credited,
                    "advance_utilities": payment.advance_utilities_credited,
                    "bills": [allocation.bill_id for allocation in result.bill_payments],
                },
            )
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except (OperationalError, StaleDataError) as e:
            self.db.rollback()
            logger.error("Concurrent update while recording payment for unit %s", unit_id, exc_info=True)
            raise ConcurrencyError(f"Unit {unit_id} ledger is busy or changed, retry the payment") from e
        except Exception:
            self.db.rollback()
            logger.error("Failed to record payment for unit %s", unit_id, exc_info=True)
            raise

        logger.info(
            "Recorded payment %d (OR %s) for unit %s: total=%s allocated=%s to %d bills, advance=%s",
            payment.id,
            or_number,
            unit.unit_number,
            payment.total_amount,
            result.allocated_total,
            len(result.bill_payments),
            result.advance_delta.total,
        )
        return payment

    def void_payment(self, payment_id: int, reason: str | None = None, actor_id: int | None = None) -> Payment:
        """Cancel a confirmed payment and reverse its effects.

        Bills lose the amounts the payment applied to them and their status
        is re-derived; the advance credit the payment posted is withdrawn.
        Allocation records are kept for the audit trail but no longer count
        as paid.

        Raises:
            NotFoundError: Unknown payment
            ValidationError: Payment already cancelled, or its advance credit
                has since been drawn by a newer bill
            ConcurrencyError: Lock timeout or concurrent modification; safe to retry
        """
        try:
            self._set_lock_timeout()
            payment = self.db.execute(
                _locked(select(Payment).where(Payment.id == payment_id))
            ).scalar_one_or_none()
            if payment is None:
                raise NotFoundError(f"Payment {payment_id} not found")
            if PaymentStatus(payment.status) == PaymentStatus.CANCELLED:
                raise ValidationError(f"Payment {payment_id} is already cancelled")

            self._lock_unit(payment.tenant_id, payment.unit_id)
            allocations = list(
                self.db.execute(select(BillPayment).where(BillPayment.payment_id == payment.id)).scalars()
            )
            bill_ids = [allocation.bill_id for allocation in allocations]
            bills = {
                bill.id: bill
                for bill in self.db.execute(
                    _locked(select(Bill).where(Bill.id.in_(bill_ids)))
                ).scalars()
            } if bill_ids else {}

            AdvanceBalanceService(self.db).draw(
                payment.tenant_id,
                payment.unit_id,
                dues=as_decimal(payment.advance_dues_credited),
                utilities=as_decimal(payment.advance_utilities_credited),
            )

            for allocation in allocations:
                bill = bills[allocation.bill_id]
                bill.check_consistency()
                remaining = as_decimal(bill.paid_amount) - as_decimal(allocation.total_amount)
                bill.apply_paid_amount(remaining if remaining > ZERO else ZERO)

            payment.status = PaymentStatus.CANCELLED
            if reason:
                payment.remarks = f"{payment.remarks}\nVOID: {reason}" if payment.remarks else f"VOID: {reason}"

            AuditService.log(
                self.db,
                "payment",
                payment.id,
                "void",
                actor_id,
                {"total": payment.total_amount, "bills": bill_ids, "reason": reason},
            )
            self.db.commit()
        except BillingError:
            self.db.rollback()
            raise
        except (OperationalError, StaleDataError) as e:
            self.db.rollback()
            logger.error("Concurrent update while voiding payment %d", payment_id, exc_info=True)
            raise ConcurrencyError(f"Payment {payment_id} ledger is busy or changed, retry the void") from e
        except Exception:
            self.db.rollback()
            logger.error("Failed to void payment %d", payment_id, exc_info=True)
            raise

        logger.info("Voided payment %d for unit %d (%s bills reversed)", payment.id, payment.unit_id, len(bill_ids))
        return payment

    # Helpers

    def _outstanding_bills_query(self, unit_id: int):
        return (
            select(Bill)
            .where(Bill.unit_id == unit_id)
            .where(Bill.status.in_([status.value for status in OUTSTANDING_STATUSES]))
            .order_by(Bill.billing_month, Bill.id)
        )

    def _lock_unit(self, tenant_id: int, unit_id: int) -> Unit:
        unit = self.db.execute(
            _locked(select(Unit).where(Unit.id == unit_id, Unit.tenant_id == tenant_id))
        ).scalar_one_or_none()
        if unit is None:
            raise NotFoundError(f"Unit {unit_id} not found for tenant {tenant_id}")
        return unit

    def _check_or_number(self, tenant_id: int, or_number: str | None) -> None:
        if not or_number:
            return
        existing = self.db.execute(
            select(Payment.id).where(Payment.tenant_id == tenant_id, Payment.or_number == or_number)
        ).first()
        if existing is not None:
            raise ValidationError(f"OR number {or_number} is already used by payment {existing[0]}")

    def _set_lock_timeout(self) -> None:
        # Only PostgreSQL supports a per-transaction lock timeout
        if not self.lock_timeout_seconds:
            return
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_seconds)}s'"))


def unit_paid_total(db: Session, unit_id: int) -> Decimal:
    """Total of a unit's confirmed payments."""
    total = db.execute(
        select(func.coalesce(func.sum(Payment.total_amount), 0)).where(
            Payment.unit_id == unit_id, Payment.status == PaymentStatus.CONFIRMED.value
        )
    ).scalar_one()
    return as_decimal(total)


__all__ = ["PaymentService", "paid_components_by_bill", "unit_paid_total"]
