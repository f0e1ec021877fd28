"""Advance balance ledger: per-unit credit for dues and utilities."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from condobill.models.advance_balance import UnitAdvanceBalance
from condobill.services.errors import ValidationError
from condobill.services.money import ZERO, as_decimal, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdvanceApplication:
    """Credit drawn for a new bill."""

    advance_dues_applied: Decimal = ZERO
    advance_util_applied: Decimal = ZERO


def compute_advance_application(available_dues, available_utilities, dues_charge, utilities_charge) -> AdvanceApplication:
    """Credit a new bill can draw: each bucket up to the charges it covers."""
    dues = min(as_decimal(available_dues), as_decimal(dues_charge))
    utilities = min(as_decimal(available_utilities), as_decimal(utilities_charge))
    return AdvanceApplication(
        advance_dues_applied=to_money(max(dues, ZERO)),
        advance_util_applied=to_money(max(utilities, ZERO)),
    )


class AdvanceBalanceService:
    """Reads and moves a unit's advance credit.

    Callers own the transaction; nothing here commits.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get_balance(self, unit_id: int, for_update: bool = False) -> UnitAdvanceBalance | None:
        query = select(UnitAdvanceBalance).where(UnitAdvanceBalance.unit_id == unit_id)
        if for_update:
            query = query.with_for_update()
        return self.db.execute(query).scalar_one_or_none()

    def get_or_create(self, tenant_id: int, unit_id: int, for_update: bool = False) -> UnitAdvanceBalance:
        balance = self.get_balance(unit_id, for_update=for_update)
        if balance is None:
            balance = UnitAdvanceBalance(
                tenant_id=tenant_id,
                unit_id=unit_id,
                advance_dues=ZERO,
                advance_utilities=ZERO,
            )
            self.db.add(balance)
            self.db.flush()
        return balance

    def credit(self, tenant_id: int, unit_id: int, dues=ZERO, utilities=ZERO) -> UnitAdvanceBalance:
        """Add credit to the buckets.

        Raises:
            ValidationError: If an amount is negative
        """
        dues, utilities = as_decimal(dues), as_decimal(utilities)
        if dues < ZERO or utilities < ZERO:
            raise ValidationError("Advance credit cannot be negative")

        balance = self.get_or_create(tenant_id, unit_id, for_update=True)
        if dues == ZERO and utilities == ZERO:
            return balance

        balance.advance_dues = to_money(as_decimal(balance.advance_dues) + dues)
        balance.advance_utilities = to_money(as_decimal(balance.advance_utilities) + utilities)
        logger.info("Credited advance for unit %d: dues=%s utilities=%s", unit_id, dues, utilities)
        return balance

    def draw(self, tenant_id: int, unit_id: int, dues=ZERO, utilities=ZERO) -> UnitAdvanceBalance:
        """Take credit out of the buckets.

        Raises:
            ValidationError: If an amount is negative or exceeds the available credit
        """
        dues, utilities = as_decimal(dues), as_decimal(utilities)
        if dues < ZERO or utilities < ZERO:
            raise ValidationError("Advance draw cannot be negative")

        balance = self.get_or_create(tenant_id, unit_id, for_update=True)
        if dues > as_decimal(balance.advance_dues):
            raise ValidationError(
                f"Unit {unit_id} has {balance.advance_dues} advance dues, cannot draw {dues}"
            )
        if utilities > as_decimal(balance.advance_utilities):
            raise ValidationError(
                f"Unit {unit_id} has {balance.advance_utilities} advance utilities, cannot draw {utilities}"
            )

        balance.advance_dues = to_money(as_decimal(balance.advance_dues) - dues)
        balance.advance_utilities = to_money(as_decimal(balance.advance_utilities) - utilities)
        if dues or utilities:
            logger.info("Drew advance for unit %d: dues=%s utilities=%s", unit_id, dues, utilities)
        return balance


__all__ = ["AdvanceApplication", "AdvanceBalanceService", "compute_advance_application"]
