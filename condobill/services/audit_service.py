"""Audit service for recording ledger-changing events."""

from decimal import Decimal

from sqlalchemy.orm import Session

from condobill.models.audit_log import AuditLog


def snapshot(**values) -> dict:
    """JSON-safe copy of audit values: Decimals and dates become strings."""
    result = {}
    for key, value in values.items():
        if isinstance(value, Decimal) or hasattr(value, "isoformat"):
            result[key] = str(value)
        else:
            result[key] = value
    return result


class AuditService:
    """Writes audit entries inside the caller's transaction."""

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Add an audit log entry; it commits together with the change it records.

        Args:
            db: Database session
            entity_type: "payment", "bill", "unit"
            entity_id: Primary key of the entity
            action: "record", "void", "generate", "opening_balance"
            actor_id: Administrator who performed the action (optional)
            changes: Optional snapshot, see ``snapshot``

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=snapshot(**changes) if changes else None,
        )
        db.add(audit)
        return audit


__all__ = ["AuditService", "snapshot"]
