"""Audit log model for tracking ledger-changing events."""

from typing import Any

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from condobill.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """Audit log entry written in the same transaction as the change it records.

    Records who (actor_id) did what (action) to which entity (entity_type,
    entity_id) with an optional JSON snapshot of amounts (changes).
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(index=False)
    """Entity type being audited: "payment", "bill", "billing_month"."""

    entity_id: Mapped[int] = mapped_column(index=False)
    """Primary key of the entity being audited."""

    action: Mapped[str] = mapped_column(index=False)
    """Action performed: "record", "void", "generate", "opening_balance"."""

    actor_id: Mapped[int | None] = mapped_column(nullable=True, index=False)
    """Administrator who performed the action. None for system actions."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True, index=False)
    """Optional JSON snapshot, e.g. {"total": "1500.00", "bills": 2}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, entity_type={self.entity_type}, entity_id={self.entity_id}, "
            f"action={self.action}, actor_id={self.actor_id}, created_at={self.created_at})>"
        )


__all__ = ["AuditLog"]
