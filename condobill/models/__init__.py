"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from condobill.models.advance_balance import UnitAdvanceBalance  # noqa: E402
from condobill.models.audit_log import AuditLog  # noqa: E402
from condobill.models.bill import Bill, BillStatus, BillType  # noqa: E402
from condobill.models.bill_payment import BillPayment  # noqa: E402
from condobill.models.billing_adjustment import BillingAdjustment  # noqa: E402
from condobill.models.meter_reading import MeterReading, UtilityType  # noqa: E402
from condobill.models.payment import Payment, PaymentStatus  # noqa: E402
from condobill.models.rate_settings import RateSettings  # noqa: E402
from condobill.models.unit import Unit, UnitType  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "AuditLog",
    "Bill",
    "BillPayment",
    "BillStatus",
    "BillType",
    "BillingAdjustment",
    "MeterReading",
    "Payment",
    "PaymentStatus",
    "RateSettings",
    "Unit",
    "UnitAdvanceBalance",
    "UnitType",
    "UtilityType",
]
