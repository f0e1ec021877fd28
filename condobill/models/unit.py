"""Unit ORM model for condominium units billed by the engine."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condobill.models import Base, BaseModel


class UnitType(str, Enum):
    """Customer class used to pick the water tier schedule."""

    RESIDENTIAL = "RESIDENTIAL"
    COMMERCIAL = "COMMERCIAL"


class Unit(Base, BaseModel):
    """Model representing a single unit of the property.

    Area drives association dues, parking area drives the parking fee and
    unit_type selects the residential or commercial water schedule.
    Inactive units are skipped by bill generation.
    """

    __tablename__ = "units"

    tenant_id: Mapped[int] = mapped_column(
        nullable=False,
        index=True,
        comment="Owning tenant (property association)",
    )
    unit_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Unit label, e.g. 'M2-2F-16'",
    )
    floor_level: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    owner_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Display name of the registered owner",
    )

    area: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Floor area in square meters",
    )
    parking_area: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Parking slot area in square meters",
    )
    unit_type: Mapped[UnitType] = mapped_column(
        String(20),
        nullable=False,
        default=UnitType.RESIDENTIAL,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )

    # Relationships
    bills: Mapped[list["Bill"]] = relationship(  # noqa: F821
        "Bill",
        back_populates="unit",
    )
    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="unit",
    )

    __table_args__ = (
        Index("idx_unit_tenant_number", "tenant_id", "unit_number", unique=True),
        Index("idx_unit_tenant_active", "tenant_id", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<Unit(id={self.id}, tenant_id={self.tenant_id}, "
            f"unit_number={self.unit_number!r}, type={self.unit_type}, "
            f"area={self.area}, parking_area={self.parking_area})>"
        )


__all__ = ["Unit", "UnitType"]
