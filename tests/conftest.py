"""Shared pytest fixtures: in-memory database and seeded tenant data."""

import os
from datetime import date
from decimal import Decimal

# Point the module-level engine at an in-memory database before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from condobill.models import (  # noqa: E402
    Base,
    Bill,
    BillType,
    MeterReading,
    RateSettings,
    Unit,
    UnitType,
    UtilityType,
)
from condobill.services.rates import RateTable  # noqa: E402

TENANT_ID = 1


@pytest.fixture
def db_session():
    """Create test database session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def rate_table():
    """Default rate table (8.39/50 electric, 60 dues, 10% penalty)."""
    return RateTable()


@pytest.fixture
def rate_settings(db_session):
    """Tenant rate settings with column defaults."""
    settings = RateSettings(tenant_id=TENANT_ID)
    db_session.add(settings)
    db_session.commit()
    return settings


@pytest.fixture
def unit(db_session):
    """A 40 sq.m residential unit with a 12.5 sq.m parking slot."""
    unit = Unit(
        tenant_id=TENANT_ID,
        unit_number="M2-2F-16",
        floor_level="2F",
        owner_name="Dela Cruz, Juan",
        area=Decimal("40"),
        parking_area=Decimal("12.5"),
        unit_type=UnitType.RESIDENTIAL,
    )
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture
def add_reading(db_session):
    """Factory recording a previous/present reading pair for a unit."""

    def _add(unit, utility_type, billing_period, previous, present):
        reading = MeterReading(
            unit_id=unit.id,
            utility_type=UtilityType(utility_type),
            billing_period=billing_period,
            previous_reading=Decimal(str(previous)),
            present_reading=Decimal(str(present)),
        )
        db_session.add(reading)
        db_session.commit()
        return reading

    return _add


@pytest.fixture
def make_bill(db_session):
    """Factory persisting an UNPAID bill with the given components."""

    def _make(
        unit,
        billing_month: date,
        number: str,
        electric="0",
        water="0",
        dues="0",
        due_date: date | None = None,
        bill_type=BillType.REGULAR,
        **components,
    ) -> Bill:
        bill = Bill(
            bill_number=number,
            tenant_id=unit.tenant_id,
            unit_id=unit.id,
            bill_type=bill_type,
            billing_month=billing_month,
            due_date=due_date,
            electric_amount=Decimal(electric),
            water_amount=Decimal(water),
            association_dues=Decimal(dues),
            paid_amount=Decimal("0"),
            **{name: Decimal(value) for name, value in components.items()},
        )
        bill.recompute_total()
        db_session.add(bill)
        db_session.commit()
        return bill

    return _make
