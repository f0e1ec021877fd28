"""Initial billing schema: units, rates, readings, bills, payments, ledger.

Reflects the models in condobill/models/.

Revision ID: 001_initial_billing_schema
Revises:
Create Date: 2025-11-20 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial_billing_schema"
down_revision = None
branch_labels = None
depends_on = None

# (name, default) for tiers 1-6 upper bounds and tiers 1-7 fees/rates
WATER_DEFAULTS = {
    "res": {"max": ["1", "6", "11", "21", "31", "41"], "rate": ["80", "200", "370", "40", "45", "50", "55"]},
    "com": {"max": ["1", "6", "11", "21", "31", "41"], "rate": ["200", "250", "740", "55", "60", "65", "85"]},
}


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
    ]


def _money(name: str, scale: int = 2, default: str = "0") -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=12, scale=scale), nullable=False, server_default=default)


def _water_columns() -> list[sa.Column]:
    columns = []
    for prefix, values in WATER_DEFAULTS.items():
        for tier in range(1, 8):
            if tier <= 6:
                columns.append(_money(f"water_{prefix}_tier{tier}_max", 4, values["max"][tier - 1]))
            columns.append(_money(f"water_{prefix}_tier{tier}_rate", 4, values["rate"][tier - 1]))
    return columns


def upgrade() -> None:
    # Create units table
    op.create_table(
        "units",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("unit_number", sa.String(length=50), nullable=False),
        sa.Column("floor_level", sa.String(length=20), nullable=True),
        sa.Column("owner_name", sa.String(length=255), nullable=True),
        sa.Column("area", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
        sa.Column("parking_area", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"),
        sa.Column("unit_type", sa.String(length=20), nullable=False, server_default="RESIDENTIAL"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_units_tenant_id", "tenant_id"),
        sa.Index("ix_units_is_active", "is_active"),
        sa.Index("idx_unit_tenant_number", "tenant_id", "unit_number", unique=True),
        sa.Index("idx_unit_tenant_active", "tenant_id", "is_active"),
    )

    # Create rate_settings table
    op.create_table(
        "rate_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        _money("electric_rate", 4, "8.39"),
        _money("electric_min_charge", 4, "50"),
        _money("association_dues_rate", 4, "60"),
        _money("parking_rate", 4, "60"),
        _money("penalty_rate", 4, "0.10"),
        _money("sp_assessment_rate", 4, "0"),
        sa.Column("reading_day", sa.Integer(), nullable=False, server_default="26"),
        sa.Column("billing_day_of_month", sa.Integer(), nullable=False, server_default="27"),
        sa.Column("statement_delay", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("due_date_delay", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("grace_period_days", sa.Integer(), nullable=False, server_default="0"),
        *_water_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_rate_settings_tenant_id", "tenant_id", unique=True),
    )

    # Create meter_readings table
    op.create_table(
        "meter_readings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("utility_type", sa.String(length=20), nullable=False),
        sa.Column("billing_period", sa.Date(), nullable=False),
        sa.Column("previous_reading", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("present_reading", sa.Numeric(precision=12, scale=2), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_meter_readings_unit_id", "unit_id"),
        sa.Index("ix_meter_readings_billing_period", "billing_period"),
        sa.Index("idx_reading_unit_type_period", "unit_id", "utility_type", "billing_period", unique=True),
    )

    # Create bills table
    op.create_table(
        "bills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("bill_number", sa.String(length=30), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("bill_type", sa.String(length=20), nullable=False, server_default="REGULAR"),
        sa.Column("billing_month", sa.Date(), nullable=False),
        sa.Column("billing_period_start", sa.Date(), nullable=True),
        sa.Column("billing_period_end", sa.Date(), nullable=True),
        sa.Column("statement_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        _money("electric_amount"),
        _money("water_amount"),
        _money("association_dues"),
        _money("parking_fee"),
        _money("sp_assessment"),
        _money("penalty_amount"),
        _money("other_charges"),
        _money("discounts"),
        _money("advance_dues_applied"),
        _money("advance_util_applied"),
        _money("total_amount"),
        _money("paid_amount"),
        _money("balance"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="UNPAID"),
        sa.Column("remarks", sa.String(length=500), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_bills_tenant_id", "tenant_id"),
        sa.Index("ix_bills_unit_id", "unit_id"),
        sa.Index("ix_bills_billing_month", "billing_month"),
        sa.Index("ix_bills_status", "status"),
        sa.Index("idx_bill_tenant_number", "tenant_id", "bill_number", unique=True),
        sa.Index("idx_bill_unit_month", "unit_id", "billing_month"),
        sa.Index("idx_bill_unit_status", "unit_id", "status"),
    )

    # Create payments table
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("or_number", sa.String(length=50), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=False, server_default="CASH"),
        sa.Column("reference_number", sa.String(length=100), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _money("electric_amount"),
        _money("water_amount"),
        _money("dues_amount"),
        _money("past_dues_amount"),
        _money("sp_assessment_amount"),
        _money("advance_dues_amount"),
        _money("advance_util_amount"),
        _money("other_advance_amount"),
        _money("total_amount"),
        _money("advance_dues_credited"),
        _money("advance_utilities_credited"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="CONFIRMED"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_payments_tenant_id", "tenant_id"),
        sa.Index("ix_payments_unit_id", "unit_id"),
        sa.Index("ix_payments_payment_date", "payment_date"),
        sa.Index("ix_payments_status", "status"),
        sa.Index("idx_payment_tenant_or", "tenant_id", "or_number", unique=True),
        sa.Index("idx_payment_unit_date", "unit_id", "payment_date"),
    )

    # Create bill_payments table
    op.create_table(
        "bill_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("bill_id", sa.Integer(), nullable=False),
        _money("electric_amount"),
        _money("water_amount"),
        _money("dues_amount"),
        _money("penalty_amount"),
        _money("sp_assessment_amount"),
        _money("total_amount"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["bill_id"], ["bills.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_bill_payments_payment_id", "payment_id"),
        sa.Index("ix_bill_payments_bill_id", "bill_id"),
        sa.Index("idx_bill_payment_pair", "payment_id", "bill_id", unique=True),
    )

    # Create unit_advance_balances table
    op.create_table(
        "unit_advance_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        _money("advance_dues"),
        _money("advance_utilities"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("advance_dues >= 0", name="ck_advance_dues_non_negative"),
        sa.CheckConstraint("advance_utilities >= 0", name="ck_advance_utilities_non_negative"),
        sa.Index("ix_unit_advance_balances_tenant_id", "tenant_id"),
        sa.Index("ix_unit_advance_balances_unit_id", "unit_id"),
        sa.Index("idx_advance_tenant_unit", "tenant_id", "unit_id", unique=True),
    )

    # Create billing_adjustments table
    op.create_table(
        "billing_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("billing_month", sa.Date(), nullable=False),
        _money("sp_assessment"),
        _money("discounts"),
        sa.Column("remarks", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_billing_adjustments_tenant_id", "tenant_id"),
        sa.Index("ix_billing_adjustments_unit_id", "unit_id"),
        sa.Index("idx_adjustment_unit_month", "unit_id", "billing_month", unique=True),
    )

    # Create audit_logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    for table in (
        "audit_logs",
        "billing_adjustments",
        "unit_advance_balances",
        "bill_payments",
        "payments",
        "bills",
        "meter_readings",
        "rate_settings",
        "units",
    ):
        op.drop_table(table)
