"""CLI entry point for billing operations.

Usage:
    python -m condobill.cli.billing period-info 2025-11 [--tenant 1] [--as-of 2025-12-20]
    python -m condobill.cli.billing init-rates --tenant 1 [--penalty-rate 2%] [--sp-assessment-rate 1500]
    python -m condobill.cli.billing adjust 2025-11 --tenant 1 --unit 7 [--sp-assessment 1500] [--discounts 100]
    python -m condobill.cli.billing apply-sp-assessment 2025-11 --tenant 1 [--clear]
    python -m condobill.cli.billing generate 2025-11 --tenant 1 [--commit] [--regenerate]
    python -m condobill.cli.billing opening-balance --tenant 1 --unit 7 --amount "₱12,500.00"
    python -m condobill.cli.billing record-payment --tenant 1 --unit 7 --date 2025-12-05 \
        --electric 1500 --dues 3000 [--or-number 000123]
    python -m condobill.cli.billing void-payment 42 --reason "Bounced check"

Without --commit, generate prints the preview and changes nothing.

Exit Codes:
    0 - Success
    1 - Failure: error logged; database state unchanged

Logging:
    Logs to both stdout and LOG_FILE (default logs/billing.log); ALLOCATION_LOG_LEVEL=DEBUG
    traces each payment's allocation
"""

import argparse
import logging
import sys

from condobill.services.config import load_config
from condobill.services.logging import LOG_LEVEL_MAP, setup_logging
from condobill.services.parsers import parse_currency, parse_date, parse_percentage
from condobill.services.period_service import (
    DEFAULT_SCHEDULE,
    ScheduleSettings,
    billing_schedule_summary,
    get_billing_period_info,
    utc_today,
)

logger = logging.getLogger("condobill.cli")

PAYMENT_COMPONENT_OPTIONS = (
    "electric",
    "water",
    "dues",
    "past_dues",
    "sp_assessment",
    "advance_dues",
    "advance_utilities",
    "other_advance",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="condobill", description="Condominium billing engine")
    commands = parser.add_subparsers(dest="command", required=True)

    period = commands.add_parser("period-info", help="Show reading period and key dates of a month")
    period.add_argument("month", help="Billing month, YYYY-MM")
    period.add_argument("--tenant", type=int, help="Use this tenant's schedule instead of the defaults")
    period.add_argument("--as-of", type=parse_date, help="Evaluate overdue status at this date")

    generate = commands.add_parser("generate", help="Preview or generate a month's bills")
    generate.add_argument("month", help="Billing month, YYYY-MM")
    generate.add_argument("--tenant", type=int, required=True)
    generate.add_argument("--commit", action="store_true", help="Persist the bills (default: preview only)")
    generate.add_argument("--regenerate", action="store_true", help="Replace existing unpaid bills")

    rates = commands.add_parser("init-rates", help="Create a tenant's rate settings from the defaults")
    rates.add_argument("--tenant", type=int, required=True)
    rates.add_argument(
        "--penalty-rate", type=parse_percentage, help="Monthly penalty, e.g. 2%% (default: DEFAULT_PENALTY_RATE)"
    )
    rates.add_argument("--sp-assessment-rate", type=parse_currency, help="Flat special assessment per unit")

    adjust = commands.add_parser("adjust", help="Set a unit's special assessment and discounts for a month")
    adjust.add_argument("month", help="Billing month, YYYY-MM")
    adjust.add_argument("--tenant", type=int, required=True)
    adjust.add_argument("--unit", type=int, required=True)
    adjust.add_argument("--sp-assessment", type=parse_currency)
    adjust.add_argument("--discounts", type=parse_currency)
    adjust.add_argument("--remarks")

    sp = commands.add_parser("apply-sp-assessment", help="Charge the special assessment to every active unit")
    sp.add_argument("month", help="Billing month, YYYY-MM")
    sp.add_argument("--tenant", type=int, required=True)
    sp.add_argument("--clear", action="store_true", help="Remove the month's special assessment instead")

    opening = commands.add_parser("opening-balance", help="Set a unit's opening balance")
    opening.add_argument("--tenant", type=int, required=True)
    opening.add_argument("--unit", type=int, required=True)
    opening.add_argument("--amount", type=parse_currency, required=True)
    opening.add_argument("--as-of", type=parse_date, help="Date of the balance (default: today)")
    opening.add_argument("--remarks")

    payment = commands.add_parser("record-payment", help="Record and allocate a payment")
    payment.add_argument("--tenant", type=int, required=True)
    payment.add_argument("--unit", type=int, required=True)
    payment.add_argument("--date", type=parse_date, required=True, dest="payment_date")
    payment.add_argument("--or-number")
    payment.add_argument("--method", default="CASH")
    payment.add_argument("--reference")
    for name in PAYMENT_COMPONENT_OPTIONS:
        payment.add_argument(f"--{name.replace('_', '-')}", dest=name, type=parse_currency)

    void = commands.add_parser("void-payment", help="Cancel a payment and reverse its allocation")
    void.add_argument("payment_id", type=int)
    void.add_argument("--reason")

    return parser


def _schedule_for(db_factory, tenant_id: int | None) -> ScheduleSettings:
    if tenant_id is None:
        return DEFAULT_SCHEDULE
    from condobill.services.rates import RateSettingsService

    db = db_factory()
    try:
        return ScheduleSettings.from_settings(RateSettingsService(db).get_settings(tenant_id))
    finally:
        db.close()


def period_info(args, db_factory) -> int:
    schedule = _schedule_for(db_factory, args.tenant)
    info = get_billing_period_info(args.month, schedule)
    as_of = args.as_of or utc_today()

    print(f"Billing month:   {info.billing_month.display()} ({info.billing_month})")
    print(f"Reading period:  {info.reading_period_start} to {info.reading_period_end}")
    print(f"Bill generation: {info.bill_generation_date}")
    print(f"Statement date:  {info.statement_date}")
    print(f"Due date:        {info.due_date}")
    print(f"Penalty starts:  {info.penalty_start_date}")
    print(f"As of {as_of}: overdue={info.is_overdue(as_of)}, months overdue={info.months_overdue(as_of)}")
    print()
    print(billing_schedule_summary(schedule))
    return 0


def generate(args, db_factory) -> int:
    from condobill.services.bills_service import BillingService

    db = db_factory()
    try:
        service = BillingService(db)
        if not args.commit:
            previews = service.preview_bills(args.tenant, args.month)
            for preview in previews:
                flag = f"  [{'; '.join(preview.warnings)}]" if preview.warnings else ""
                print(
                    f"{preview.unit_number:<12} electric={preview.electric_amount:.2f} "
                    f"water={preview.water_amount:.2f} dues={preview.association_dues:.2f} "
                    f"penalty={preview.penalty_amount:.2f} total={preview.total_amount:.2f}{flag}"
                )
            print(f"{len(previews)} bill(s) previewed; rerun with --commit to generate")
            return 0

        result = service.generate_bills(args.tenant, args.month, regenerate=args.regenerate)
        print(
            f"Generated {len(result.bills)} bill(s) for {result.billing_month}, "
            f"total {result.total_amount:.2f}"
        )
        if result.skipped_units:
            print(f"Kept bills with payments for: {', '.join(result.skipped_units)}")
        return 0
    finally:
        db.close()


def opening_balance(args, db_factory) -> int:
    from condobill.services.bills_service import BillingService

    db = db_factory()
    try:
        bill = BillingService(db).set_opening_balance(
            args.tenant, args.unit, args.amount, args.as_of or utc_today(), remarks=args.remarks
        )
        print(f"{bill.bill_number}: total {bill.total_amount}, balance {bill.balance}, {bill.status}")
        return 0
    finally:
        db.close()


def record_payment(args, db_factory) -> int:
    from condobill.services.allocation_service import PaymentComponents
    from condobill.services.payment_service import PaymentService

    components = PaymentComponents(
        **{name: getattr(args, name) for name in PAYMENT_COMPONENT_OPTIONS if getattr(args, name) is not None}
    )
    db = db_factory()
    try:
        service = PaymentService(db, lock_timeout_seconds=load_config().lock_timeout_seconds)
        payment = service.record_payment(
            args.tenant,
            args.unit,
            components,
            args.payment_date,
            or_number=args.or_number,
            payment_method=args.method,
            reference_number=args.reference,
        )
        print(
            f"Payment {payment.id} recorded: total {payment.total_amount}, "
            f"advance dues {payment.advance_dues_credited}, "
            f"advance utilities {payment.advance_utilities_credited}"
        )
        return 0
    finally:
        db.close()


def void_payment(args, db_factory) -> int:
    from condobill.services.payment_service import PaymentService

    db = db_factory()
    try:
        payment = PaymentService(db).void_payment(args.payment_id, reason=args.reason)
        print(f"Payment {payment.id} voided")
        return 0
    finally:
        db.close()


def init_rates(args, db_factory) -> int:
    from condobill.services.rates import RateSettingsService

    values = {}
    if args.sp_assessment_rate is not None:
        values["sp_assessment_rate"] = args.sp_assessment_rate
    db = db_factory()
    try:
        table = RateSettingsService(db).create_settings(args.tenant, penalty_rate=args.penalty_rate, **values)
        print(
            f"Rate settings created for tenant {args.tenant}: electric {table.electric_rate}/kWh, "
            f"dues {table.association_dues_rate}/sq.m, penalty {table.penalty_rate}, "
            f"special assessment {table.sp_assessment_rate}"
        )
        return 0
    finally:
        db.close()


def adjust(args, db_factory) -> int:
    from condobill.services.bills_service import BillingService
    from condobill.services.money import ZERO

    db = db_factory()
    try:
        adjustment = BillingService(db).set_adjustment(
            args.tenant,
            args.unit,
            args.month,
            sp_assessment=args.sp_assessment or ZERO,
            discounts=args.discounts or ZERO,
            remarks=args.remarks,
        )
        if adjustment is None:
            print(f"Adjustment of unit {args.unit} for {args.month} removed")
        else:
            print(
                f"Adjustment of unit {args.unit} for {args.month}: "
                f"special assessment {adjustment.sp_assessment}, discounts {adjustment.discounts}"
            )
        return 0
    finally:
        db.close()


def apply_sp_assessment(args, db_factory) -> int:
    from condobill.services.bills_service import BillingService

    db = db_factory()
    try:
        service = BillingService(db)
        if args.clear:
            cleared = service.clear_sp_assessment(args.tenant, args.month)
            print(f"Removed special assessment from {cleared} unit(s) for {args.month}")
            return 0
        result = service.apply_sp_assessment(args.tenant, args.month)
        print(
            f"Applied special assessment {result.rate} to {result.units} unit(s) for {result.billing_month} "
            f"({result.created} new, {result.updated} updated)"
        )
        return 0
    finally:
        db.close()


COMMANDS = {
    "period-info": period_info,
    "init-rates": init_rates,
    "adjust": adjust,
    "apply-sp-assessment": apply_sp_assessment,
    "generate": generate,
    "opening-balance": opening_balance,
    "record-payment": record_payment,
    "void-payment": void_payment,
}


def main(argv: list[str] | None = None, db_factory=None) -> int:
    """
    Main entry point for the billing CLI.

    Args:
        argv: Command line arguments (default: sys.argv[1:])
        db_factory: Callable returning a new Session (default: SessionLocal)

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
        setup_logging(
            config.log_file,
            level=LOG_LEVEL_MAP[config.log_level],
            allocation_level=LOG_LEVEL_MAP.get(config.allocation_log_level),
        )

        if db_factory is None:
            from condobill.services.db import SessionLocal

            db_factory = SessionLocal

        return COMMANDS[args.command](args, db_factory)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 1
    except Exception as e:
        logger.error("%s failed: %s", args.command, e, exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
