"""Billing period scheduler.

Computes, for a billing month token ("YYYY-MM") and a tenant's schedule
settings, the meter reading period and the key dates of the bill:

    reading period   previous month's reading day .. this month's reading day
    generation       this month's billing day
    statement        generation + statement delay
    due              statement + due date delay
    penalty start    due + grace period + 1 day

All dates are calendar dates. Day numbers beyond the end of a short month
are clamped to its last day (reading day 31 in February means Feb 28/29).
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from condobill.models.rate_settings import RateSettings
from condobill.services.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class BillingMonth:
    """A calendar month that bills are issued for."""

    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValidationError(f"Invalid month {self.month} in billing month")
        if not 1 <= self.year <= 9999:
            raise ValidationError(f"Invalid year {self.year} in billing month")

    @classmethod
    def parse(cls, token: "str | BillingMonth | date") -> "BillingMonth":
        """Parse "YYYY-MM" (a BillingMonth or date is accepted as is).

        Raises:
            ValidationError: If the token is not a valid YYYY-MM string
        """
        if isinstance(token, BillingMonth):
            return token
        if isinstance(token, date):
            return cls(token.year, token.month)
        if not isinstance(token, str):
            raise ValidationError(f"Billing month must be a 'YYYY-MM' string, got {token!r}")

        parts = token.strip().split("-")
        if len(parts) != 2 or len(parts[0]) != 4 or len(parts[1]) != 2:
            raise ValidationError(f"Billing month must be formatted 'YYYY-MM', got {token!r}")
        try:
            year, month = int(parts[0]), int(parts[1])
        except ValueError as e:
            raise ValidationError(f"Billing month must be formatted 'YYYY-MM', got {token!r}") from e
        return cls(year, month)

    def next(self) -> "BillingMonth":
        if self.month == 12:
            return BillingMonth(self.year + 1, 1)
        return BillingMonth(self.year, self.month + 1)

    def previous(self) -> "BillingMonth":
        if self.month == 1:
            return BillingMonth(self.year - 1, 12)
        return BillingMonth(self.year, self.month - 1)

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def day(self, day_of_month: int) -> date:
        """Date of the given day in this month, clamped to the month's length."""
        last = calendar.monthrange(self.year, self.month)[1]
        return date(self.year, self.month, min(day_of_month, last))

    def display(self) -> str:
        """Human format, e.g. "January 2025"."""
        return f"{calendar.month_name[self.month]} {self.year}"

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class ScheduleSettings:
    """Billing schedule of a tenant."""

    reading_day: int = 26
    billing_day_of_month: int = 27
    statement_delay: int = 10
    due_date_delay: int = 10
    grace_period_days: int = 0

    def __post_init__(self):
        for name in ("reading_day", "billing_day_of_month"):
            value = getattr(self, name)
            if not 1 <= value <= 31:
                raise ValidationError(f"{name} must be between 1 and 31, got {value}")
        for name in ("statement_delay", "due_date_delay", "grace_period_days"):
            value = getattr(self, name)
            if value < 0:
                raise ValidationError(f"{name} cannot be negative, got {value}")

    @classmethod
    def from_settings(cls, settings: RateSettings) -> "ScheduleSettings":
        return cls(
            reading_day=settings.reading_day,
            billing_day_of_month=settings.billing_day_of_month,
            statement_delay=settings.statement_delay,
            due_date_delay=settings.due_date_delay,
            grace_period_days=settings.grace_period_days,
        )


DEFAULT_SCHEDULE = ScheduleSettings()


def months_between(due_date: date, as_of: date) -> int:
    """Calendar months an as_of date lies past a due date.

    0 when not overdue. Otherwise the difference in calendar months, plus
    one once as_of's day of month is past the due day.
    """
    if as_of <= due_date:
        return 0
    months = (as_of.year - due_date.year) * 12 + (as_of.month - due_date.month)
    if as_of.day > due_date.day:
        return months + 1
    return max(0, months)


@dataclass(frozen=True)
class BillingPeriodInfo:
    """Key dates of one billing month."""

    billing_month: BillingMonth
    reading_period_start: date
    reading_period_end: date
    bill_generation_date: date
    statement_date: date
    due_date: date
    penalty_start_date: date

    def is_overdue(self, as_of: date | None = None) -> bool:
        return (as_of or utc_today()) > self.due_date

    def is_penalty_applicable(self, as_of: date | None = None) -> bool:
        return (as_of or utc_today()) >= self.penalty_start_date

    def months_overdue(self, as_of: date | None = None) -> int:
        return months_between(self.due_date, as_of or utc_today())


def utc_today() -> date:
    """Today's calendar date in UTC."""
    return datetime.now(timezone.utc).date()


def get_billing_period_info(
    billing_month: "str | BillingMonth",
    schedule_settings: ScheduleSettings = DEFAULT_SCHEDULE,
) -> BillingPeriodInfo:
    """Compute reading period and key dates for a billing month.

    Args:
        billing_month: "YYYY-MM" token, e.g. "2025-01"
        schedule_settings: Tenant schedule (defaults: 26/27/10/10/0)

    Returns:
        BillingPeriodInfo; for January 2025 with defaults the reading period
        is 2024-12-26..2025-01-26, generation 2025-01-27, statement
        2025-02-06, due 2025-02-16 and penalty start 2025-02-17.

    Raises:
        ValidationError: If the month token is malformed
    """
    month = BillingMonth.parse(billing_month)
    settings = schedule_settings

    generation = month.day(settings.billing_day_of_month)
    statement = generation + timedelta(days=settings.statement_delay)
    due = statement + timedelta(days=settings.due_date_delay)

    return BillingPeriodInfo(
        billing_month=month,
        reading_period_start=month.previous().day(settings.reading_day),
        reading_period_end=month.day(settings.reading_day),
        bill_generation_date=generation,
        statement_date=statement,
        due_date=due,
        penalty_start_date=due + timedelta(days=settings.grace_period_days + 1),
    )


def get_current_billing_month(
    schedule_settings: ScheduleSettings = DEFAULT_SCHEDULE,
    today: date | None = None,
) -> str:
    """Billing month in progress: before the reading day it is still last month's."""
    today = today or utc_today()
    month = BillingMonth.parse(today)
    if today.day < schedule_settings.reading_day:
        month = month.previous()
    return str(month)


def get_next_billing_month(billing_month: str) -> str:
    return str(BillingMonth.parse(billing_month).next())


def get_previous_billing_month(billing_month: str) -> str:
    return str(BillingMonth.parse(billing_month).previous())


def get_billing_month_range(start_month: str, count: int, direction: str = "forward") -> list[str]:
    """List of ``count`` consecutive months starting at ``start_month``.

    With direction "backward" the months end at ``start_month`` and the list
    is still returned in chronological order.
    """
    if direction not in ("forward", "backward"):
        raise ValidationError(f"direction must be 'forward' or 'backward', got {direction!r}")
    if count < 1:
        return []

    current = BillingMonth.parse(start_month)
    months = [current]
    for _ in range(1, count):
        current = current.next() if direction == "forward" else current.previous()
        months.append(current)

    if direction == "backward":
        months.reverse()
    return [str(month) for month in months]


def format_billing_month(billing_month: str) -> str:
    return BillingMonth.parse(billing_month).display()


def is_date_in_billing_period(
    value: date,
    billing_month: str,
    schedule_settings: ScheduleSettings = DEFAULT_SCHEDULE,
) -> bool:
    """True if ``value`` falls in the (inclusive) reading period of the month."""
    info = get_billing_period_info(billing_month, schedule_settings)
    return info.reading_period_start <= value <= info.reading_period_end


def billing_schedule_summary(schedule_settings: ScheduleSettings) -> str:
    s = schedule_settings
    return "\n".join(
        [
            "Billing Schedule:",
            f"- Meter Reading Day: {s.reading_day} of each month",
            f"- Reading Period: {s.reading_day} (previous month) to {s.reading_day} (current month)",
            f"- Bill Generation: {s.billing_day_of_month} of each month",
            f"- Statement Sent: {s.statement_delay} days after bill generation",
            f"- Payment Due: {s.due_date_delay} days after statement",
            f"- Grace Period: {s.grace_period_days} days",
            "- Penalty Starts: After grace period expires (compounding monthly)",
        ]
    )


__all__ = [
    "BillingMonth",
    "BillingPeriodInfo",
    "DEFAULT_SCHEDULE",
    "ScheduleSettings",
    "billing_schedule_summary",
    "format_billing_month",
    "get_billing_month_range",
    "get_billing_period_info",
    "get_current_billing_month",
    "get_next_billing_month",
    "get_previous_billing_month",
    "is_date_in_billing_period",
    "months_between",
    "utc_today",
]
