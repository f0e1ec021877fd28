"""Parsing utilities for amounts and dates typed by administrators.

Handles the formats used on receipts and statements:
- Thousand separator: comma (,)
- Decimal separator: period (.)
- Currency prefix: ₱, PHP or P
- Rates written as percentages: "10%"
- Dates: YYYY-MM-DD or MM/DD/YYYY

Example:
    >>> parse_decimal("1,234.50")
    Decimal('1234.50')

    >>> parse_currency("₱7,000.00")
    Decimal('7000.00')

    >>> parse_percentage("10%")
    Decimal('0.10')

    >>> parse_date("11/05/2025")
    datetime.date(2025, 11, 5)
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

CURRENCY_PREFIXES = ("₱", "PHP", "Php", "php", "P")
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a number with comma thousand separators to Decimal.

    Args:
        value: Number string (e.g., "1,234.50") or None/empty

    Returns:
        Decimal object or None if input is empty/None

    Raises:
        ValueError: If value cannot be parsed as a valid decimal

    Examples:
        >>> parse_decimal("1,234.50")
        Decimal('1234.50')
        >>> parse_decimal("")
        None
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    try:
        normalized = value.replace(",", "").replace(" ", "").replace("\xa0", "")
        result = Decimal(normalized)
    except (ValueError, InvalidOperation) as e:
        raise ValueError(f"Cannot parse decimal '{value}': {e}") from e
    if not result.is_finite():
        raise ValueError(f"Cannot parse decimal '{value}': not a finite number")
    return result


def parse_currency(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a peso amount to Decimal.

    Args:
        value: Currency string (e.g., "₱1,500.00", "PHP 1,500") or None/empty

    Returns:
        Decimal object or None if input is empty

    Raises:
        ValueError: If the amount cannot be parsed

    Examples:
        >>> parse_currency("₱1,500.00")
        Decimal('1500.00')
        >>> parse_currency("PHP 250")
        Decimal('250')
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    for prefix in CURRENCY_PREFIXES:
        if value.startswith(prefix):
            value = value[len(prefix):].strip()
            break

    try:
        return parse_decimal(value)
    except ValueError as e:
        raise ValueError(f"Cannot parse currency '{value}': {e}") from e


def parse_percentage(value: Optional[str]) -> Optional[Decimal]:
    """Parse "10%" to a rate (Decimal('0.10')); a bare number is taken as a rate already.

    Raises:
        ValueError: If value cannot be parsed
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    try:
        if value.endswith("%"):
            return parse_decimal(value.rstrip("%").strip()) / Decimal("100")
        return parse_decimal(value)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Cannot parse percentage '{value}': {e}") from e


def parse_boolean(value: Optional[str]) -> bool:
    """
    Parse "Yes"/"Y"/"True"/"1" (any case) to True; anything else is False.

    Examples:
        >>> parse_boolean("Yes")
        True
        >>> parse_boolean("no")
        False
        >>> parse_boolean(None)
        False
    """
    if not value or not isinstance(value, str):
        return False

    return value.strip().lower() in ("yes", "y", "true", "1")


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a date string in YYYY-MM-DD or MM/DD/YYYY format.

    Args:
        value: Date string or None/empty

    Returns:
        datetime.date object or None if input is empty

    Raises:
        ValueError: If date format is invalid

    Examples:
        >>> parse_date("2025-11-05")
        datetime.date(2025, 11, 5)
        >>> parse_date("11/05/2025")
        datetime.date(2025, 11, 5)
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Cannot parse date '{value}' (expected YYYY-MM-DD or MM/DD/YYYY)")


__all__ = [
    "parse_boolean",
    "parse_currency",
    "parse_date",
    "parse_decimal",
    "parse_percentage",
]
