"""Month keys (`YYYY-MM`), display formatting and overdue helpers."""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(key: str) -> tuple[int, int]:
    """Split a `YYYY-MM` key into (year, month). Zero-padding is required."""
    match = _MONTH_RE.match(key or "")
    if not match:
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month key: {key!r} (month must be 01-12)")
    return year, month


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def shift_month(key: str, offset: int) -> str:
    year, month = parse_month(key)
    index = year * 12 + (month - 1) + offset
    return month_key(index // 12, index % 12 + 1)


def previous_month(key: str) -> str:
    return shift_month(key, -1)


def current_month(today: date | None = None) -> str:
    today = today or date.today()
    return month_key(today.year, today.month)


def months_for_year(year: int) -> list[str]:
    return [month_key(year, m) for m in range(1, 13)]


def month_options(today: date | None = None, before: int = 11, after: int = 3) -> list[dict[str, str]]:
    """Selector window around the current month, oldest first."""
    base = current_month(today)
    options = []
    for offset in range(-before, after + 1):
        key = shift_month(base, offset)
        options.append({"value": key, "label": format_month(key)})
    return options


def day_in_month(year: int, month: int, day: int) -> date:
    """The `day`-th day of the month; days past the month's end roll into the next month.

    date(2025, 4, 31) is invalid, so day_in_month(2025, 4, 31) == date(2025, 5, 1).
    """
    return date(year, month, 1) + timedelta(days=day - 1)


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def format_month(key: str) -> str:
    year, month = parse_month(key)
    return f"{calendar.month_name[month]} {year}"


def format_date(value: date | datetime | str) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%d/%m/%Y")


def format_currency(amount: float | None) -> str:
    """Thai Baht display, e.g. 1700 -> '฿1,700.00'."""
    amount = float(amount or 0)
    sign = "-" if amount < 0 else ""
    return f"{sign}฿{abs(amount):,.2f}"


def is_payment_late(month: str, late_fee_after_day: int = 25, today: date | None = None) -> bool:
    """True once `today` is past the cut-off day inside `month` itself."""
    year, num = parse_month(month)
    cutoff = day_in_month(year, num, late_fee_after_day)
    return as_date(today or date.today()) > cutoff


def days_overdue(month: str, today: date | None = None, cutoff_day: int = 25) -> int:
    year, num = parse_month(month)
    due = day_in_month(year, num, cutoff_day)
    today = as_date(today or date.today())
    if today <= due:
        return 0
    return (today - due).days
