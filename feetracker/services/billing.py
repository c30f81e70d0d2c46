"""Tuition rates, late fees and payable totals.

Everything here is a pure function of its arguments: admin settings arrive as a
`BillingSettings` value and the evaluation date is always passed in.

Late fees follow the prepaid convention. Tuition for month M is due by the
configured cut-off day of month M-1, so paying September on 1 September is
already late when the cut-off is the 25th:

    >>> compute_late_fee(1700, 0, date(2025, 9, 1), 25, 50, "2025-09")
    50
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Mapping, Optional, Union

from feetracker.services.months import as_date, day_in_month, parse_month, previous_month

logger = logging.getLogger(__name__)

SYMBOLIC_LEVELS = ("K", "PK1", "PK2")
PRIMARY_RATE = 1700
SECONDARY_RATE = 1800
REGISTRATION_FEE = 535

DEFAULT_LATE_FEE_AFTER_DAY = 25
DEFAULT_LATE_FEE_AMOUNT = 50
DEFAULT_COLLECTION_DAY = 18


def normalize_grade(grade: Union[int, str]) -> Union[int, str]:
    """Return an int for grades 1-12 and an upper-case label for K/PK1/PK2."""
    if isinstance(grade, bool):
        raise ValueError(f"Invalid grade: {grade!r}")
    if isinstance(grade, int):
        value = grade
    else:
        text = str(grade).strip().upper()
        if text in SYMBOLIC_LEVELS:
            return text
        if not text.isdigit():
            raise ValueError(f"Invalid grade: {grade!r}")
        value = int(text)
    if not 1 <= value <= 12:
        raise ValueError(f"Invalid grade: {grade!r} (expected 1-12, K, PK1 or PK2)")
    return value


def per_subject_fee(grade: Union[int, str]) -> int:
    grade = normalize_grade(grade)
    if isinstance(grade, int) and grade >= 7:
        return SECONDARY_RATE
    return PRIMARY_RATE


def monthly_fee(grade: Union[int, str], subject_count: int) -> int:
    return per_subject_fee(grade) * max(1, subject_count)


@dataclass(frozen=True)
class BillingSettings:
    """Admin-configured late-fee rules. `collection_day` is shown to staff only."""

    late_fee_after_day: int = DEFAULT_LATE_FEE_AFTER_DAY
    late_fee_amount: float = DEFAULT_LATE_FEE_AMOUNT
    collection_day: int = DEFAULT_COLLECTION_DAY

    @classmethod
    def from_key_values(cls, values: Mapping[str, str]) -> "BillingSettings":
        """Build from persisted `admin_settings` strings, falling back to defaults."""
        return cls(
            late_fee_after_day=_int_setting(values, "late_fee_after_day", DEFAULT_LATE_FEE_AFTER_DAY, 1, 31),
            late_fee_amount=_int_setting(values, "late_fee_amount", DEFAULT_LATE_FEE_AMOUNT, 0, None),
            collection_day=_int_setting(values, "collection_day", DEFAULT_COLLECTION_DAY, 1, 31),
        )


def _int_setting(values: Mapping[str, str], key: str, default: int, low: int, high: Optional[int]) -> int:
    raw = values.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning("Setting %s=%r is not an integer; using default %s", key, raw, default)
        return default
    if value < low or (high is not None and value > high):
        logger.warning("Setting %s=%r out of range; using default %s", key, raw, default)
        return default
    return value


@dataclass(frozen=True)
class PaymentCharge:
    base_amount: float
    effective_amount: float
    is_half_month: bool
    is_registration: bool
    waive_registration_fee: bool
    late_fee: float
    registration_fee_amount: float
    registration_fee_charged: float
    total_amount: float


def due_date(payment_month: str, late_fee_after_day: int) -> date:
    """Cut-off for `payment_month`: the given day of the previous month."""
    _check_day(late_fee_after_day)
    year, month = parse_month(previous_month(payment_month))
    return day_in_month(year, month, late_fee_after_day)


def compute_late_fee(
    base_amount: float,
    late_fee_rate_legacy: float,
    evaluation_date: Union[date, datetime],
    late_fee_after_day: int,
    late_fee_amount: float,
    payment_month: Optional[str] = None,
) -> float:
    """Flat late fee when `evaluation_date` is strictly after the cut-off, else 0.

    `base_amount` does not change the result; it is validated and kept in the
    signature for the legacy mode. Without `payment_month` the legacy rule
    applies: cut-off inside the evaluation month, penalty `late_fee_rate_legacy`.
    """
    _check_money("base_amount", base_amount)
    _check_money("late_fee_amount", late_fee_amount)
    evaluated = as_date(evaluation_date)

    if payment_month is not None:
        if evaluated > due_date(payment_month, late_fee_after_day):
            return late_fee_amount
        return 0

    # legacy: never called by the API
    _check_day(late_fee_after_day)
    cutoff = day_in_month(evaluated.year, evaluated.month, late_fee_after_day)
    if evaluated < cutoff:
        return 0
    return late_fee_rate_legacy


def compute_total(
    base_amount: float,
    is_half_month: bool,
    is_registration: bool,
    waive_registration_fee: bool,
    settings: BillingSettings,
    evaluation_date: Union[date, datetime],
    payment_month: Optional[str],
    late_fee_rate_legacy: float = 0,
    registration_fee_amount: float = REGISTRATION_FEE,
) -> PaymentCharge:
    """Halve first, then late fee on the halved amount, then registration, then late fee."""
    _check_money("base_amount", base_amount)
    _check_money("registration_fee_amount", registration_fee_amount)

    effective_amount = base_amount / 2 if is_half_month else base_amount
    late_fee = compute_late_fee(
        effective_amount,
        late_fee_rate_legacy,
        evaluation_date,
        settings.late_fee_after_day,
        settings.late_fee_amount,
        payment_month,
    )

    total = effective_amount
    registration_charged = 0
    if is_registration and not waive_registration_fee:
        registration_charged = registration_fee_amount
        total += registration_charged
    total += late_fee

    return PaymentCharge(
        base_amount=base_amount,
        effective_amount=effective_amount,
        is_half_month=is_half_month,
        is_registration=is_registration,
        waive_registration_fee=waive_registration_fee,
        late_fee=late_fee,
        registration_fee_amount=registration_fee_amount,
        registration_fee_charged=registration_charged,
        total_amount=total,
    )


def _check_money(name: str, value: float) -> None:
    if value is None or value < 0:
        raise ValueError(f"{name} must be a non-negative amount, got {value!r}")


def _check_day(day: int) -> None:
    if not 1 <= day <= 31:
        raise ValueError(f"late_fee_after_day must be between 1 and 31, got {day!r}")
