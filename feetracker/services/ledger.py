"""Payment row lifecycle: auto-create for a month, commit a charge, revert to unpaid.

These helpers only decide *what* to write; routers own the database calls.
Two staff editing the same student/month concurrently race and the last write
wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from feetracker.models.payment import DEFAULT_PAYMENT_METHOD
from feetracker.services.billing import PaymentCharge

logger = logging.getLogger(__name__)


@dataclass
class MonthSync:
    """Rows to insert (new unpaid payments) and amount refreshes for existing ones."""
    inserts: list[dict[str, Any]] = field(default_factory=list)
    updates: dict[str, dict[str, Any]] = field(default_factory=dict)  # payment id -> fields


def sync_month(month: str, students: Iterable[Any], existing: Iterable[Any]) -> MonthSync:
    """Plan the writes that give every student a payment row for `month`.

    Unpaid rows follow the student's current monthly fee; paid rows are left alone.
    """
    by_student = {p.student_id: p for p in existing}
    plan = MonthSync()
    for student in students:
        student_id = str(student.id)
        fee = float(student.monthly_fee or 0)
        payment = by_student.get(student_id)
        if payment is None:
            if fee == 0:
                logger.warning("Student %s has no monthly fee set; creating a zero payment for %s", student.name, month)
            plan.inserts.append(
                {
                    "student_id": student_id,
                    "month": month,
                    "amount": fee,
                    "late_fee": 0.0,
                    "total_amount": fee,
                    "is_paid": False,
                }
            )
        elif not payment.is_paid and fee > 0 and payment.amount != fee:
            logger.info("Refreshing %s payment for %s: %s -> %s", month, student.name, payment.amount, fee)
            plan.updates[str(payment.id)] = {"amount": fee, "total_amount": fee}
    return plan


def paid_fields(
    charge: PaymentCharge,
    payment_method: str,
    reference: Optional[str],
    paid_at: datetime,
) -> dict[str, Any]:
    """Field values for committing `charge`; `amount` is the post-halving tuition."""
    return {
        "amount": charge.effective_amount,
        "late_fee": charge.late_fee,
        "total_amount": charge.total_amount,
        "payment_method": (payment_method or DEFAULT_PAYMENT_METHOD).strip() or DEFAULT_PAYMENT_METHOD,
        "reference": (reference or "").strip() or None,
        "paid_at": paid_at,
        "is_paid": True,
        "is_registration": charge.is_registration,
        "is_half_month": charge.is_half_month,
        "waive_registration_fee": charge.waive_registration_fee,
    }


def unpaid_fields(monthly_fee: Optional[float], fallback_amount: float) -> dict[str, Any]:
    """Undo a payment: back to the student's *current* monthly fee, everything else cleared."""
    amount = float(monthly_fee) if monthly_fee else fallback_amount
    return {
        "amount": amount,
        "late_fee": 0.0,
        "total_amount": amount,
        "payment_method": DEFAULT_PAYMENT_METHOD,
        "reference": None,
        "paid_at": None,
        "is_paid": False,
        "is_registration": False,
        "is_half_month": False,
        "waive_registration_fee": False,
    }


def apply_fields(document: Any, fields: dict[str, Any]) -> None:
    for key, value in fields.items():
        setattr(document, key, value)
    document.updated_at = datetime.utcnow()
