"""Dashboard and outstanding-payment aggregations over joined payment rows."""
from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Iterable, Optional

from feetracker.models.payment import PaymentView
from feetracker.services.months import is_payment_late, months_for_year


def monthly_stats(students: Iterable[Any], payments: Iterable[Any]) -> dict[str, Any]:
    """Paid/unpaid split for one month. Students without a row count as unpaid."""
    by_student = {p.student_id: p for p in payments}
    paid_names: list[str] = []
    unpaid_names: list[str] = []
    total_amount = 0.0
    paid_amount = 0.0
    for student in sorted(students, key=lambda s: s.name.lower()):
        payment = by_student.get(str(student.id))
        if payment is not None and payment.is_paid:
            paid_names.append(student.name)
            paid_amount += payment.total_amount
        else:
            unpaid_names.append(student.name)
        if payment is not None:
            total_amount += payment.total_amount
    return {
        "paid": len(paid_names),
        "unpaid": len(unpaid_names),
        "total_students": len(paid_names) + len(unpaid_names),
        "total_amount": total_amount,
        "paid_amount": paid_amount,
        "paid_students": paid_names,
        "unpaid_students": unpaid_names,
    }


def yearly_stats(year: int, student_ids: Iterable[str], payments: Iterable[Any]) -> list[dict[str, Any]]:
    """Twelve rows of paid/unpaid counts; `payments` may span the whole year."""
    ids = [str(s) for s in student_ids]
    paid_by_month: dict[str, set[str]] = defaultdict(set)
    for p in payments:
        if p.is_paid:
            paid_by_month[p.month].add(p.student_id)
    rows = []
    for month in months_for_year(year):
        paid = sum(1 for sid in ids if sid in paid_by_month[month])
        rows.append({"month": month, "paid": paid, "unpaid": len(ids) - paid, "total": len(ids)})
    return rows


def missing_current(rows: Iterable[PaymentView], late_fee_after_day: int, today: Optional[date] = None) -> dict[str, Any]:
    rows = [r for r in rows if not r.is_paid]
    return {
        "count": len(rows),
        "total_missing": sum(r.total_amount for r in rows),
        "late_count": sum(1 for r in rows if is_payment_late(r.month, late_fee_after_day, today)),
        "payments": rows,
    }


def past_due_summaries(rows: Iterable[PaymentView]) -> list[dict[str, Any]]:
    """Group unpaid rows per student; most months behind first, then by name."""
    summaries: dict[str, dict[str, Any]] = {}
    for row in rows:
        if row.is_paid:
            continue
        summary = summaries.setdefault(
            row.student_id,
            {
                "student_id": row.student_id,
                "student_name": row.student_name,
                "grade": row.grade,
                "missing_months": [],
                "total_amount_due": 0.0,
                "months_behind": 0,
            },
        )
        summary["missing_months"].append(row.month)
        summary["total_amount_due"] += row.total_amount
        summary["months_behind"] = len(summary["missing_months"])
    for summary in summaries.values():
        summary["missing_months"].sort(reverse=True)
    return sorted(summaries.values(), key=lambda s: (-s["months_behind"], s["student_name"].lower()))
