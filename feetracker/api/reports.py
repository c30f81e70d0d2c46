"""Outstanding-payment reports for admins."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException

from feetracker.api.deps import AdminOnly, Billing
from feetracker.api.payments import month_rows
from feetracker.models.payment import Payment, PaymentView
from feetracker.models.student import Student
from feetracker.services.months import current_month, parse_month
from feetracker.services.reports import missing_current, past_due_summaries

router = APIRouter()


@router.get("/missing-current")
async def missing_current_month(admin: AdminOnly, billing: Billing):
    month = current_month()
    rows = await month_rows(month)
    return {"month": month, **missing_current(rows, billing.late_fee_after_day, date.today())}


@router.get("/missing-past")
async def missing_past_months(admin: AdminOnly, before: Optional[str] = None):
    """Unpaid rows strictly before `before` (default: the current month), grouped per student."""
    before = before or current_month()
    try:
        parse_month(before)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    payments = await Payment.find({"month": {"$lt": before}, "is_paid": False}).to_list()
    students = {str(s.id): s for s in await Student.find_all().to_list()}
    rows = [PaymentView.build(p, students[p.student_id]) for p in payments if p.student_id in students]
    summaries = past_due_summaries(rows)
    return {
        "before": before,
        "count": len(rows),
        "total_missing": sum(r.total_amount for r in rows),
        "students": summaries,
    }
