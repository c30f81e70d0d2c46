"""Dashboard counts: paid/unpaid split for a month and the yearly overview."""
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query

from feetracker.api.deps import CurrentUser, Month, is_admin
from feetracker.models.payment import Payment
from feetracker.models.student import Student
from feetracker.services.months import months_for_year
from feetracker.services.reports import monthly_stats, yearly_stats

router = APIRouter()


@router.get("/monthly")
async def get_monthly_stats(user: CurrentUser, month: Month) -> Dict[str, Any]:
    """Paid/unpaid split for one month. Money figures are only shown to admins."""
    students = await Student.find_all().to_list()
    payments = await Payment.find(Payment.month == month).to_list()
    stats = monthly_stats(students, payments)
    if not is_admin(user):
        stats["total_amount"] = None
        stats["paid_amount"] = None
    return {"month": month, **stats}


@router.get("/yearly")
async def get_yearly_stats(user: CurrentUser, year: Optional[int] = Query(None, ge=2000, le=2100)) -> Dict[str, Any]:
    year = year or date.today().year
    students = await Student.find_all().to_list()
    payments = await Payment.find({"month": {"$in": months_for_year(year)}}).to_list()
    return {"year": year, "months": yearly_stats(year, [s.id for s in students], payments)}
