"""Monthly payment rows: list (auto-created per month), charge preview, mark paid/unpaid, receipts, exports."""
import io
import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Literal, Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import HTMLResponse, Response, StreamingResponse
from pymongo.errors import BulkWriteError

from feetracker.api.deps import AdminOnly, Billing, CurrentUser, Month, SettingValues, is_admin, parse_object_id
from feetracker.models.payment import Payment, PaymentForm, PaymentView
from feetracker.models.settings import SchoolInfo
from feetracker.models.student import Student
from feetracker.services.billing import BillingSettings, PaymentCharge, compute_total, due_date
from feetracker.services.ledger import apply_fields, paid_fields, sync_month, unpaid_fields
from feetracker.services.months import current_month, month_options
from feetracker.services.receipt import content_disposition, render_receipt_html, render_receipt_pdf
from feetracker.services.spreadsheet import XLSX_MEDIA_TYPE, export_workbook

logger = logging.getLogger(__name__)

router = APIRouter()


async def ensure_month(month: str) -> list[Student]:
    """Give every student a payment row for `month`; returns the students."""
    students = await Student.find_all().to_list()
    existing = await Payment.find(Payment.month == month).to_list()
    plan = sync_month(month, students, existing)
    if plan.inserts:
        try:
            await Payment.insert_many([Payment(**fields) for fields in plan.inserts], ordered=False)
        except BulkWriteError as e:
            # another request created some of the rows first
            logger.warning(
                "Concurrent sync for %s: created %d of %d payment rows",
                month, e.details.get("nInserted", 0), len(plan.inserts),
            )
        else:
            logger.info("Created %d payment rows for %s", len(plan.inserts), month)
    if plan.updates:
        by_id = {str(p.id): p for p in existing}
        for payment_id, fields in plan.updates.items():
            payment = by_id[payment_id]
            apply_fields(payment, fields)
            await payment.save()
    return students


async def month_rows(month: str, q: Optional[str] = None) -> list[PaymentView]:
    """Synced payment rows for `month` joined with their students, sorted by name."""
    students = await ensure_month(month)
    by_id = {str(s.id): s for s in students}
    payments = await Payment.find(Payment.month == month).to_list()
    rows = [PaymentView.build(p, by_id[p.student_id]) for p in payments if p.student_id in by_id]
    if q and q.strip():
        needle = q.strip().lower()
        rows = [r for r in rows if needle in r.student_name.lower()]
    rows.sort(key=lambda r: r.student_name.lower())
    return rows


async def _get_payment(payment_id: str) -> Payment:
    payment = await Payment.get(parse_object_id(payment_id, "Payment"))
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return payment


async def _student_of(payment: Payment) -> Optional[Student]:
    try:
        student = await Student.get(PydanticObjectId(payment.student_id))
    except InvalidId:
        student = None
    if student is None:
        logger.warning("Payment %s points at unknown student %s", payment.id, payment.student_id)
    return student


def charge_for(payment: Payment, form: PaymentForm, billing: BillingSettings, today: date) -> PaymentCharge:
    try:
        return compute_total(
            base_amount=form.amount,
            is_half_month=form.is_half_month,
            is_registration=form.is_registration,
            waive_registration_fee=form.waive_registration_fee,
            settings=billing,
            evaluation_date=today,
            payment_month=payment.month,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/")
async def list_payments(user: CurrentUser, month: Month, billing: Billing, q: Optional[str] = None):
    rows = await month_rows(month, q)
    admin = is_admin(user)
    paid = [r for r in rows if r.is_paid]
    return {
        "month": month,
        "due_date": due_date(month, billing.late_fee_after_day).isoformat(),
        "collection_day": billing.collection_day,
        "summary": {
            "total": len(rows),
            "paid": len(paid),
            "unpaid": len(rows) - len(paid),
            "collected": sum(r.total_amount for r in paid) if admin else None,
        },
        "payments": rows,
    }


@router.get("/months")
async def list_months(user: CurrentUser):
    """Month selector window: eleven months back to three ahead."""
    return {"current": current_month(), "months": month_options()}


@router.get("/export")
async def export_payments(
    admin: AdminOnly,
    month: Month,
    billing: Billing,
    kind: Literal["paid", "unpaid", "all", "grade"] = Query("all"),
):
    rows = await month_rows(month)
    filename, content = export_workbook(kind, rows, month, date.today(), billing.late_fee_after_day)
    return StreamingResponse(
        io.BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/{payment_id}/preview")
async def preview_payment(payment_id: str, form: PaymentForm, user: CurrentUser, billing: Billing):
    """Charge breakdown for the form values as of today; nothing is saved."""
    payment = await _get_payment(payment_id)
    charge = charge_for(payment, form, billing, date.today())
    return {
        **asdict(charge),
        "due_date": due_date(payment.month, billing.late_fee_after_day).isoformat(),
        "is_late": charge.late_fee > 0,
    }


@router.patch("/{payment_id}/pay")
async def mark_paid(payment_id: str, form: PaymentForm, user: CurrentUser, billing: Billing):
    payment = await _get_payment(payment_id)
    charge = charge_for(payment, form, billing, date.today())
    apply_fields(payment, paid_fields(charge, form.payment_method, form.reference, datetime.utcnow()))
    await payment.save()
    student = await _student_of(payment)
    logger.info(
        "Payment %s for %s marked paid: %s (late fee %s)",
        payment.month, student.name if student else payment.student_id, charge.total_amount, charge.late_fee,
    )
    return PaymentView.build(payment, student)


@router.patch("/{payment_id}/unpay")
async def mark_unpaid(payment_id: str, admin: AdminOnly):
    payment = await _get_payment(payment_id)
    student = await _student_of(payment)
    apply_fields(payment, unpaid_fields(student.monthly_fee if student else None, payment.amount))
    await payment.save()
    logger.info("Payment %s for %s reverted to unpaid", payment.month, payment.student_id)
    return PaymentView.build(payment, student)


@router.get("/{payment_id}/receipt")
async def download_receipt(
    payment_id: str,
    user: CurrentUser,
    values: SettingValues,
    campus: int = Query(1, ge=1, le=2),
    format: Literal["pdf", "html"] = "pdf",
):
    """Receipt for a paid row; falls back to the HTML receipt when the PDF cannot be built."""
    payment = await _get_payment(payment_id)
    if not payment.is_paid:
        raise HTTPException(status_code=400, detail="Receipt only for paid records")
    view = PaymentView.build(payment, await _student_of(payment))
    school = SchoolInfo.from_values(values, f"school{campus}")
    if format == "pdf":
        pdf_bytes = render_receipt_pdf(view, school)
        if pdf_bytes:
            return Response(
                content=pdf_bytes,
                media_type="application/pdf",
                headers={"Content-Disposition": content_disposition(view)},
            )
        logger.warning("PDF receipt failed for payment %s; serving HTML", payment_id)
    return HTMLResponse(render_receipt_html(view, school))
