"""Receipt rendering: ReportLab PDF (A5, school + student copies) and a printable HTML page."""
import html
import io
import logging
from datetime import date, datetime
from typing import Optional
from urllib.parse import quote

from feetracker.models.payment import PaymentView
from feetracker.models.settings import SchoolInfo
from feetracker.services.billing import REGISTRATION_FEE
from feetracker.services.months import format_currency, format_date, format_month

logger = logging.getLogger(__name__)

# method key -> (English, Thai)
_METHOD_LABELS = {
    "cash": ("Cash", "เงินสด"),
    "bank": ("Bank transfer", "โอนธนาคาร"),
    "bank_transfer": ("Bank transfer", "โอนธนาคาร"),
    "credit_card": ("Credit card", "บัตรเครดิต"),
    "mobile_banking": ("Mobile Banking", "Mobile Banking"),
    "promptpay": ("PromptPay", "PromptPay"),
}
_DEFAULT_METHOD_LABEL = ("Bank", "ธนาคาร")

DEFAULT_SCHOOL_NAME = "โรงเรียนเสริมทักษะอุดรคอมพิวเตอร์พัฒนา"


def payment_method_label(method: Optional[str]) -> tuple[str, str]:
    return _METHOD_LABELS.get((method or "").strip().lower(), _DEFAULT_METHOD_LABEL)


def receipt_number(payment: PaymentView) -> str:
    """Month name plus the last five characters of the payment id, e.g. 'September-3f9a1'."""
    return f"{format_month(payment.month).split(' ')[0]}-{payment.id[-5:]}"


def student_code(payment: PaymentView, today: Optional[date] = None) -> str:
    # Without a stored year, fall back to the Thai Buddhist year
    year = payment.year or ((today or date.today()).year + 543)
    first_name = (payment.student_name.split(" ")[0] if payment.student_name else "") or "-"
    return f"{year}-{first_name}"


def receipt_lines(payment: PaymentView) -> list[tuple[str, str, float]]:
    """Itemised charges as (English label, Thai label, amount); the total is stored separately."""
    lines: list[tuple[str, str, float]] = []
    if payment.is_half_month:
        lines.append(("Tuition (half month)", "ค่าเรียนครึ่งเดือน", payment.amount))
    else:
        lines.append(("Tuition", "ค่าเรียน", payment.amount))
    if payment.is_registration:
        if payment.waive_registration_fee:
            lines.append(("Registration fee (waived)", "ค่าลงทะเบียน (ยกเว้น)", 0.0))
        else:
            lines.append(("Registration fee", "ค่าลงทะเบียน", float(REGISTRATION_FEE)))
    if payment.late_fee > 0:
        lines.append(("Late payment fee", "ค่าปรับชำระล่าช้า", payment.late_fee))
    return lines


def _paid_on(payment: PaymentView) -> datetime:
    return payment.paid_at or datetime.utcnow()


def render_receipt_html(payment: PaymentView, school: SchoolInfo, today: Optional[date] = None) -> str:
    """Printable page with two stacked copies; the first is the school's."""
    esc = html.escape
    school_name = esc(school.name or DEFAULT_SCHOOL_NAME)
    contact = " • ".join(
        part for part in (
            f"โทร: {esc(school.phone)}" if school.phone else "",
            f"อีเมล: {esc(school.email)}" if school.email else "",
        ) if part
    )
    rows = "".join(
        f'<tr><td class="cell">{esc(thai)}</td><td class="cell right">{format_currency(amount)}</td></tr>'
        for _, thai, amount in receipt_lines(payment)
    )
    _, method_th = payment_method_label(payment.payment_method)
    reference = f'<div class="small">Ref: {esc(payment.reference)}</div>' if payment.reference else ""
    month_name = format_month(payment.month).split(" ")[0]

    def block(is_school_copy: bool) -> str:
        return f"""
  <div class="receipt">
    <div class="center bold">{school_name}</div>
    <div class="center small">{esc(school.address or "")}</div>
    {f'<div class="center small">{contact}</div>' if contact else ""}
    <div class="center title">ใบเสร็จรับเงิน</div>
    <div class="meta"><span><b>รหัสนักเรียน:</b> {esc(student_code(payment, today))}</span>
      <span><b>วันที่:</b> {format_date(_paid_on(payment))}</span></div>
    <div><b>Receipt No:</b> {esc(receipt_number(payment))}</div>
    <hr/>
    <div><b>ชื่อนักเรียน:</b> {esc(payment.student_name)}</div>
    <div class="center bold">ค่าเรียนประจำเดือน <u>{month_name}</u></div>
    <table>
      <thead><tr><th class="cell">รายการ</th><th class="cell">จำนวนเงิน</th></tr></thead>
      <tbody>{rows}
        <tr class="bold"><td class="cell">รวม</td><td class="cell right">{format_currency(payment.total_amount)}</td></tr>
      </tbody>
    </table>
    <table>
      <thead><tr><th class="cell">จำนวน</th><th class="cell">วิธีการชำระ</th></tr></thead>
      <tbody><tr>
        <td class="cell center">ได้รับเงินจำนวน<br/>{format_currency(payment.total_amount)}</td>
        <td class="cell center">{method_th}{reference}</td>
      </tr></tbody>
    </table>
    <div class="signer"><div class="line"></div>ผู้รับเงิน</div>
    {'<div class="right small">ส่วนของโรงเรียน</div>' if is_school_copy else ""}
  </div>"""

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Receipt - {esc(payment.student_name)}</title>
<style>
  body {{ margin: 0; padding: 16px; font-family: 'Sarabun', 'Leelawadee UI', 'Tahoma', sans-serif; }}
  .receipt {{ width: 540px; margin: 0 auto 28px auto; border: 1px solid #000; padding: 16px; page-break-inside: avoid; }}
  .center {{ text-align: center; }}
  .right {{ text-align: right; }}
  .bold {{ font-weight: 700; }}
  .small {{ font-size: 12px; }}
  .title {{ font-size: 18px; font-weight: 700; margin: 8px 0; }}
  .meta {{ display: flex; justify-content: space-between; }}
  table {{ width: 100%; border-collapse: collapse; margin-top: 8px; }}
  .cell {{ border: 1px solid #000; padding: 8px; }}
  th.cell {{ background: #f5f5f5; }}
  .signer {{ margin-top: 28px; text-align: center; }}
  .signer .line {{ border-bottom: 1px solid #000; width: 180px; margin: 0 auto 8px; }}
</style>
</head>
<body>{block(True)}{block(False)}
</body>
</html>
"""


def render_receipt_pdf(payment: PaymentView, school: SchoolInfo, today: Optional[date] = None) -> bytes | None:
    """PDF receipt bytes: ReportLab first, then WeasyPrint on the HTML receipt.

    Returns None when neither works; callers then serve the HTML receipt.
    """
    pdf = _reportlab_pdf_bytes(payment, school, today)
    if pdf:
        return pdf
    try:
        from weasyprint import HTML
    except (ImportError, OSError):
        return None
    try:
        return HTML(string=render_receipt_html(payment, school, today)).write_pdf()
    except Exception as e:
        logger.warning("WeasyPrint PDF failed: %s", e)
        return None


def _reportlab_pdf_bytes(payment: PaymentView, school: SchoolInfo, today: Optional[date] = None) -> bytes | None:
    """A5 portrait, school copy on the top half and student copy below.

    ReportLab's core fonts have no Thai glyphs, so this uses the English labels.
    """
    try:
        from reportlab.lib import colors
        from reportlab.lib.pagesizes import A5
        from reportlab.lib.units import mm
        from reportlab.pdfgen import canvas
        from reportlab.platypus import Table, TableStyle
    except ImportError:
        return None
    try:
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=A5)
        w, h = A5
        margin_x = 8 * mm
        border_color = colors.HexColor("#707070")
        method_en, _ = payment_method_label(payment.payment_method)
        school_name = (school.name or "").strip() or "Receipt"

        def copy_block(top: float, caption: str) -> None:
            y = top
            c.setStrokeColor(border_color)
            c.setFont("Helvetica-Bold", 12)
            c.drawCentredString(w / 2, y, school_name[:60])
            y -= 4.5 * mm
            c.setFont("Helvetica", 8)
            if school.address:
                c.drawCentredString(w / 2, y, school.address.replace("\n", " ")[:90])
                y -= 3.5 * mm
            contact = "  ".join(p for p in (school.phone or "", school.email or "") if p)
            if contact:
                c.drawCentredString(w / 2, y, contact[:90])
                y -= 3.5 * mm
            c.setFont("Helvetica-Bold", 11)
            c.drawCentredString(w / 2, y - 1 * mm, "RECEIPT")
            y -= 6 * mm

            c.setFont("Helvetica", 8.5)
            c.drawString(margin_x, y, f"Receipt No: {receipt_number(payment)}")
            c.drawRightString(w - margin_x, y, f"Date: {format_date(_paid_on(payment))}")
            y -= 4 * mm
            c.drawString(margin_x, y, f"Student: {payment.student_name[:40]}")
            c.drawRightString(w - margin_x, y, f"Student ID: {student_code(payment, today)}")
            y -= 4 * mm
            c.drawString(margin_x, y, f"Tuition for {format_month(payment.month)}")
            y -= 2 * mm

            data = [["Item", "Amount"]]
            for label, _, amount in receipt_lines(payment):
                data.append([label, format_currency(amount).replace("฿", "THB ")])
            data.append(["Total", format_currency(payment.total_amount).replace("฿", "THB ")])
            table_width = w - 2 * margin_x
            table = Table(data, colWidths=[table_width * 0.65, table_width * 0.35])
            table.setStyle(
                TableStyle(
                    [
                        ("GRID", (0, 0), (-1, -1), 0.5, border_color),
                        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e0e0e0")),
                        ("ALIGN", (1, 1), (1, -1), "RIGHT"),
                        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                        ("FONTSIZE", (0, 0), (-1, -1), 8.5),
                    ]
                )
            )
            _, th = table.wrapOn(c, table_width, h)
            table.drawOn(c, margin_x, y - th)
            y -= th + 4 * mm

            c.setFont("Helvetica", 8)
            line = f"Paid by: {method_en}"
            if payment.reference:
                line += f"   Ref: {payment.reference[:30]}"
            c.drawString(margin_x, y, line)
            c.line(w - margin_x - 45 * mm, y - 6 * mm, w - margin_x, y - 6 * mm)
            c.drawCentredString(w - margin_x - 22.5 * mm, y - 9.5 * mm, "Received by")
            c.setFont("Helvetica-Oblique", 7)
            c.drawString(margin_x, y - 9.5 * mm, caption)

        copy_block(h - 10 * mm, "School copy")
        c.setDash(3, 3)
        c.line(margin_x, h / 2, w - margin_x, h / 2)
        c.setDash()
        copy_block(h / 2 - 8 * mm, "Student copy")
        c.save()
        return buf.getvalue()
    except Exception as e:
        logger.warning("ReportLab PDF failed: %s", e)
        return None


def receipt_filename(payment: PaymentView, extension: str = "pdf") -> str:
    """ASCII-only download name; student names are usually Thai."""
    return f"receipt-{payment.month}-{payment.id[-5:]}.{extension}"


def content_disposition(payment: PaymentView, extension: str = "pdf") -> str:
    """Attachment header with an ASCII fallback and the student's name as RFC 5987 `filename*`."""
    name = "-".join((payment.student_name or "student").split())
    full = quote(f"receipt-{name}-{payment.month}.{extension}", safe="")
    ascii_name = receipt_filename(payment, extension)
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{full}"
