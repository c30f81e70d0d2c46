"""Excel import of student lists and Excel exports of monthly payment status."""
from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, Optional, Union

import pandas as pd

from feetracker.models.payment import PaymentView
from feetracker.services.billing import SYMBOLIC_LEVELS, monthly_fee, normalize_grade
from feetracker.services.months import days_overdue, format_currency, format_date, format_month

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_SUBJECT_SPLIT = re.compile(r"[,\s]+")


@dataclass
class ImportRow:
    row: int  # 1-based spreadsheet row of the first line for this student
    name: str
    grade: Union[int, str]
    year: int
    subjects: list[str] = field(default_factory=list)
    monthly_fee: int = 0


@dataclass
class ImportPreview:
    students: list[ImportRow] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _parse_year(raw: str, default: int) -> int:
    # "2025 - 2026" is an academic year; keep its first calendar year
    head = raw.split("-")[0].strip() if "-" in raw else raw
    try:
        return int(head)
    except ValueError:
        return default


def read_sheet(content: bytes, filename: Optional[str] = None) -> list[list[Any]]:
    """First sheet (or the CSV) as a list of raw rows, no header inference.

    Legacy .xls files go through xlrd. Raises ValueError when the file cannot be parsed.
    """
    buffer = io.BytesIO(content)
    try:
        if filename and filename.lower().endswith(".csv"):
            frame = pd.read_csv(buffer, header=None, dtype=str, keep_default_na=False)
        else:
            frame = pd.read_excel(buffer, header=None, sheet_name=0, dtype=object)
    except Exception as e:
        # xlrd, openpyxl and zipfile each raise their own error types for corrupt files
        logger.warning("Could not read %s: %s", filename or "upload", e)
        raise ValueError(str(e) or "unreadable file") from e
    return frame.values.tolist()


def parse_student_rows(rows: list[list[Any]], today: Optional[date] = None) -> ImportPreview:
    """Turn raw rows (name, grade, year, fee, subjects) into students to insert.

    Several rows for the same name and grade merge into one student; the fee
    column is ignored and recomputed from grade and subject count.
    """
    default_year = (today or date.today()).year
    preview = ImportPreview()
    merged: dict[str, ImportRow] = {}

    start = 0
    if rows:
        first = _text(rows[0][0] if rows[0] else "").lower()
        if "name" in first or "student" in first:
            start = 1

    for index in range(start, len(rows)):
        row = list(rows[index]) + [None] * 5
        line = index + 1
        name = _text(row[0])
        if not name:
            continue
        grade_text = _text(row[1])
        try:
            grade = normalize_grade(grade_text)
        except ValueError:
            preview.skipped.append({"row": line, "name": name, "error": f"Invalid grade: {grade_text!r}"})
            continue
        year = _parse_year(_text(row[2]), default_year)
        subjects = [s for s in _SUBJECT_SPLIT.split(_text(row[4])) if s]

        key = f"{name.lower()}-{grade}"
        student = merged.get(key)
        if student is None:
            student = ImportRow(row=line, name=name, grade=grade, year=year)
            merged[key] = student
        for subject in subjects:
            if subject not in student.subjects:
                student.subjects.append(subject)
        student.monthly_fee = monthly_fee(grade, len(student.subjects))

    preview.students = list(merged.values())
    logger.info("Parsed %d students from %d rows (%d skipped)", len(preview.students), len(rows), len(preview.skipped))
    return preview


def _set_widths(sheet, widths: Iterable[int]) -> None:
    from openpyxl.utils import get_column_letter

    for idx, width in enumerate(widths, start=1):
        sheet.column_dimensions[get_column_letter(idx)].width = width


def build_import_template() -> bytes:
    rows = [
        ["Name", "Grade", "Year", "Monthly Fee (Optional)", "Subjects (space-separated)"],
        ["John Smith", 8, 2025, "", "MATH ENGLISH SCIENCE"],
        ["Jane Doe", 4, 2025, "", "MATH ENGLISH"],
        ["Bob Johnson", "PK1", 2025, "", "MATH"],
        ["Alice Brown", "K", 2025, "", "ENGLISH"],
        ["", "", "", "", ""],
        ["Fee Structure (auto-calculated, Monthly Fee column is ignored):"],
        ["K, PK1, PK2, Grades 1-6: 1700 THB per subject per month"],
        ["Grades 7-12: 1800 THB per subject per month"],
        ["", "", "", "", ""],
        ["Alternative format - One subject per row (fees will be summed):"],
        ["David Kim", 4, 2025, "", "MATH"],
        ["David Kim", 4, 2025, "", "ENGLISH"],
    ]
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name="Students", index=False, header=False)
        _set_widths(writer.sheets["Students"], [20, 8, 8, 18, 25])
    return output.getvalue()


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _paid_date(row: PaymentView) -> str:
    return format_date(row.paid_at) if row.paid_at else ""


def _write_table(writer, sheet_name: str, columns: list[str], records: list[dict[str, Any]],
                 widths: list[int], header_lines: Optional[list[str]] = None) -> None:
    start_row = len(header_lines) if header_lines else 0
    frame = pd.DataFrame(records, columns=columns)
    frame.to_excel(writer, sheet_name=sheet_name, index=False, startrow=start_row)
    sheet = writer.sheets[sheet_name]
    for idx, line in enumerate(header_lines or [], start=1):
        sheet.cell(row=idx, column=1, value=line)
    _set_widths(sheet, widths)


PAID_COLUMNS = [
    "No.", "Student Name", "Grade", "Year", "Subjects", "Monthly Fee", "Payment Status",
    "Amount Paid", "Late Fee", "Payment Method", "Reference", "Paid Date", "Registration Fee", "Half Month",
]
UNPAID_COLUMNS = [
    "No.", "Student Name", "Grade", "Year", "Subjects", "Monthly Fee", "Payment Status",
    "Amount Due", "Days Overdue",
]
ALL_COLUMNS = [
    "No.", "Student Name", "Grade", "Year", "Subjects", "Monthly Fee", "Payment Status",
    "Amount", "Late Fee", "Payment Method", "Paid Date", "Reference",
]
PAID_SHEET_COLUMNS = [
    "No.", "Student Name", "Grade", "Amount Paid", "Late Fee", "Payment Method", "Paid Date",
    "Reference", "Registration", "Half Month",
]
UNPAID_SHEET_COLUMNS = [
    "No.", "Student Name", "Grade", "Subjects", "Amount Due", "Days Overdue", "Contact Required",
]
GRADE_COLUMNS = ["No.", "Student Name", "Subjects", "Payment Status", "Amount", "Paid Date"]


def _paid_records(rows: list[PaymentView]) -> list[dict[str, Any]]:
    return [
        {
            "No.": i,
            "Student Name": r.student_name,
            "Grade": r.grade,
            "Year": r.year,
            "Subjects": ", ".join(r.subjects),
            "Monthly Fee": format_currency(r.monthly_fee),
            "Payment Status": "PAID",
            "Amount Paid": format_currency(r.total_amount),
            "Late Fee": format_currency(r.late_fee),
            "Payment Method": r.payment_method or "",
            "Reference": r.reference or "",
            "Paid Date": _paid_date(r),
            "Registration Fee": _yes_no(r.is_registration),
            "Half Month": _yes_no(r.is_half_month),
        }
        for i, r in enumerate(rows, start=1)
    ]


def _unpaid_records(rows: list[PaymentView], overdue: int) -> list[dict[str, Any]]:
    return [
        {
            "No.": i,
            "Student Name": r.student_name,
            "Grade": r.grade,
            "Year": r.year,
            "Subjects": ", ".join(r.subjects),
            "Monthly Fee": format_currency(r.monthly_fee),
            "Payment Status": "UNPAID",
            "Amount Due": format_currency(r.amount),
            "Days Overdue": overdue,
        }
        for i, r in enumerate(rows, start=1)
    ]


def _export_paid(writer, rows, month, today, cutoff_day) -> None:
    paid = [r for r in rows if r.is_paid]
    header = [
        f"Students Who Paid - {format_month(month)}",
        f"Total Paid Students: {len(paid)}",
        f"Total Amount Collected: {format_currency(sum(r.total_amount for r in paid))}",
        f"Export Date: {format_date(today)}",
        "",
    ]
    _write_table(writer, "Paid Students", PAID_COLUMNS, _paid_records(paid),
                 [5, 25, 8, 8, 25, 15, 12, 15, 12, 15, 15, 12, 12, 12], header)


def _export_unpaid(writer, rows, month, today, cutoff_day) -> None:
    unpaid = [r for r in rows if not r.is_paid]
    header = [
        f"Students Who Haven't Paid - {format_month(month)}",
        f"Total Unpaid Students: {len(unpaid)}",
        f"Total Amount Due: {format_currency(sum(r.amount for r in unpaid))}",
        f"Export Date: {format_date(today)}",
        "",
    ]
    records = _unpaid_records(unpaid, days_overdue(month, today, cutoff_day))
    _write_table(writer, "Unpaid Students", UNPAID_COLUMNS, records, [5, 25, 8, 8, 25, 15, 12, 15, 12], header)


def _export_all(writer, rows, month, today, cutoff_day) -> None:
    paid = [r for r in rows if r.is_paid]
    unpaid = [r for r in rows if not r.is_paid]
    rate = (len(paid) / len(rows) * 100) if rows else 0.0
    summary = [
        ["Payment Summary Report", ""],
        ["Month:", format_month(month)],
        ["Export Date:", format_date(today)],
        ["", ""],
        ["Summary Statistics:", ""],
        ["Total Students:", len(rows)],
        ["Paid Students:", len(paid)],
        ["Unpaid Students:", len(unpaid)],
        ["Total Amount Collected:", format_currency(sum(r.total_amount for r in paid))],
        ["Total Amount Due:", format_currency(sum(r.amount for r in unpaid))],
        ["Collection Rate:", f"{rate:.1f}%"],
    ]
    pd.DataFrame(summary).to_excel(writer, sheet_name="Summary", index=False, header=False)
    _set_widths(writer.sheets["Summary"], [25, 20])

    everyone = [
        {
            "No.": i,
            "Student Name": r.student_name,
            "Grade": r.grade,
            "Year": r.year,
            "Subjects": ", ".join(r.subjects),
            "Monthly Fee": format_currency(r.monthly_fee),
            "Payment Status": "PAID" if r.is_paid else "UNPAID",
            "Amount": format_currency(r.total_amount if r.is_paid else r.amount),
            "Late Fee": format_currency(r.late_fee) if r.is_paid else "-",
            "Payment Method": r.payment_method if r.is_paid else "",
            "Paid Date": _paid_date(r),
            "Reference": r.reference or "",
        }
        for i, r in enumerate(rows, start=1)
    ]
    _write_table(writer, "All Students", ALL_COLUMNS, everyone, [5, 25, 8, 8, 25, 15, 12, 15, 12, 15, 12, 15])

    if paid:
        records = [
            {
                "No.": i,
                "Student Name": r.student_name,
                "Grade": r.grade,
                "Amount Paid": format_currency(r.total_amount),
                "Late Fee": format_currency(r.late_fee),
                "Payment Method": r.payment_method or "",
                "Paid Date": _paid_date(r),
                "Reference": r.reference or "",
                "Registration": _yes_no(r.is_registration),
                "Half Month": _yes_no(r.is_half_month),
            }
            for i, r in enumerate(paid, start=1)
        ]
        _write_table(writer, "Paid Students", PAID_SHEET_COLUMNS, records, [5, 25, 8, 15, 12, 15, 12, 15, 12, 12])

    if unpaid:
        overdue = days_overdue(month, today, cutoff_day)
        records = [
            {
                "No.": i,
                "Student Name": r.student_name,
                "Grade": r.grade,
                "Subjects": ", ".join(r.subjects),
                "Amount Due": format_currency(r.amount),
                "Days Overdue": overdue,
                "Contact Required": "URGENT" if overdue > 7 else "NORMAL",
            }
            for i, r in enumerate(unpaid, start=1)
        ]
        _write_table(writer, "Unpaid Students", UNPAID_SHEET_COLUMNS, records, [5, 25, 8, 25, 15, 12, 15])


def grade_sort_key(grade: Union[int, str, None]) -> tuple[int, int]:
    """PK1, PK2, K first, then grades 1-12 in numeric order."""
    if isinstance(grade, int):
        return (1, grade)
    if grade in SYMBOLIC_LEVELS:
        return (0, ("PK1", "PK2", "K").index(grade))
    return (2, 0)


def _export_by_grade(writer, rows, month, today, cutoff_day) -> None:
    groups: dict[Any, list[PaymentView]] = {}
    for r in rows:
        groups.setdefault(r.grade, []).append(r)
    if not groups:
        pd.DataFrame([["No students"]]).to_excel(writer, sheet_name="Summary", index=False, header=False)
        return
    for grade in sorted(groups, key=grade_sort_key):
        members = groups[grade]
        paid_count = sum(1 for r in members if r.is_paid)
        records = [
            {
                "No.": i,
                "Student Name": r.student_name,
                "Subjects": ", ".join(r.subjects),
                "Payment Status": "PAID" if r.is_paid else "UNPAID",
                "Amount": format_currency(r.total_amount if r.is_paid else r.amount),
                "Paid Date": _paid_date(r),
            }
            for i, r in enumerate(members, start=1)
        ]
        header = [
            f"Grade {grade} - {format_month(month)}",
            f"Total Students: {len(members)}, Paid: {paid_count}, Unpaid: {len(members) - paid_count}",
            "",
        ]
        _write_table(writer, f"Grade {grade}", GRADE_COLUMNS, records, [5, 25, 25, 12, 15, 12], header)


EXPORTS: dict[str, tuple[str, Callable]] = {
    "paid": ("paid-students", _export_paid),
    "unpaid": ("unpaid-students", _export_unpaid),
    "all": ("payment-report", _export_all),
    "grade": ("payment-by-grade", _export_by_grade),
}


def export_workbook(kind: str, rows: list[PaymentView], month: str, today: Optional[date] = None,
                    cutoff_day: int = 25) -> tuple[str, bytes]:
    """Build one of the payment exports; returns (filename, xlsx bytes)."""
    if kind not in EXPORTS:
        raise ValueError(f"Unknown export kind: {kind!r} (expected one of {', '.join(EXPORTS)})")
    today = today or date.today()
    prefix, builder = EXPORTS[kind]
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        builder(writer, rows, month, today, cutoff_day)
    logger.info("Built %s export for %s (%d rows)", kind, month, len(rows))
    return f"{prefix}-{month}-{today.isoformat()}.xlsx", output.getvalue()
