"""Student CRUD and spreadsheet import. The monthly fee is always derived, never entered."""
import io
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse

from feetracker.api.deps import AdminOnly, CurrentUser, parse_object_id
from feetracker.models.payment import Payment
from feetracker.models.student import Student, StudentCreate, StudentUpdate
from feetracker.services.billing import monthly_fee, normalize_grade
from feetracker.services.spreadsheet import (
    XLSX_MEDIA_TYPE,
    build_import_template,
    parse_student_rows,
    read_sheet,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def student_out(s: Student) -> dict:
    return {
        "id": str(s.id),
        "name": s.name,
        "grade": s.grade,
        "year": s.year,
        "subjects": s.subjects,
        "monthly_fee": s.monthly_fee,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


async def _get_student(student_id: str) -> Student:
    student = await Student.get(parse_object_id(student_id, "Student"))
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


@router.get("/")
async def list_students(
    user: CurrentUser,
    q: Optional[str] = Query(None, description="Search by name"),
    grade: Optional[str] = None,
):
    query = {}
    if q and q.strip():
        query["name"] = {"$regex": q.strip(), "$options": "i"}
    if grade and grade.strip():
        try:
            query["grade"] = normalize_grade(grade)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    students = await Student.find(query).to_list()
    students.sort(key=lambda s: s.name.lower())
    return [student_out(s) for s in students]


@router.post("/", status_code=201)
async def create_student(data: StudentCreate, user: CurrentUser):
    student = Student(
        name=data.name.strip(),
        grade=data.grade,
        year=data.year,
        subjects=data.subjects,
        monthly_fee=monthly_fee(data.grade, len(data.subjects)),
    )
    await student.insert()
    logger.info("Student %s added (grade %s, fee %s)", student.name, student.grade, student.monthly_fee)
    return student_out(student)


@router.get("/import/template")
async def import_template(user: CurrentUser):
    return StreamingResponse(
        io.BytesIO(build_import_template()),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": "attachment; filename=student-import-template.xlsx"},
    )


@router.post("/import")
async def import_students(user: CurrentUser, file: UploadFile = File(...)):
    """Insert every valid row of an uploaded xlsx/xls/csv; returns per-row errors for the rest."""
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    try:
        rows = read_sheet(content, file.filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Could not read spreadsheet: {e}")

    preview = parse_student_rows(rows)
    errors = list(preview.skipped)
    success = 0
    for row in preview.students:
        try:
            await Student(
                name=row.name,
                grade=row.grade,
                year=row.year,
                subjects=row.subjects,
                monthly_fee=row.monthly_fee,
            ).insert()
            success += 1
        except Exception as e:
            logger.warning("Import row %s (%s) failed: %s", row.row, row.name, e)
            errors.append({"row": row.row, "name": row.name, "error": str(e)})
    logger.info("Imported %s students from %s, %s errors", success, file.filename, len(errors))
    return {"success": success, "errors": errors}


@router.get("/{student_id}")
async def get_student(student_id: str, user: CurrentUser):
    return student_out(await _get_student(student_id))


@router.patch("/{student_id}")
async def update_student(student_id: str, data: StudentUpdate, user: CurrentUser):
    student = await _get_student(student_id)
    update = data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in update:
        update["name"] = update["name"].strip()
        if not update["name"]:
            raise HTTPException(status_code=400, detail="Name is required")
    for key, value in update.items():
        setattr(student, key, value)
    student.monthly_fee = monthly_fee(student.grade, len(student.subjects))
    student.updated_at = datetime.utcnow()
    await student.save()
    return student_out(student)


@router.delete("/{student_id}")
async def delete_student(student_id: str, user: AdminOnly):
    student = await _get_student(student_id)
    removed = await Payment.find(Payment.student_id == str(student.id)).delete()
    await student.delete()
    logger.info("Deleted student %s and %s payment rows", student.name, getattr(removed, "deleted_count", 0))
    return {"ok": True}
