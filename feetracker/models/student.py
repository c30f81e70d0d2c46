"""Student records: grade, enrolled subjects and the derived monthly fee."""
from datetime import datetime
from typing import Optional, Union

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator

from feetracker.services.billing import normalize_grade

Grade = Union[int, str]


class Student(Document):
    """Student document. `monthly_fee` is always derived from grade and subject count."""

    name: Indexed(str)
    grade: Grade
    year: int
    subjects: list[str] = Field(default_factory=list)
    monthly_fee: float = 0.0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "students"
        use_state_management = True


class StudentCreate(BaseModel):
    name: str = Field(min_length=1)
    grade: Grade
    year: int
    subjects: list[str] = Field(min_length=1)

    @field_validator("grade")
    @classmethod
    def _grade(cls, value: Grade) -> Grade:
        return normalize_grade(value)

    @field_validator("subjects")
    @classmethod
    def _subjects(cls, value: list[str]) -> list[str]:
        cleaned = [s.strip() for s in value if s and s.strip()]
        if not cleaned:
            raise ValueError("Please select at least one subject")
        return cleaned


class StudentUpdate(BaseModel):
    """All fields optional for PATCH; monthly_fee is recomputed, never set directly."""
    name: Optional[str] = None
    grade: Optional[Grade] = None
    year: Optional[int] = None
    subjects: Optional[list[str]] = None

    @field_validator("grade")
    @classmethod
    def _grade(cls, value: Optional[Grade]) -> Optional[Grade]:
        return normalize_grade(value) if value is not None else None

    @field_validator("subjects")
    @classmethod
    def _subjects(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        cleaned = [s.strip() for s in value if s and s.strip()]
        if not cleaned:
            raise ValueError("Please select at least one subject")
        return cleaned
