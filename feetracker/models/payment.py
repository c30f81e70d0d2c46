"""Monthly tuition payments, one per student and `YYYY-MM` month."""
from datetime import datetime
from typing import Optional, Union

import pymongo
from beanie import Document, Indexed
from pydantic import BaseModel, Field
from pymongo import IndexModel

DEFAULT_PAYMENT_METHOD = "Cash/Transfer"


class Payment(Document):
    """Payment document: unpaid until a computed charge is committed."""

    student_id: Indexed(str)
    month: Indexed(str)
    amount: float = 0.0
    late_fee: float = 0.0
    total_amount: float = 0.0
    payment_method: str = DEFAULT_PAYMENT_METHOD
    reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    is_paid: bool = False
    is_registration: bool = False
    is_half_month: bool = False
    waive_registration_fee: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "payments"
        use_state_management = True
        indexes = [
            IndexModel(
                [("student_id", pymongo.ASCENDING), ("month", pymongo.ASCENDING)],
                unique=True,
            ),
        ]


class PaymentForm(BaseModel):
    """Values entered in the mark-paid form; also used for the preview."""
    amount: float = Field(ge=0)
    payment_method: str = DEFAULT_PAYMENT_METHOD
    reference: Optional[str] = None
    is_registration: bool = False
    is_half_month: bool = False
    waive_registration_fee: bool = False



class PaymentView(BaseModel):
    """Payment row joined with its student; what lists, exports and receipts consume."""
    id: str
    student_id: str
    student_name: str = ""
    grade: Union[int, str, None] = None
    year: Optional[int] = None
    subjects: list[str] = Field(default_factory=list)
    monthly_fee: float = 0.0
    month: str
    amount: float = 0.0
    late_fee: float = 0.0
    total_amount: float = 0.0
    payment_method: str = DEFAULT_PAYMENT_METHOD
    reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    is_paid: bool = False
    is_registration: bool = False
    is_half_month: bool = False
    waive_registration_fee: bool = False

    @classmethod
    def build(cls, payment, student=None) -> "PaymentView":
        return cls(
            id=str(payment.id),
            student_id=payment.student_id,
            student_name=student.name if student else "",
            grade=student.grade if student else None,
            year=student.year if student else None,
            subjects=list(student.subjects) if student else [],
            monthly_fee=student.monthly_fee if student else payment.amount,
            month=payment.month,
            amount=payment.amount,
            late_fee=payment.late_fee,
            total_amount=payment.total_amount,
            payment_method=payment.payment_method,
            reference=payment.reference,
            paid_at=payment.paid_at,
            is_paid=payment.is_paid,
            is_registration=payment.is_registration,
            is_half_month=payment.is_half_month,
            waive_registration_fee=getattr(payment, "waive_registration_fee", False),
        )
