"""Beanie document models and Pydantic schemas."""
from feetracker.models.user import User, UserRole
from feetracker.models.student import Student, StudentCreate, StudentUpdate
from feetracker.models.payment import Payment, PaymentForm, PaymentView, DEFAULT_PAYMENT_METHOD
from feetracker.models.settings import (
    AdminSetting,
    FeeSetting,
    FeeSettingUpdate,
    GeneralSettingsUpdate,
    SchoolInfo,
)

__all__ = [
    "User",
    "UserRole",
    "Student",
    "StudentCreate",
    "StudentUpdate",
    "Payment",
    "PaymentForm",
    "PaymentView",
    "DEFAULT_PAYMENT_METHOD",
    "AdminSetting",
    "FeeSetting",
    "FeeSettingUpdate",
    "GeneralSettingsUpdate",
    "SchoolInfo",
]
