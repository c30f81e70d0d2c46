"""Per-grade fee schedule and admin key/value settings."""
from datetime import datetime
from typing import Mapping, Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class FeeSetting(Document):
    """One row per grade. `late_fee_rate` only feeds the legacy late-fee mode."""

    grade: Indexed(str, unique=True)
    monthly_fee: float = 0.0
    registration_fee: float = 0.0
    late_fee_rate: float = 0.0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "fee_settings"
        use_state_management = True


class AdminSetting(Document):
    """Single key/value pair; values are stored as strings."""

    setting_key: Indexed(str, unique=True)
    setting_value: str = ""
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "admin_settings"
        use_state_management = True


class FeeSettingUpdate(BaseModel):
    monthly_fee: float = Field(ge=0)
    registration_fee: float = Field(default=0, ge=0)
    late_fee_rate: float = Field(default=0, ge=0)


class SchoolInfo(BaseModel):
    """Campus header printed on receipts."""
    name: str = ""
    address: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_values(cls, values: Mapping[str, str], prefix: str) -> "SchoolInfo":
        """Read `<prefix>_name`, `<prefix>_address`... from admin_settings values."""
        return cls(
            name=values.get(f"{prefix}_name", ""),
            address=values.get(f"{prefix}_address", ""),
            phone=values.get(f"{prefix}_phone") or None,
            email=values.get(f"{prefix}_email") or None,
        )

    def to_values(self, prefix: str) -> dict[str, str]:
        return {
            f"{prefix}_name": self.name,
            f"{prefix}_address": self.address,
            f"{prefix}_phone": self.phone or "",
            f"{prefix}_email": self.email or "",
        }


class GeneralSettingsUpdate(BaseModel):
    collection_day: int = Field(default=18, ge=1, le=31)
    late_fee_after_day: int = Field(default=25, ge=1, le=31)
    late_fee_amount: int = Field(default=50, ge=0)
    school1: SchoolInfo = Field(default_factory=SchoolInfo)
    school2: SchoolInfo = Field(default_factory=SchoolInfo)
    currency: str = "THB"
