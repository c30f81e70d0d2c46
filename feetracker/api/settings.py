"""Admin settings: late-fee rules, campus headers and the per-grade fee schedule."""
import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException

from feetracker.api.deps import AdminOnly, CurrentUser, SettingValues
from feetracker.config import settings as app_settings
from feetracker.models.settings import AdminSetting, FeeSetting, FeeSettingUpdate, GeneralSettingsUpdate, SchoolInfo
from feetracker.services.billing import BillingSettings, normalize_grade
from feetracker.services.spreadsheet import grade_sort_key

logger = logging.getLogger(__name__)

router = APIRouter()


def general_settings(values: dict[str, str]) -> dict:
    billing = BillingSettings.from_key_values(values)
    return {
        "collection_day": billing.collection_day,
        "late_fee_after_day": billing.late_fee_after_day,
        "late_fee_amount": billing.late_fee_amount,
        "school1": SchoolInfo.from_values(values, "school1"),
        "school2": SchoolInfo.from_values(values, "school2"),
        "currency": values.get("currency") or app_settings.currency,
    }


def fee_out(fee: FeeSetting) -> dict:
    return {
        "id": str(fee.id),
        "grade": fee.grade,
        "monthly_fee": fee.monthly_fee,
        "registration_fee": fee.registration_fee,
        "late_fee_rate": fee.late_fee_rate,
    }


@router.get("/general")
async def get_general_settings(user: CurrentUser, values: SettingValues):
    return general_settings(values)


@router.put("/general")
async def update_general_settings(data: GeneralSettingsUpdate, admin: AdminOnly):
    """Upsert every key; values are stored as strings."""
    values = {
        "collection_day": str(data.collection_day),
        "late_fee_after_day": str(data.late_fee_after_day),
        "late_fee_amount": str(data.late_fee_amount),
        "currency": data.currency,
        **data.school1.to_values("school1"),
        **data.school2.to_values("school2"),
    }
    existing = {row.setting_key: row for row in await AdminSetting.find_all().to_list()}
    for key, value in values.items():
        row = existing.get(key)
        if row is None:
            await AdminSetting(setting_key=key, setting_value=value).insert()
        elif row.setting_value != value:
            row.setting_value = value
            row.updated_at = datetime.utcnow()
            await row.save()
    logger.info(
        "Billing settings saved by %s: cut-off day %s, late fee %s",
        admin.email, data.late_fee_after_day, data.late_fee_amount,
    )
    return general_settings(values)


@router.get("/fees")
async def list_fee_settings(user: CurrentUser):
    fees = await FeeSetting.find_all().to_list()
    fees.sort(key=lambda f: grade_sort_key(normalize_grade(f.grade)))
    return [fee_out(f) for f in fees]


@router.put("/fees/{grade}")
async def update_fee_setting(grade: str, data: FeeSettingUpdate, admin: AdminOnly):
    try:
        key = str(normalize_grade(grade))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    fee = await FeeSetting.find_one(FeeSetting.grade == key)
    if fee is None:
        fee = FeeSetting(grade=key, **data.model_dump())
        await fee.insert()
    else:
        for field, value in data.model_dump().items():
            setattr(fee, field, value)
        fee.updated_at = datetime.utcnow()
        await fee.save()
    return fee_out(fee)
