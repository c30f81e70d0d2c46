"""Shared dependencies: JWT auth, admin gate and persisted billing settings."""
from datetime import datetime, timedelta
from typing import Annotated, Optional

import bcrypt
from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from feetracker.config import settings
from feetracker.models.settings import AdminSetting
from feetracker.models.user import User, UserRole
from feetracker.services.billing import BillingSettings
from feetracker.services.months import current_month, parse_month

security = HTTPBearer(auto_error=False)


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(subject: str, role: str) -> str:
    expire = datetime.utcnow() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode = {"sub": subject, "role": role, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_refresh_token(subject: str) -> str:
    expire = datetime.utcnow() + timedelta(days=settings.jwt_refresh_token_expire_days)
    to_encode = {"sub": subject, "exp": expire, "type": "refresh"}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str) -> str:
    """Return the user id in `token`; 401 when expired, malformed or of the wrong type."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    if payload.get("type") != expected_type:
        raise HTTPException(status_code=401, detail="Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


def parse_object_id(value: str, what: str = "Record") -> PydanticObjectId:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=404, detail=f"{what} not found")


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id = decode_token(credentials.credentials, "access")
    user = await User.get(parse_object_id(user_id, "User"))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def is_admin(user) -> bool:
    """Admin by role, or by being the configured ADMIN_EMAIL account."""
    role = getattr(user.role, "value", user.role)
    if role == UserRole.ADMIN.value:
        return True
    return bool(settings.admin_email) and str(user.email).lower() == settings.admin_email.lower()


async def require_admin(user: Annotated[User, Depends(get_current_user)]) -> User:
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def load_setting_values() -> dict[str, str]:
    """All admin_settings rows as a plain key -> value mapping."""
    rows = await AdminSetting.find_all().to_list()
    return {row.setting_key: row.setting_value for row in rows}


async def get_billing_settings(
    values: Annotated[dict[str, str], Depends(load_setting_values)],
) -> BillingSettings:
    return BillingSettings.from_key_values(values)


def month_param(month: Optional[str] = None) -> str:
    """`?month=YYYY-MM`, defaulting to the current month; 400 when malformed."""
    if not month:
        return current_month()
    try:
        parse_month(month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return month


# Type aliases for route injection
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminOnly = Annotated[User, Depends(require_admin)]
SettingValues = Annotated[dict[str, str], Depends(load_setting_values)]
Billing = Annotated[BillingSettings, Depends(get_billing_settings)]
Month = Annotated[str, Depends(month_param)]
