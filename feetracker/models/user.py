"""Staff accounts: admins and regular users."""
from datetime import datetime
from enum import Enum

from beanie import Document, Indexed
from pydantic import EmailStr, Field


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class User(Document):
    """User document; admin capability is resolved in api.deps.is_admin."""

    email: Indexed(EmailStr, unique=True)
    hashed_password: str
    role: UserRole = UserRole.USER
    name: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        use_state_management = True
