"""Seed the configured admin user if not present."""
import logging

from feetracker.api.deps import get_password_hash
from feetracker.config import settings
from feetracker.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def seed_admin():
    if not settings.admin_password:
        return
    email = settings.admin_email.strip().lower()
    existing = await User.find_one(User.email == email)
    if existing:
        return
    await User(
        email=email,
        hashed_password=get_password_hash(settings.admin_password),
        role=UserRole.ADMIN,
        name=settings.admin_full_name,
    ).insert()
    logger.info("Seeded admin user %s", email)
