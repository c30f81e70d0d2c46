"""MongoDB connection and Beanie document registration."""
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from feetracker.config import settings
from feetracker.models import AdminSetting, FeeSetting, Payment, Student, User


_client = None


async def db_startup():
    """Connect to MongoDB and initialize Beanie ODM."""
    global _client
    _client = AsyncIOMotorClient(settings.mongodb_url)
    await init_beanie(
        database=_client[settings.mongodb_db_name],
        document_models=[
            User,
            Student,
            Payment,
            FeeSetting,
            AdminSetting,
        ],
    )


async def db_shutdown():
    """Close MongoDB connection."""
    global _client
    if _client:
        _client.close()
        _client = None


async def init_db():
    """Alias for db_startup."""
    await db_startup()
