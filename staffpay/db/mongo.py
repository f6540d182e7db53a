import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from staffpay.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def disconnect_from_mongo():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # Ledger entry indexes
    await db["ledger_entries"].create_index([("collaborator_id", 1), ("date", 1)])
    await db["ledger_entries"].create_index([("collaborator_id", 1), ("payment_state", 1)])
    await db["ledger_entries"].create_index("payment_ref")

    # Payment indexes
    await db["payments"].create_index([("collaborator_id", 1), ("payment_date", -1)])

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
