import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from payplan.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
        logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # Account email unique index
    await db["accounts"].create_index("email", unique=True)

    # Ledger indexes
    await db["ledgers"].create_index("transaction_ref", unique=True)
    await db["ledgers"].create_index("account_id")
    await db["ledgers"].create_index("purchase_id")
    await db["ledgers"].create_index([("payment_mode", 1), ("marked_suspicious", 1)])
    await db["ledgers"].create_index("obligations.transaction_ref")

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
