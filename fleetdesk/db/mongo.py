import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from fleetdesk.core.config import settings

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

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # User email unique index
    await db["users"].create_index("email", unique=True)
    
    # Journey indexes
    journeys = db["journeys"]
    await journeys.create_index([("date", -1)])
    await journeys.create_index("truck_id")
    await journeys.create_index("driver_id")
    await journeys.create_index("customer_id")
    await journeys.create_index("status")
    await journeys.create_index("created_by")
    await journeys.create_index("pay.paid_option")
    await journeys.create_index([("date", -1), ("truck_id", 1)])
    await journeys.create_index([("date", -1), ("driver_id", 1)])

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
