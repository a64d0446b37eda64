# vitalflow/db/mongodb_utils.py
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from vitalflow.core.config import settings

logger = logging.getLogger(__name__)


class MongoDB:
    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

db_manager = MongoDB()

async def connect_to_mongo():
    logger.info(f"[Store] Connecting to MongoDB at {settings.MONGO_URI.split('@')[-1]}...")
    try:
        db_manager.client = AsyncIOMotorClient(str(settings.MONGO_URI))
        db_manager.db = db_manager.client[str(settings.MONGO_DB_NAME)]
        # ping so a bad URI fails at startup rather than on the first request
        await db_manager.client.admin.command('ping')
        logger.info("[Store] Successfully connected to MongoDB")
    except PyMongoError as e:
        logger.error(f"[Store] Failed to connect to MongoDB: {e}")
        raise

async def close_mongo_connection():
    if db_manager.client:
        logger.info("[Store] Closing MongoDB connection...")
        db_manager.client.close()
        db_manager.client = None
        db_manager.db = None

def get_database() -> AsyncIOMotorDatabase:
    if db_manager.db is None:
        raise RuntimeError("MongoDB not connected. Call connect_to_mongo first during app startup.")
    return db_manager.db

# --- Collection Getters ---
def get_reminder_collection():
    return get_database()["reminders"]

def get_counter_collection():
    return get_database()["counters"]

def get_notification_collection():
    return get_database()["notifications"]

async def next_sequence(name: str, counters=None) -> int:
    """Atomically hand out the next integer of a named sequence. Values are never reused."""
    counters = counters if counters is not None else get_counter_collection()
    doc = await counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(doc["seq"])

async def create_db_indexes():
    logger.info("[Store] Ensuring database indexes...")
    db = get_database()
    try:
        await db["reminders"].create_index("isEnabled")
        await db["reminders"].create_index("timeOfDay")
        await db["notifications"].create_index("reminderId")
        await db["notifications"].create_index([("time", -1), ("isRead", 1)])  # newest first, unread first
        logger.info("[Store] Database indexes ensured")
    except PyMongoError as e:
        logger.error(f"[Store] Error creating database indexes: {e}")
