# haatbazaar/db/mongo_client.py
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger

_mongo_client: AsyncIOMotorClient | None = None
_mongo_db: AsyncIOMotorDatabase | None = None


def _display_host(uri: str) -> str:
    host_part = uri.split('@')[-1] if '@' in uri else uri.split('//')[-1]
    return host_part.split('/')[0]


async def connect_to_mongo():
    """Establishes connection to MongoDB using settings."""
    global _mongo_client, _mongo_db
    if _mongo_client is not None and _mongo_db is not None:
        logger.debug("MongoDB connection already established.")
        return
    db_name = settings.MONGO_DB_NAME
    if not db_name:
        logger.critical("FATAL: MONGO_DB_NAME could not be determined.")
        raise RuntimeError("MONGO_DB_NAME must be set or derivable from MONGODB_URI.")
    try:
        logger.info(f"Connecting to MongoDB: {_display_host(settings.MONGODB_URI)} / DB: {db_name}")
        _mongo_client = AsyncIOMotorClient(
            settings.MONGODB_URI,
            serverSelectionTimeoutMS=5000,
            uuidRepresentation='standard',
            tz_aware=True,
        )
        _mongo_db = _mongo_client[db_name]
        await _mongo_client.admin.command('ping')
        logger.success(f"Connected to MongoDB database '{db_name}' successfully.")
    except Exception as e:
        logger.critical(f"FATAL: Failed to connect to MongoDB: {e}")
        _mongo_client = None
        _mongo_db = None
        raise RuntimeError(f"Failed to connect to MongoDB: {e}") from e


async def close_mongo_connection():
    """Closes the MongoDB client connection."""
    global _mongo_client, _mongo_db
    if _mongo_client:
        logger.info("Closing MongoDB connection...")
        try:
            _mongo_client.close()
            logger.info("MongoDB connection closed.")
        finally:
            _mongo_client = None
            _mongo_db = None


def get_database() -> AsyncIOMotorDatabase:
    """Provides the singleton database instance. Raises RuntimeError if not connected."""
    if _mongo_db is None:
        logger.error("Database instance is not available.")
        raise RuntimeError("Database not connected. Ensure connect_to_mongo() was called successfully.")
    return _mongo_db


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """Creates the indexes the repositories rely on. Safe to call repeatedly."""
    logger.info("Ensuring database indexes...")
    await db.users.create_index("phone", unique=True, background=True)
    await db.users.create_index([("role", 1), ("approved", 1)], background=True)
    await db.products.create_index([("status", 1), ("created_at", -1)], background=True)
    await db.products.create_index("farmer", background=True)
    await db.products.create_index("haat_event", sparse=True, background=True)
    await db.orders.create_index([("buyer", 1), ("created_at", -1)], background=True)
    await db.orders.create_index([("farmer", 1), ("created_at", -1)], background=True)
    await db.inventory_ledger.create_index([("order_id", 1), ("product_id", 1)], background=True)
    # Partial unique index backs the one-active-negotiation-per-(product, buyer) rule
    await db.negotiations.create_index(
        [("product", 1), ("buyer", 1)],
        unique=True,
        partialFilterExpression={"status": "active"},
        background=True,
    )
    await db.negotiations.create_index([("status", 1), ("expires_at", 1)], background=True)
    await db.group_sales.create_index([("status", 1), ("deadline", 1)], background=True)
    await db.haat_events.create_index([("status", 1), ("event_date", 1)], background=True)
    await db.notifications.create_index([("recipient", 1), ("created_at", -1)], background=True)
    await db.notification_outbox.create_index([("status", 1), ("next_attempt_at", 1)], background=True)
    await db.ratings.create_index([("rater", 1), ("target", 1)], unique=True, background=True)
    await db.expenses.create_index([("farmer", 1), ("date", -1)], background=True)
    await db.expense_projects.create_index("farmer", background=True)
    await db.locations.create_index([("user", 1), ("is_active", 1)], background=True)
    if settings.AUDIT_LOG_ENABLED:
        audit = db[settings.AUDIT_LOG_MONGO_COLLECTION]
        await audit.create_index("timestamp", background=True)
        await audit.create_index("actor_id", background=True)
        await audit.create_index("action", background=True)
    logger.info("Database indexes checked/created.")
