from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from logging_config import get_logger
from config import config
import certifi

logger = get_logger("database")

uri = config.MONGO_URI
db_name = config.DB_NAME

if uri:
    logger.info(f"MongoDB connection string found: {uri[:20]}...")
else:
    logger.error("MONGO_URI not found in configuration!")

class DatabaseProxy:
    def __init__(self):
        self._client = None

    def initialize(self):
        if self._client is None:
            # tz_aware: datetimes come back as UTC-aware, matching what the engine writes
            if config.ENV == "production":
                self._client = AsyncIOMotorClient(uri, tz_aware=True, tlsCAFile=certifi.where())
            else:
                self._client = AsyncIOMotorClient(uri, tz_aware=True, tlsAllowInvalidCertificates=True)
            logger.info(f"Database client initialized on DB: {db_name}")

    def reset(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    def __getattr__(self, name):
        self.initialize()
        return getattr(self._client, name)

    def __getitem__(self, name):
        self.initialize()
        return self._client[name]


client = DatabaseProxy()

class DBProxy:
    def get_collection(self, name):
        return client[db_name][name]

    def __getattr__(self, attr):
        return client[db_name][attr]

    def __getitem__(self, key):
        return client[db_name][key]

db = DBProxy()

class AsyncCollectionProxy:
    def __init__(self, name):
        self.name = name

    def _get_collection(self):
        # We access the configured db dynamically
        return db.get_collection(self.name)

    def __getattr__(self, attr):
        return getattr(self._get_collection(), attr)

    def __getitem__(self, key):
        return self._get_collection()[key]

tasks_collection = AsyncCollectionProxy("tasks")
notifications_collection = AsyncCollectionProxy("notifications")
notification_prefs_collection = AsyncCollectionProxy("notification_prefs")
push_subscriptions_collection = AsyncCollectionProxy("push_subscriptions")


async def ensure_indexes():
    """Create the indexes the notification engine queries rely on."""
    # One preference record per user; the unique index is what surfaces the creation race
    await notification_prefs_collection.create_index([("user_id", ASCENDING)], unique=True)

    # Reminder sweep: find({reminder_at: {$lte: now}, completed_at: None})
    await tasks_collection.create_index([("reminder_at", ASCENDING), ("completed_at", ASCENDING)])
    # Overdue sweep and digests: due_date ranges per owner / assignee
    await tasks_collection.create_index([("user_id", ASCENDING), ("due_date", ASCENDING)])
    await tasks_collection.create_index([("assignee_id", ASCENDING), ("due_date", ASCENDING)])

    # Dedup lookups
    await notifications_collection.create_index([("task_id", ASCENDING), ("type", ASCENDING)])
    await notifications_collection.create_index([("user_id", ASCENDING), ("type", ASCENDING), ("created_at", DESCENDING)])
    # Unread count and listing
    await notifications_collection.create_index([("user_id", ASCENDING), ("read", ASCENDING)])

    await push_subscriptions_collection.create_index([("user_id", ASCENDING), ("endpoint", ASCENDING)], unique=True)
    logger.info("Notification indexes ensured")
