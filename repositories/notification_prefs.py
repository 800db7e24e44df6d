from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pymongo.errors import DuplicateKeyError

from logging_config import get_logger
from models.notification_prefs import NotificationPrefsModel

logger = get_logger("notification_prefs")

DIGEST_FLAGS = {"enable_daily_summary", "enable_overdue_summary"}


class PreferenceRepository:
    """One preference record per user, created lazily with defaults."""

    def __init__(self, collection):
        self._collection = collection

    async def get(self, user_id: str) -> Optional[NotificationPrefsModel]:
        doc = await self._collection.find_one({"user_id": user_id})
        return NotificationPrefsModel(**doc) if doc else None

    async def find_many(self, user_ids: Iterable[str]) -> List[NotificationPrefsModel]:
        user_ids = list(user_ids)
        if not user_ids:
            return []
        docs = await self._collection.find({"user_id": {"$in": user_ids}}).to_list(None)
        return [NotificationPrefsModel(**doc) for doc in docs]

    async def create(self, user_id: str) -> Optional[NotificationPrefsModel]:
        """Insert a default record. If another writer got there first the unique index
        rejects ours and the existing record is returned instead."""
        prefs = NotificationPrefsModel(user_id=user_id)
        try:
            await self._collection.insert_one(prefs.model_dump())
        except DuplicateKeyError:
            logger.debug(f"Preferences for user {user_id} created concurrently, re-reading")
            return await self.get(user_id)
        logger.info(f"Provisioned default notification preferences", extra={"data": {"user_id": user_id}})
        return prefs

    async def get_or_create(self, user_id: str) -> Optional[NotificationPrefsModel]:
        prefs = await self.get(user_id)
        if prefs is None:
            prefs = await self.create(user_id)
        return prefs

    async def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[NotificationPrefsModel]:
        await self.get_or_create(user_id)
        fields = {**fields, "updated_at": datetime.now(timezone.utc)}
        await self._collection.update_one({"user_id": user_id}, {"$set": fields})
        return await self.get(user_id)

    async def find_digest_candidates(self, flag_field: str, scope_user_id: Optional[str] = None) -> List[NotificationPrefsModel]:
        """Preferences with the given digest flag on and at least one delivery channel on."""
        if flag_field not in DIGEST_FLAGS:
            raise ValueError(f"Unknown digest flag: {flag_field}")
        query: Dict[str, Any] = {
            flag_field: True,
            "$or": [{"enable_in_app_notifications": True}, {"enable_browser_push": True}],
        }
        if scope_user_id:
            query["user_id"] = scope_user_id
        docs = await self._collection.find(query).to_list(None)
        return [NotificationPrefsModel(**doc) for doc in docs]
