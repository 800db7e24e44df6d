from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pymongo import DESCENDING

from models.notification import NotificationModel


class NotificationRepository:

    def __init__(self, collection):
        self._collection = collection

    async def create(self, notification: NotificationModel) -> NotificationModel:
        await self._collection.insert_one(notification.model_dump())
        return notification

    async def find_for_tasks(self, task_ids: Iterable[str], notification_type: str) -> List[NotificationModel]:
        """Existing notifications of one type for a batch of tasks (dedup lookups)."""
        task_ids = list(task_ids)
        if not task_ids:
            return []
        docs = await self._collection.find(
            {"task_id": {"$in": task_ids}, "type": notification_type}
        ).to_list(None)
        return [NotificationModel(**doc) for doc in docs]

    async def find_recent_for_users(self, user_ids: Iterable[str], notification_type: str, since: datetime) -> List[NotificationModel]:
        user_ids = list(user_ids)
        if not user_ids:
            return []
        docs = await self._collection.find({
            "user_id": {"$in": user_ids},
            "type": notification_type,
            "created_at": {"$gte": since},
        }).to_list(None)
        return [NotificationModel(**doc) for doc in docs]

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        types: Optional[List[str]] = None,
        limit: int = 50,
        dismissed: Optional[bool] = None,
    ) -> List[NotificationModel]:
        query: Dict[str, Any] = {"user_id": user_id}
        if unread_only:
            query["read"] = False
        if dismissed is not None:
            query["dismissed"] = dismissed
        if types:
            query["type"] = {"$in": types}
        docs = await self._collection.find(query).sort("created_at", DESCENDING).to_list(limit)
        return [NotificationModel(**doc) for doc in docs]

    async def count_unread(self, user_id: str) -> int:
        return await self._collection.count_documents({"user_id": user_id, "read": False})

    async def update_for_user(self, notification_id: str, user_id: str, fields: Dict[str, Any]) -> Optional[NotificationModel]:
        result = await self._collection.update_one(
            {"id": notification_id, "user_id": user_id},
            {"$set": fields}
        )
        if result.matched_count == 0:
            return None
        doc = await self._collection.find_one({"id": notification_id, "user_id": user_id})
        return NotificationModel(**doc) if doc else None

    async def mark_all_read(self, user_id: str) -> int:
        result = await self._collection.update_many(
            {"user_id": user_id, "read": False},
            {"$set": {"read": True}}
        )
        return result.modified_count
