from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ASCENDING

from models.task import TaskModel


def _owner_or_assignee(user_id: str) -> Dict[str, Any]:
    return {"$or": [{"user_id": user_id}, {"assignee_id": user_id}]}


def split_update(fields: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Build a Mongo update document: None values are unset, everything else is set."""
    to_set = {k: v for k, v in fields.items() if v is not None}
    to_unset = {k: "" for k, v in fields.items() if v is None}
    update: Dict[str, Dict[str, Any]] = {}
    if to_set:
        update["$set"] = to_set
    if to_unset:
        update["$unset"] = to_unset
    return update


class TaskRepository:
    """Task queries used by the reminder scheduler, the sweep and the task routes."""

    def __init__(self, collection):
        self._collection = collection

    async def _find(self, query: Dict[str, Any], sort: Optional[list] = None) -> List[TaskModel]:
        cursor = self._collection.find(query)
        if sort:
            cursor = cursor.sort(sort)
        return [TaskModel(**doc) for doc in await cursor.to_list(None)]

    async def get(self, task_id: str) -> Optional[TaskModel]:
        doc = await self._collection.find_one({"id": task_id})
        return TaskModel(**doc) if doc else None

    async def insert(self, task: TaskModel) -> TaskModel:
        await self._collection.insert_one(task.model_dump())
        return task

    async def update(self, task_id: str, fields: Dict[str, Any]) -> None:
        fields = {**fields, "updated_at": datetime.now(timezone.utc)}
        await self._collection.update_one({"id": task_id}, split_update(fields))

    async def clear_reminders(self, task_ids: Iterable[str]) -> None:
        task_ids = list(task_ids)
        if not task_ids:
            return
        await self._collection.update_many(
            {"id": {"$in": task_ids}},
            {"$unset": {"reminder_at": ""}}
        )

    async def find_reminders_due(self, now: datetime, scope_user_id: Optional[str] = None) -> List[TaskModel]:
        query: Dict[str, Any] = {"reminder_at": {"$lte": now}, "completed_at": None}
        if scope_user_id:
            query.update(_owner_or_assignee(scope_user_id))
        return await self._find(query)

    async def find_overdue(self, now: datetime, scope_user_id: Optional[str] = None) -> List[TaskModel]:
        query: Dict[str, Any] = {"due_date": {"$lt": now}, "completed_at": None}
        if scope_user_id:
            query.update(_owner_or_assignee(scope_user_id))
        return await self._find(query)

    async def find_due_between(self, user_id: str, start: datetime, end: datetime) -> List[TaskModel]:
        """Open tasks owned by or assigned to the user with start <= due_date < end."""
        query = {
            **_owner_or_assignee(user_id),
            "due_date": {"$gte": start, "$lt": end},
            "completed_at": None,
        }
        return await self._find(query)

    async def find_due_before(self, user_id: str, before: datetime) -> List[TaskModel]:
        """Open tasks owned by or assigned to the user due before `before`, soonest-due first."""
        query = {
            **_owner_or_assignee(user_id),
            "due_date": {"$lt": before},
            "completed_at": None,
        }
        return await self._find(query, sort=[("due_date", ASCENDING)])

    async def find_open_future_for_user(self, user_id: str, now: datetime) -> List[TaskModel]:
        query = {
            **_owner_or_assignee(user_id),
            "due_date": {"$gt": now},
            "completed_at": None,
        }
        return await self._find(query)
