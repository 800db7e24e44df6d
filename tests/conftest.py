import pytest
from httpx import AsyncClient, ASGITransport
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

# Set up test environment variables before anything else
os.environ["ENV"] = "testing"
os.environ["SECRET_KEY"] = "test_secret_key_12345"
os.environ["NOTIFICATION_WORKER_ENABLED"] = "false"

from config import config
config.ENV = "testing"
config.NOTIFICATION_WORKER_ENABLED = False

from pymongo.errors import PyMongoError

from main import app
from models.notification import NotificationModel
from models.notification_prefs import NotificationPrefsModel
from models.push_subscription import PushSubscriptionModel
from models.task import TaskModel
from repositories.store import Store
from routes.deps import create_access_token, get_db, get_delivery
from utils import background
from utils.event_bus import notification_events

# --- In-memory repositories (same interface as the Mongo-backed ones) ---

def _is_stakeholder(task: TaskModel, user_id: str) -> bool:
    return task.user_id == user_id or task.assignee_id == user_id


class InMemoryTaskRepository:
    def __init__(self):
        self.tasks: Dict[str, TaskModel] = {}

    def add(self, **fields) -> TaskModel:
        fields.setdefault("title", "Task")
        fields.setdefault("user_id", "user_1")
        task = TaskModel(**fields)
        self.tasks[task.id] = task
        return task

    def _open(self, scope_user_id: Optional[str] = None) -> List[TaskModel]:
        return [
            t for t in self.tasks.values()
            if t.completed_at is None and (not scope_user_id or _is_stakeholder(t, scope_user_id))
        ]

    async def get(self, task_id: str) -> Optional[TaskModel]:
        task = self.tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def insert(self, task: TaskModel) -> TaskModel:
        self.tasks[task.id] = task
        return task

    async def update(self, task_id: str, fields: Dict[str, Any]) -> None:
        task = self.tasks.get(task_id)
        if task is None:
            return
        data = {**task.model_dump(), **fields, "updated_at": datetime.now(timezone.utc)}
        self.tasks[task_id] = TaskModel(**data)

    async def clear_reminders(self, task_ids: Iterable[str]) -> None:
        for task_id in task_ids:
            await self.update(task_id, {"reminder_at": None})

    async def find_reminders_due(self, now, scope_user_id=None) -> List[TaskModel]:
        return [t for t in self._open(scope_user_id) if t.reminder_at is not None and t.reminder_at <= now]

    async def find_overdue(self, now, scope_user_id=None) -> List[TaskModel]:
        return [t for t in self._open(scope_user_id) if t.due_date is not None and t.due_date < now]

    async def find_due_between(self, user_id, start, end) -> List[TaskModel]:
        return [t for t in self._open(user_id) if t.due_date is not None and start <= t.due_date < end]

    async def find_due_before(self, user_id, before) -> List[TaskModel]:
        tasks = [t for t in self._open(user_id) if t.due_date is not None and t.due_date < before]
        return sorted(tasks, key=lambda t: t.due_date)

    async def find_open_future_for_user(self, user_id, now) -> List[TaskModel]:
        return [t for t in self._open(user_id) if t.due_date is not None and t.due_date > now]


class InMemoryPreferenceRepository:
    def __init__(self):
        self.prefs: Dict[str, NotificationPrefsModel] = {}
        self.fail_create_for: set = set()
        self.create_calls: List[str] = []

    def add(self, user_id: str, **fields) -> NotificationPrefsModel:
        prefs = NotificationPrefsModel(user_id=user_id, **fields)
        self.prefs[user_id] = prefs
        return prefs

    async def get(self, user_id: str) -> Optional[NotificationPrefsModel]:
        prefs = self.prefs.get(user_id)
        return prefs.model_copy(deep=True) if prefs else None

    async def find_many(self, user_ids) -> List[NotificationPrefsModel]:
        return [self.prefs[u].model_copy(deep=True) for u in user_ids if u in self.prefs]

    async def create(self, user_id: str) -> Optional[NotificationPrefsModel]:
        self.create_calls.append(user_id)
        if user_id in self.fail_create_for:
            raise PyMongoError("connection reset")
        if user_id in self.prefs:
            return await self.get(user_id)
        return self.add(user_id)

    async def get_or_create(self, user_id: str) -> Optional[NotificationPrefsModel]:
        prefs = await self.get(user_id)
        if prefs is None:
            prefs = await self.create(user_id)
        return prefs

    async def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[NotificationPrefsModel]:
        existing = await self.get_or_create(user_id)
        data = {**existing.model_dump(), **fields, "updated_at": datetime.now(timezone.utc)}
        self.prefs[user_id] = NotificationPrefsModel(**data)
        return await self.get(user_id)

    async def find_digest_candidates(self, flag_field: str, scope_user_id=None) -> List[NotificationPrefsModel]:
        return [
            p for p in self.prefs.values()
            if getattr(p, flag_field) and p.any_channel_enabled
            and (not scope_user_id or p.user_id == scope_user_id)
        ]


class InMemoryNotificationRepository:
    def __init__(self):
        self.notifications: List[NotificationModel] = []

    def of_type(self, notification_type: str) -> List[NotificationModel]:
        return [n for n in self.notifications if n.type == notification_type]

    async def create(self, notification: NotificationModel) -> NotificationModel:
        self.notifications.append(notification)
        return notification

    async def find_for_tasks(self, task_ids, notification_type) -> List[NotificationModel]:
        task_ids = set(task_ids)
        return [n for n in self.notifications if n.task_id in task_ids and n.type == notification_type]

    async def find_recent_for_users(self, user_ids, notification_type, since) -> List[NotificationModel]:
        user_ids = set(user_ids)
        return [
            n for n in self.notifications
            if n.user_id in user_ids and n.type == notification_type and n.created_at >= since
        ]

    async def list_for_user(self, user_id, unread_only=False, types=None, limit=50, dismissed=None) -> List[NotificationModel]:
        items = [
            n for n in self.notifications
            if n.user_id == user_id and (not unread_only or not n.read) and (not types or n.type in types)
            and (dismissed is None or n.dismissed == dismissed)
        ]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items[:limit]

    async def count_unread(self, user_id) -> int:
        return len([n for n in self.notifications if n.user_id == user_id and not n.read])

    async def update_for_user(self, notification_id, user_id, fields) -> Optional[NotificationModel]:
        for index, n in enumerate(self.notifications):
            if n.id == notification_id and n.user_id == user_id:
                updated = NotificationModel(**{**n.model_dump(), **fields})
                self.notifications[index] = updated
                return updated
        return None

    async def mark_all_read(self, user_id) -> int:
        updated = 0
        for index, n in enumerate(self.notifications):
            if n.user_id == user_id and not n.read:
                self.notifications[index] = n.model_copy(update={"read": True})
                updated += 1
        return updated


class InMemoryPushSubscriptionRepository:
    def __init__(self):
        self.subscriptions: Dict[tuple, PushSubscriptionModel] = {}

    async def list_for_user(self, user_id, limit=10) -> List[PushSubscriptionModel]:
        return [s for (uid, _), s in self.subscriptions.items() if uid == user_id][:limit]

    async def upsert(self, subscription: PushSubscriptionModel) -> None:
        key = (subscription.user_id, subscription.endpoint)
        existing = self.subscriptions.get(key)
        if existing:
            subscription = subscription.model_copy(update={"created_at": existing.created_at})
        self.subscriptions[key] = subscription

    async def delete(self, user_id, endpoint) -> bool:
        return self.subscriptions.pop((user_id, endpoint), None) is not None

    async def delete_endpoints(self, user_id, endpoints) -> int:
        return sum(1 for endpoint in list(endpoints) if self.subscriptions.pop((user_id, endpoint), None))


class RecordingGateway:
    """Delivery gateway that records events and pushes instead of sending them."""

    def __init__(self):
        self.events: List[dict] = []
        self.pushes: List[tuple] = []

    def emit_event(self, descriptor: dict) -> None:
        self.events.append(descriptor)

    async def send_push(self, user_id: str, payload: dict) -> int:
        self.pushes.append((user_id, payload))
        return 1


# --- Fixtures ---

@pytest.fixture(scope="function")
def store():
    return Store(
        tasks=InMemoryTaskRepository(),
        preferences=InMemoryPreferenceRepository(),
        notifications=InMemoryNotificationRepository(),
        push_subscriptions=InMemoryPushSubscriptionRepository(),
    )


@pytest.fixture(scope="function")
def gateway():
    return RecordingGateway()


@pytest.fixture(scope="function")
async def async_client(store, gateway):
    app.dependency_overrides[get_db] = lambda: store
    app.dependency_overrides[get_delivery] = lambda: gateway
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _headers_for(user_id: str) -> dict:
    token = create_access_token(data={"sub": user_id}, expires_delta=timedelta(minutes=60))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def auth_headers():
    return _headers_for("user_1")


@pytest.fixture(scope="function")
def other_auth_headers():
    return _headers_for("user_2")


@pytest.fixture(scope="function", autouse=True)
async def settle_background():
    """Let fire-and-forget work finish inside the test's event loop and reset listeners."""
    yield
    await background.drain()
    notification_events.clear()
