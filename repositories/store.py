from dataclasses import dataclass

from database import (
    tasks_collection,
    notifications_collection,
    notification_prefs_collection,
    push_subscriptions_collection,
)
from repositories.notification_prefs import PreferenceRepository
from repositories.notifications import NotificationRepository
from repositories.push_subscriptions import PushSubscriptionRepository
from repositories.tasks import TaskRepository


@dataclass
class Store:
    """The collections the notification engine reads and writes."""
    tasks: TaskRepository
    preferences: PreferenceRepository
    notifications: NotificationRepository
    push_subscriptions: PushSubscriptionRepository


def build_mongo_store() -> Store:
    return Store(
        tasks=TaskRepository(tasks_collection),
        preferences=PreferenceRepository(notification_prefs_collection),
        notifications=NotificationRepository(notifications_collection),
        push_subscriptions=PushSubscriptionRepository(push_subscriptions_collection),
    )


_store = None


def get_store() -> Store:
    """FastAPI dependency: the process-wide Mongo-backed store."""
    global _store
    if _store is None:
        _store = build_mongo_store()
    return _store
