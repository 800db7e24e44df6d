from typing import Any, Dict

from repositories.push_subscriptions import PushSubscriptionRepository
from repositories.store import get_store
from utils.event_bus import NotificationEventBus, notification_events
from utils.push import send_push_to_user


class DeliveryGateway:
    """Hands created notifications to the realtime event bus and to web push."""

    def __init__(self, subscriptions: PushSubscriptionRepository, events: NotificationEventBus = notification_events):
        self._subscriptions = subscriptions
        self._events = events

    def emit_event(self, descriptor: Dict[str, Any]) -> None:
        self._events.emit(descriptor)

    async def send_push(self, user_id: str, payload: Dict[str, Any]) -> int:
        return await send_push_to_user(self._subscriptions, user_id, payload)


_gateway = None


def get_gateway() -> DeliveryGateway:
    """FastAPI dependency: the process-wide delivery gateway."""
    global _gateway
    if _gateway is None:
        _gateway = DeliveryGateway(get_store().push_subscriptions)
    return _gateway
