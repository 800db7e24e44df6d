"""In-process notification event bus.

Realtime transports (SSE, websockets) subscribe here; the worker only emits.
"""

from typing import Any, Callable, Dict, List

from logging_config import get_logger

logger = get_logger("event_bus")

Listener = Callable[[Dict[str, Any]], None]


class NotificationEventBus:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: Dict[str, Any]) -> None:
        """Deliver `event` to every listener. A failing listener is logged and skipped."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Notification event listener failed",
                    extra={"data": {"user_id": event.get("user_id"), "type": event.get("type")}}
                )


notification_events = NotificationEventBus()
