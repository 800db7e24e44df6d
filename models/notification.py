from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime, timezone
import uuid

from utils.time_utils import as_utc


class NotificationModel(BaseModel):
    """In-app notification: reminders, overdue alerts and daily digests."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str  # Who receives the notification
    task_id: Optional[str] = None
    type: str  # see constants.NotificationTypes

    # Content
    title: str
    message: str

    # Context
    metadata: dict = Field(default_factory=dict)  # Task previews, counts, summary dates

    # State
    read: bool = False
    dismissed: bool = False
    scheduled_for: Optional[datetime] = None  # the reminder instant that fired
    sent_at: Optional[datetime] = None
    snoozed_until: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("scheduled_for", "sent_at", "snoozed_until", "created_at")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)
