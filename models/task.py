from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, Literal
from datetime import datetime, timezone
import uuid

from utils.time_utils import as_utc


class TaskModel(BaseModel):
    # Core Fields
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: Optional[str] = None
    priority: Literal['low', 'medium', 'high', 'urgent'] = 'medium'

    # Relations
    project_id: Optional[str] = None

    # Ownership
    user_id: str                      # owner
    assignee_id: Optional[str] = None

    # Timing
    due_date: Optional[datetime] = None      # date-only, stored as midnight UTC
    reminder_at: Optional[datetime] = None   # one-shot pending reminder instant
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore"
    )

    @field_validator("due_date", "reminder_at", "completed_at", "created_at", "updated_at")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def stakeholders(self) -> list[str]:
        """Owner, plus the assignee when it is a different user."""
        users = [self.user_id]
        if self.assignee_id and self.assignee_id != self.user_id:
            users.append(self.assignee_id)
        return users

    def preview(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "priority": self.priority,
            "project_id": self.project_id,
        }
