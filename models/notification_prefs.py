from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from datetime import datetime, timezone

from constants import MAX_DUE_DATE_REMINDERS, MAX_REMINDER_DAYS_BEFORE
from utils.time_utils import as_utc, is_valid_timezone

HHMM_PATTERN = r"^([0-1]\d|2[0-3]):[0-5]\d$"


class DueDateReminder(BaseModel):
    """Fire at `time` (user's wall clock) on the day `days_before` days ahead of the due date."""
    days_before: int = Field(ge=0, le=MAX_REMINDER_DAYS_BEFORE)
    time: str = Field(pattern=HHMM_PATTERN)


def default_due_date_reminders() -> List[DueDateReminder]:
    return [
        DueDateReminder(days_before=1, time="09:00"),
        DueDateReminder(days_before=0, time="08:00"),
    ]


def _check_timezone(value: str) -> str:
    if not is_valid_timezone(value):
        raise ValueError(f"Unknown timezone: {value}")
    return value


class NotificationPrefsModel(BaseModel):
    user_id: str
    timezone: str = "UTC"

    # Channels
    enable_in_app_notifications: bool = True
    enable_browser_push: bool = False

    # Quiet hours (user's wall clock)
    quiet_hours_enabled: bool = False
    quiet_hours_start: str = Field(default="22:00", pattern=HHMM_PATTERN)
    quiet_hours_end: str = Field(default="08:00", pattern=HHMM_PATTERN)

    # Due-date reminders
    due_date_reminders: List[DueDateReminder] = Field(
        default_factory=default_due_date_reminders,
        max_length=MAX_DUE_DATE_REMINDERS,
    )

    # Digests
    enable_daily_summary: bool = True
    daily_summary_time: str = Field(default="09:00", pattern=HHMM_PATTERN)
    enable_overdue_summary: bool = True
    overdue_summary_time: str = Field(default="09:00", pattern=HHMM_PATTERN)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def any_channel_enabled(self) -> bool:
        return self.enable_in_app_notifications or self.enable_browser_push


class NotificationPrefsUpdate(BaseModel):
    """PATCH body for the preferences endpoint; only provided fields are applied."""
    timezone: Optional[str] = None
    enable_in_app_notifications: Optional[bool] = None
    enable_browser_push: Optional[bool] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    quiet_hours_end: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    due_date_reminders: Optional[List[DueDateReminder]] = Field(default=None, max_length=MAX_DUE_DATE_REMINDERS)
    enable_daily_summary: Optional[bool] = None
    daily_summary_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    enable_overdue_summary: Optional[bool] = None
    overdue_summary_time: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)

    model_config = ConfigDict(extra="forbid")

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _check_timezone(value)
