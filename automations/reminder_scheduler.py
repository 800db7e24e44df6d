from datetime import date, datetime, timedelta
from typing import List, Optional

from logging_config import get_logger
from models.notification_prefs import DueDateReminder
from repositories.store import Store
from utils.time_utils import as_utc, resolve_wall_time, utcnow

logger = get_logger("reminder_scheduler")


def compute_reminder_instant(due_date: datetime, reminder: DueDateReminder, timezone: str) -> datetime:
    """
    Absolute UTC instant for a due-date reminder: `reminder.time` on the wall clock of
    `timezone`, `reminder.days_before` calendar days ahead of the due date.

    Due dates are date-only and stored as midnight UTC, so the calendar date comes from
    the UTC components. Converting the due date into `timezone` first would move it to the
    previous day for every zone behind UTC.
    """
    due_utc = as_utc(due_date)
    target_day = date(due_utc.year, due_utc.month, due_utc.day) - timedelta(days=reminder.days_before)
    return resolve_wall_time(target_day, reminder.time, timezone)


async def schedule_next_reminder(store: Store, task_id: str, now: Optional[datetime] = None) -> None:
    """
    Set the task's reminder_at to the soonest future reminder across the owner's and the
    assignee's rules, each computed in that user's own timezone.

    Does nothing if:
    - The task doesn't exist or has no due date
    - The task already has a reminder_at (system or user set, never overwritten here)
    - No stakeholder has reminder rules, or every rule instant is already past
    """
    task = await store.tasks.get(task_id)
    if task is None or task.reminder_at is not None or task.due_date is None:
        return

    now = as_utc(now) if now else utcnow()
    prefs = await store.preferences.find_many(task.stakeholders())

    future: List[datetime] = []
    for pref in prefs:
        timezone = pref.timezone or "UTC"
        for reminder in pref.due_date_reminders:
            instant = compute_reminder_instant(task.due_date, reminder, timezone)
            if instant > now:
                future.append(instant)

    if not future:
        return

    reminder_at = min(future)
    await store.tasks.update(task_id, {"reminder_at": reminder_at})
    logger.debug(f"Scheduled reminder for task {task_id} at {reminder_at.isoformat()}")


async def recalculate_reminders_for_user(store: Store, user_id: str, now: Optional[datetime] = None) -> int:
    """
    Reset reminder_at on every open, future-due task the user owns or is assigned to, then
    schedule each one again. Called when the user's reminder rules or timezone change.
    Returns the number of tasks touched.
    """
    now = as_utc(now) if now else utcnow()
    tasks = await store.tasks.find_open_future_for_user(user_id, now)
    if not tasks:
        return 0

    task_ids = [task.id for task in tasks]
    # Intentional reset: bypasses the never-overwrite rule in schedule_next_reminder
    await store.tasks.clear_reminders(task_ids)

    for task_id in task_ids:
        await schedule_next_reminder(store, task_id, now=now)

    logger.info(
        f"Recalculated reminders for {len(task_ids)} tasks",
        extra={"data": {"user_id": user_id}}
    )
    return len(task_ids)
