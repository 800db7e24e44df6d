"""
Notification sweep: reminders, overdue alerts, daily summaries and overdue digests.

Runs on a fixed interval over every user (see automations/scheduler.py) and on demand
for a single user. Phases run one after another and tasks are visited in a plain loop;
all lookups a loop needs (preferences, dedup sets) are batch-loaded before it starts.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

from pymongo.errors import PyMongoError

from automations.reminder_scheduler import schedule_next_reminder
from constants import (
    DAILY_SUMMARY_PREVIEW_LIMIT,
    DIGEST_LOOKBACK_HOURS,
    OVERDUE_DIGEST_MESSAGE_LIMIT,
    OVERDUE_DIGEST_PREVIEW_LIMIT,
    PUSH_TAG_PREFIX,
    NotificationTypes,
)
from logging_config import get_logger, sweep_var
from models.notification import NotificationModel
from models.notification_prefs import NotificationPrefsModel
from models.task import TaskModel
from repositories.store import Store
from utils import background
from utils.delivery import DeliveryGateway
from utils.time_utils import (
    as_utc,
    hhmm_to_minutes,
    is_within_quiet_hours,
    local_date_string,
    local_day_bounds_utc,
    minutes_in_timezone,
    utcnow,
)

logger = get_logger("notification_worker")

# Push actions for single-task notifications (reminder/overdue)
TASK_PUSH_ACTIONS = [
    {"action": "complete", "title": "Mark Complete"},
    {"action": "snooze", "title": "Snooze 1 Day"},
]

PrefsMap = Dict[str, NotificationPrefsModel]


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _instant_key(value: Optional[datetime]) -> str:
    value = as_utc(value)
    return value.isoformat(timespec="milliseconds") if value else ""


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def should_skip_user(
    prefs: Optional[NotificationPrefsModel],
    now: datetime,
    require_overdue_enabled: bool = False,
) -> bool:
    """True when this user must not be notified right now."""
    if prefs is None:
        return True
    if not prefs.any_channel_enabled:
        return True
    if require_overdue_enabled and not prefs.enable_overdue_summary:
        return True
    return is_within_quiet_hours(
        now,
        prefs.quiet_hours_enabled,
        prefs.quiet_hours_start,
        prefs.quiet_hours_end,
        prefs.timezone or "UTC",
    )


def collect_user_ids(tasks: Iterable[TaskModel]) -> List[str]:
    """Unique owners and assignees across a batch, in first-seen order."""
    seen: Set[str] = set()
    ids: List[str] = []
    for task in tasks:
        for user_id in task.stakeholders():
            if user_id not in seen:
                seen.add(user_id)
                ids.append(user_id)
    return ids


async def load_preferences_map(store: Store, user_ids: List[str]) -> PrefsMap:
    """
    Batch-load preferences for a set of users. Users without a record get a default one,
    so notifications work before anyone has opened the settings page.
    """
    if not user_ids:
        return {}
    prefs = await store.preferences.find_many(user_ids)
    prefs_map = {p.user_id: p for p in prefs}

    for user_id in user_ids:
        if user_id in prefs_map:
            continue
        try:
            created = await store.preferences.create(user_id)
        except PyMongoError:
            logger.exception(
                "Failed to create default preferences",
                extra={"data": {"user_id": user_id}}
            )
            continue
        if created is not None:
            prefs_map[user_id] = created

    return prefs_map


def build_push_payload(
    notification: NotificationModel,
    project_id: Optional[str] = None,
) -> dict:
    payload = {
        "title": notification.title,
        "message": notification.message,
        "notification_id": notification.id,
        "task_id": notification.task_id,
        "tag": f"{PUSH_TAG_PREFIX}-{notification.id}",
        "url": f"/projects/{project_id}" if project_id else "/",
    }
    if notification.type in NotificationTypes.SINGLE_TASK:
        payload["actions"] = TASK_PUSH_ACTIONS
        payload["notification_type"] = notification.type
    return payload


async def _send_push(gateway: DeliveryGateway, user_id: str, payload: dict) -> None:
    try:
        await gateway.send_push(user_id, payload)
    except Exception:
        logger.exception(f"Push failed for user {user_id}", extra={"data": {"user_id": user_id}})


def emit_notification(
    gateway: DeliveryGateway,
    notification: NotificationModel,
    push_enabled: bool,
    project_id: Optional[str] = None,
) -> None:
    """Publish the realtime event and, if the user allows it, send a web push in the background."""
    gateway.emit_event({
        "type": notification.type,
        "notification_id": notification.id,
        "user_id": notification.user_id,
        "task_id": notification.task_id,
        "title": notification.title,
        "message": notification.message,
        "metadata": notification.metadata,
        "timestamp": notification.created_at.isoformat(),
    })

    if push_enabled:
        background.spawn(
            _send_push(gateway, notification.user_id, build_push_payload(notification, project_id)),
            f"push:{notification.user_id}:{notification.id}",
        )


async def _reschedule(store: Store, task_id: str, now: datetime) -> None:
    try:
        await schedule_next_reminder(store, task_id, now=now)
    except Exception:
        logger.exception(
            f"Failed to schedule next reminder for task {task_id}",
            extra={"data": {"task_id": task_id}}
        )


def _task_metadata(task: TaskModel) -> dict:
    return {
        "priority": task.priority,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "project_id": task.project_id,
    }


async def _load_sent_dates(
    store: Store,
    prefs: List[NotificationPrefsModel],
    notification_type: str,
    date_field: str,
    now: datetime,
) -> Dict[str, Set[str]]:
    """user_id -> local dates that already got this digest, from a recent-history window."""
    since = now - timedelta(hours=DIGEST_LOOKBACK_HOURS)
    existing = await store.notifications.find_recent_for_users(
        [p.user_id for p in prefs], notification_type, since
    )
    sent: Dict[str, Set[str]] = {}
    for notification in existing:
        date_str = (notification.metadata or {}).get(date_field)
        if date_str:
            sent.setdefault(notification.user_id, set()).add(date_str)
    return sent


def _digest_due(pref: NotificationPrefsModel, send_time: str, now: datetime) -> bool:
    """Past the configured time-of-day and outside quiet hours, both in the user's timezone."""
    timezone = pref.timezone or "UTC"
    if minutes_in_timezone(now, timezone) < hhmm_to_minutes(send_time):
        return False
    return not is_within_quiet_hours(
        now,
        pref.quiet_hours_enabled,
        pref.quiet_hours_start,
        pref.quiet_hours_end,
        timezone,
    )


# ─── Phases ──────────────────────────────────────────────────────────────────

async def process_reminders(store: Store, gateway: DeliveryGateway, now: datetime, scope_user_id: Optional[str] = None) -> int:
    """
    Fire pending reminders (reminder_at <= now) for owner and assignee, then clear
    reminder_at (one-shot) and schedule the next rule's instant in the background.
    """
    tasks = await store.tasks.find_reminders_due(now, scope_user_id)
    if not tasks:
        return 0

    prefs_map = await load_preferences_map(store, collect_user_ids(tasks))

    existing = await store.notifications.find_for_tasks([t.id for t in tasks], NotificationTypes.REMINDER)
    # The fired instant is part of the key: a reminder rescheduled to a new instant is a new occurrence
    existing_keys = {
        f"{n.task_id}_{n.user_id}_{_instant_key(n.scheduled_for)}" for n in existing
    }

    created = 0
    for task in tasks:
        for user_id in task.stakeholders():
            prefs = prefs_map.get(user_id)
            if should_skip_user(prefs, now):
                continue

            dedup_key = f"{task.id}_{user_id}_{_instant_key(task.reminder_at)}"
            if dedup_key in existing_keys:
                continue

            notification = await store.notifications.create(NotificationModel(
                user_id=user_id,
                task_id=task.id,
                type=NotificationTypes.REMINDER,
                created_at=now,
                title="Task reminder",
                message=f'"{task.title}" needs your attention.',
                scheduled_for=task.reminder_at,
                metadata=_task_metadata(task),
            ))
            existing_keys.add(dedup_key)
            emit_notification(gateway, notification, prefs.enable_browser_push, task.project_id)
            created += 1

        await store.tasks.update(task.id, {"reminder_at": None})
        background.spawn(_reschedule(store, task.id, now), f"reschedule:{task.id}")

    return created


async def process_overdue(store: Store, gateway: DeliveryGateway, now: datetime, scope_user_id: Optional[str] = None) -> int:
    """One overdue notification per task and user, ever, for open tasks due before now."""
    tasks = await store.tasks.find_overdue(now, scope_user_id)
    if not tasks:
        return 0

    prefs_map = await load_preferences_map(store, collect_user_ids(tasks))

    existing = await store.notifications.find_for_tasks([t.id for t in tasks], NotificationTypes.OVERDUE)
    existing_keys = {f"{n.task_id}_{n.user_id}" for n in existing}

    created = 0
    for task in tasks:
        for user_id in task.stakeholders():
            prefs = prefs_map.get(user_id)
            if should_skip_user(prefs, now, require_overdue_enabled=True):
                continue

            dedup_key = f"{task.id}_{user_id}"
            if dedup_key in existing_keys:
                continue

            notification = await store.notifications.create(NotificationModel(
                user_id=user_id,
                task_id=task.id,
                type=NotificationTypes.OVERDUE,
                created_at=now,
                title="Task is overdue",
                message=f'"{task.title}" is overdue and needs your attention.',
                metadata=_task_metadata(task),
            ))
            existing_keys.add(dedup_key)
            emit_notification(gateway, notification, prefs.enable_browser_push, task.project_id)
            created += 1

    return created


async def process_daily_summary(store: Store, gateway: DeliveryGateway, now: datetime, scope_user_id: Optional[str] = None) -> int:
    """
    Once per local calendar day, after the user's daily summary time: one notification
    counting tasks due today and overdue tasks (owner or assignee), with previews.
    """
    prefs = await store.preferences.find_digest_candidates("enable_daily_summary", scope_user_id)
    if not prefs:
        return 0

    sent_dates = await _load_sent_dates(store, prefs, NotificationTypes.DAILY_SUMMARY, "summary_date", now)

    created = 0
    for pref in prefs:
        timezone = pref.timezone or "UTC"
        if not _digest_due(pref, pref.daily_summary_time, now):
            continue

        today_str = local_date_string(now, timezone)
        if today_str in sent_dates.get(pref.user_id, set()):
            continue

        today_start, tomorrow_start = local_day_bounds_utc(now, timezone)
        due_today = await store.tasks.find_due_between(pref.user_id, today_start, tomorrow_start)
        overdue = await store.tasks.find_due_before(pref.user_id, today_start)

        if not due_today and not overdue:
            continue

        parts = []
        if due_today:
            parts.append(f"{_plural(len(due_today), 'task')} due today")
        if overdue:
            parts.append(f"{_plural(len(overdue), 'overdue task')}")

        notification = await store.notifications.create(NotificationModel(
            user_id=pref.user_id,
            type=NotificationTypes.DAILY_SUMMARY,
            created_at=now,
            title="Daily Summary",
            message=f"You have {' and '.join(parts)}.",
            metadata={
                "summary_date": today_str,
                "due_today_count": len(due_today),
                "overdue_count": len(overdue),
                "total_count": len(due_today) + len(overdue),
                "due_today_tasks": [t.preview() for t in due_today[:DAILY_SUMMARY_PREVIEW_LIMIT]],
                "overdue_tasks": [t.preview() for t in overdue[:DAILY_SUMMARY_PREVIEW_LIMIT]],
            },
        ))
        sent_dates.setdefault(pref.user_id, set()).add(today_str)
        emit_notification(gateway, notification, pref.enable_browser_push)
        created += 1

    return created


async def process_overdue_digest(store: Store, gateway: DeliveryGateway, now: datetime, scope_user_id: Optional[str] = None) -> int:
    """
    Once per local calendar day, after the user's overdue summary time: one notification
    listing overdue tasks soonest-due first, with days overdue counted from the user's today.
    """
    prefs = await store.preferences.find_digest_candidates("enable_overdue_summary", scope_user_id)
    if not prefs:
        return 0

    sent_dates = await _load_sent_dates(store, prefs, NotificationTypes.OVERDUE_DIGEST, "overdue_summary_date", now)

    created = 0
    for pref in prefs:
        timezone = pref.timezone or "UTC"
        if not _digest_due(pref, pref.overdue_summary_time, now):
            continue

        today_str = local_date_string(now, timezone)
        if today_str in sent_dates.get(pref.user_id, set()):
            continue

        today_start, _ = local_day_bounds_utc(now, timezone)
        overdue = await store.tasks.find_due_before(pref.user_id, today_start)
        overdue_count = len(overdue)
        if overdue_count == 0:
            continue

        previews = []
        for task in overdue[:OVERDUE_DIGEST_PREVIEW_LIMIT]:
            previews.append({
                **task.preview(),
                "due_date": task.due_date.isoformat(),
                "days_overdue": (today_start - task.due_date) // timedelta(days=1),
            })

        task_list = ", ".join(
            f"{p['title']} ({p['days_overdue']}d overdue)" for p in previews[:OVERDUE_DIGEST_MESSAGE_LIMIT]
        )
        if overdue_count <= OVERDUE_DIGEST_MESSAGE_LIMIT:
            message = f"You have {_plural(overdue_count, 'overdue task')}: {task_list}"
        else:
            remaining = overdue_count - OVERDUE_DIGEST_MESSAGE_LIMIT
            message = f"You have {overdue_count} overdue tasks: {task_list}, and {remaining} more"

        notification = await store.notifications.create(NotificationModel(
            user_id=pref.user_id,
            type=NotificationTypes.OVERDUE_DIGEST,
            created_at=now,
            title="Overdue Tasks Summary",
            message=message,
            metadata={
                "overdue_summary_date": today_str,
                "overdue_count": overdue_count,
                "tasks": previews,
            },
        ))
        sent_dates.setdefault(pref.user_id, set()).add(today_str)
        emit_notification(gateway, notification, pref.enable_browser_push)
        created += 1

    return created


# ─── Entry point ─────────────────────────────────────────────────────────────

async def process_notifications(
    store: Store,
    gateway: DeliveryGateway,
    scope_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Run all four phases in sequence. Called by the interval worker (no user = everyone)
    and by the check-due-dates endpoint (scoped to the caller).
    """
    now = as_utc(now) if now else utcnow()

    sweep_token = sweep_var.set(scope_user_id or "all")
    try:
        reminders = await process_reminders(store, gateway, now, scope_user_id)
        overdue = await process_overdue(store, gateway, now, scope_user_id)
        daily_summaries = await process_daily_summary(store, gateway, now, scope_user_id)
        overdue_digests = await process_overdue_digest(store, gateway, now, scope_user_id)
    finally:
        sweep_var.reset(sweep_token)

    counts = {
        "reminders": reminders,
        "overdue": overdue,
        "daily_summaries": daily_summaries,
        "overdue_digests": overdue_digests,
    }
    total = sum(counts.values())
    if total > 0:
        logger.info(f"Created {total} notifications", extra={"data": {**counts, "scope_user_id": scope_user_id}})
    return counts
