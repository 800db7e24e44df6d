from datetime import datetime, timezone

import pytest

from automations.reminder_scheduler import (
    compute_reminder_instant,
    recalculate_reminders_for_user,
    schedule_next_reminder,
)
from models.notification_prefs import DueDateReminder

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ── Instant calculation ───────────────────────────────────────────────────────

@pytest.mark.parametrize("due_date, days_before, time, tz, expected", [
    (utc(2026, 3, 15), 1, "09:00", "UTC", utc(2026, 3, 14, 9, 0)),
    (utc(2026, 1, 20), 1, "09:00", "America/New_York", utc(2026, 1, 19, 14, 0)),
    (utc(2026, 3, 2), 3, "09:00", "UTC", utc(2026, 2, 27, 9, 0)),
    (utc(2026, 2, 1), 1, "20:00", "Asia/Tokyo", utc(2026, 1, 31, 11, 0)),
    (utc(2026, 2, 1), 0, "01:00", "America/New_York", utc(2026, 2, 1, 6, 0)),
])
def test_compute_reminder_instant(due_date, days_before, time, tz, expected):
    reminder = DueDateReminder(days_before=days_before, time=time)
    assert compute_reminder_instant(due_date, reminder, tz) == expected


def test_due_date_keeps_its_calendar_day_behind_utc():
    # Midnight UTC on the 20th is still the 19th in Los Angeles; the reminder must key off the 20th
    reminder = DueDateReminder(days_before=0, time="09:00")
    assert compute_reminder_instant(utc(2026, 1, 20), reminder, "America/Los_Angeles") == utc(2026, 1, 20, 17, 0)


# ── Scheduling ────────────────────────────────────────────────────────────────

async def test_schedules_soonest_future_instant(store):
    store.preferences.add("user_1")  # defaults: 1 day before at 09:00, same day at 08:00
    task = store.tasks.add(due_date=utc(2026, 3, 15))

    await schedule_next_reminder(store, task.id, now=NOW)

    assert store.tasks.tasks[task.id].reminder_at == utc(2026, 3, 14, 9, 0)


async def test_skips_instants_already_in_the_past(store):
    store.preferences.add("user_1")
    task = store.tasks.add(due_date=utc(2026, 3, 11))

    await schedule_next_reminder(store, task.id, now=utc(2026, 3, 10, 10, 0))

    # The 09:00 instant on the 10th has passed; the 08:00 one on the 11th is next
    assert store.tasks.tasks[task.id].reminder_at == utc(2026, 3, 11, 8, 0)


async def test_no_future_instant_leaves_reminder_unset(store):
    store.preferences.add("user_1")
    task = store.tasks.add(due_date=utc(2026, 3, 10))

    await schedule_next_reminder(store, task.id, now=NOW)

    assert store.tasks.tasks[task.id].reminder_at is None


async def test_existing_reminder_is_never_overwritten(store):
    store.preferences.add("user_1")
    task = store.tasks.add(due_date=utc(2026, 3, 15), reminder_at=utc(2026, 3, 12, 17, 30))

    await schedule_next_reminder(store, task.id, now=NOW)

    assert store.tasks.tasks[task.id].reminder_at == utc(2026, 3, 12, 17, 30)


async def test_missing_task_or_due_date_is_a_no_op(store):
    store.preferences.add("user_1")
    task = store.tasks.add(due_date=None)

    await schedule_next_reminder(store, "missing-task", now=NOW)
    await schedule_next_reminder(store, task.id, now=NOW)

    assert store.tasks.tasks[task.id].reminder_at is None


async def test_users_without_preferences_get_no_reminder(store):
    task = store.tasks.add(due_date=utc(2026, 3, 15))

    await schedule_next_reminder(store, task.id, now=NOW)

    assert store.tasks.tasks[task.id].reminder_at is None
    assert store.preferences.create_calls == []


async def test_soonest_instant_across_owner_and_assignee(store):
    store.preferences.add("owner", due_date_reminders=[{"days_before": 1, "time": "09:00"}])
    store.preferences.add(
        "assignee",
        timezone="Asia/Tokyo",
        due_date_reminders=[{"days_before": 1, "time": "09:00"}],
    )
    task = store.tasks.add(user_id="owner", assignee_id="assignee", due_date=utc(2026, 3, 15))

    await schedule_next_reminder(store, task.id, now=NOW)

    # 09:00 in Tokyo on the 14th is midnight UTC, ahead of the owner's 09:00 UTC
    assert store.tasks.tasks[task.id].reminder_at == utc(2026, 3, 14, 0, 0)


async def test_user_with_no_rules_contributes_nothing(store):
    store.preferences.add("owner", due_date_reminders=[])
    store.preferences.add("assignee", due_date_reminders=[{"days_before": 2, "time": "18:00"}])
    task = store.tasks.add(user_id="owner", assignee_id="assignee", due_date=utc(2026, 3, 15))

    await schedule_next_reminder(store, task.id, now=NOW)

    assert store.tasks.tasks[task.id].reminder_at == utc(2026, 3, 13, 18, 0)


# ── Recalculation ─────────────────────────────────────────────────────────────

async def test_recalculate_resets_open_future_tasks(store):
    store.preferences.add("user_1", due_date_reminders=[{"days_before": 2, "time": "10:00"}])
    future = store.tasks.add(due_date=utc(2026, 3, 20), reminder_at=utc(2026, 3, 19, 9, 0))
    assigned = store.tasks.add(user_id="someone", assignee_id="user_1", due_date=utc(2026, 3, 25))
    done = store.tasks.add(
        due_date=utc(2026, 3, 20),
        reminder_at=utc(2026, 3, 19, 9, 0),
        completed_at=utc(2026, 3, 9),
    )
    past = store.tasks.add(due_date=utc(2026, 3, 1), reminder_at=utc(2026, 3, 1, 8, 0))
    other = store.tasks.add(user_id="user_2", due_date=utc(2026, 3, 20), reminder_at=utc(2026, 3, 19, 9, 0))

    count = await recalculate_reminders_for_user(store, "user_1", now=NOW)

    assert count == 2
    assert store.tasks.tasks[future.id].reminder_at == utc(2026, 3, 18, 10, 0)
    assert store.tasks.tasks[assigned.id].reminder_at == utc(2026, 3, 23, 10, 0)
    # Completed, past-due and unrelated tasks are left alone
    assert store.tasks.tasks[done.id].reminder_at == utc(2026, 3, 19, 9, 0)
    assert store.tasks.tasks[past.id].reminder_at == utc(2026, 3, 1, 8, 0)
    assert store.tasks.tasks[other.id].reminder_at == utc(2026, 3, 19, 9, 0)


async def test_recalculate_with_nothing_to_do(store):
    assert await recalculate_reminders_for_user(store, "user_1", now=NOW) == 0
