from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, ConfigDict
from typing import Optional, Literal
from datetime import date, datetime, timedelta, timezone
from automations.reminder_scheduler import schedule_next_reminder
from models.task import TaskModel
from repositories.store import Store
from routes.deps import get_current_user_id, get_db
from utils import background
from utils.time_utils import as_utc
from logging_config import get_logger

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])
logger = get_logger("tasks")

SNOOZE_DURATION = timedelta(days=1)


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    priority: Literal['low', 'medium', 'high', 'urgent'] = 'medium'
    project_id: Optional[str] = None
    assignee_id: Optional[str] = None
    due_date: Optional[date] = None
    reminder_at: Optional[datetime] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Literal['low', 'medium', 'high', 'urgent']] = None
    project_id: Optional[str] = None
    assignee_id: Optional[str] = None
    due_date: Optional[date] = None
    reminder_at: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


class SnoozeRequest(BaseModel):
    notification_id: Optional[str] = None


# --- HELPERS ---

def due_date_to_utc(value: Optional[date]) -> Optional[datetime]:
    """Due dates are date-only and stored as midnight UTC."""
    if value is None:
        return None
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def schedule_reminder_in_background(db: Store, task_id: str) -> None:
    background.spawn(schedule_next_reminder(db, task_id), f"schedule-reminder:{task_id}")


async def get_task_for_user(db: Store, task_id: str, user_id: str) -> TaskModel:
    task = await db.tasks.get(task_id)
    if task is None or user_id not in task.stakeholders():
        raise HTTPException(status_code=404, detail="Task not found")
    return task


# --- ENDPOINTS ---

@router.post("", status_code=201)
async def create_task(
    payload: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Create a task owned by the current user."""
    task = TaskModel(
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        project_id=payload.project_id,
        user_id=user_id,
        assignee_id=payload.assignee_id,
        due_date=due_date_to_utc(payload.due_date),
        reminder_at=as_utc(payload.reminder_at),
    )
    await db.tasks.insert(task)
    logger.info(f"Task created", extra={"data": {"task_id": task.id}})

    # Auto-schedule from the stakeholders' reminder rules unless a reminder was given explicitly
    if task.due_date and not task.reminder_at:
        schedule_reminder_in_background(db, task.id)

    return task.model_dump(mode="json")


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    task = await get_task_for_user(db, task_id, user_id)
    return task.model_dump(mode="json")


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    updates: TaskUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Update a task. A new due date without an explicit reminder_at reschedules the reminder."""
    task = await get_task_for_user(db, task_id, user_id)

    fields = updates.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    if "due_date" in fields:
        fields["due_date"] = due_date_to_utc(fields["due_date"])
    if "reminder_at" in fields:
        fields["reminder_at"] = as_utc(fields["reminder_at"])

    due_date_changed = "due_date" in fields and fields["due_date"] != task.due_date
    reschedule = due_date_changed and "reminder_at" not in fields
    if reschedule:
        # Clear the old reminder so the scheduler can set one for the new date
        fields["reminder_at"] = None

    await db.tasks.update(task_id, fields)

    if reschedule and fields["due_date"] is not None:
        schedule_reminder_in_background(db, task_id)

    updated = await db.tasks.get(task_id)
    return updated.model_dump(mode="json")


@router.post("/{task_id}/complete")
async def complete_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Mark a task complete (push "Mark Complete" action). Clears any pending reminder."""
    task = await get_task_for_user(db, task_id, user_id)
    if task.completed_at is None:
        await db.tasks.update(task_id, {"completed_at": datetime.now(timezone.utc), "reminder_at": None})
        logger.info(f"Task completed", extra={"data": {"task_id": task_id}})
    updated = await db.tasks.get(task_id)
    return updated.model_dump(mode="json")


@router.post("/{task_id}/snooze")
async def snooze_task(
    task_id: str,
    payload: Optional[SnoozeRequest] = None,
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Remind again in one day (push "Snooze 1 Day" action).

    When the snooze comes from a notification, that notification is marked read and
    snoozed until the new reminder instant.
    """
    await get_task_for_user(db, task_id, user_id)
    reminder_at = datetime.now(timezone.utc) + SNOOZE_DURATION
    await db.tasks.update(task_id, {"reminder_at": reminder_at})
    logger.info(f"Task reminder snoozed", extra={"data": {"task_id": task_id, "reminder_at": reminder_at.isoformat()}})

    if payload and payload.notification_id:
        notification = await db.notifications.update_for_user(
            payload.notification_id, user_id, {"read": True, "snoozed_until": reminder_at}
        )
        if notification is None:
            logger.warning(f"Snoozed notification not found", extra={"data": {"notification_id": payload.notification_id}})

    updated = await db.tasks.get(task_id)
    return {**updated.model_dump(mode="json"), "snoozed_until": reminder_at.isoformat()}
