from fastapi import APIRouter, Depends, HTTPException
from models.notification_prefs import NotificationPrefsUpdate
from automations.reminder_scheduler import recalculate_reminders_for_user
from repositories.store import Store
from routes.deps import get_current_user_id, get_db
from logging_config import get_logger

router = APIRouter(prefix="/api/settings", tags=["Settings"])
logger = get_logger("settings")

# Changing any of these moves reminder instants on the user's open tasks
REMINDER_FIELDS = {"due_date_reminders", "timezone"}


@router.get("/notifications")
async def get_notification_prefs(user_id: str = Depends(get_current_user_id), db: Store = Depends(get_db)):
    """Get current user's notification preferences, creating defaults on first access."""
    prefs = await db.preferences.get_or_create(user_id)
    if prefs is None:
        raise HTTPException(status_code=500, detail="Failed to load notification preferences")
    return prefs.model_dump(mode="json")


@router.patch("/notifications")
async def update_notification_prefs(
    updates: NotificationPrefsUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Update current user's notification preferences."""
    fields = updates.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    before = await db.preferences.get_or_create(user_id)
    prefs = await db.preferences.update(user_id, fields)
    if prefs is None:
        raise HTTPException(status_code=500, detail="Failed to update notification preferences")

    logger.info(
        f"Notification prefs updated",
        extra={"data": {"user_id": user_id, "fields": list(fields.keys())}}
    )

    changed = {
        field for field in REMINDER_FIELDS & fields.keys()
        if before is None or getattr(before, field) != getattr(prefs, field)
    }
    recalculated = 0
    if changed:
        recalculated = await recalculate_reminders_for_user(db, user_id)

    return {**prefs.model_dump(mode="json"), "recalculated_tasks": recalculated}
