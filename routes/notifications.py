from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime
from automations.scheduler import notification_worker
from repositories.store import Store
from routes.deps import get_current_user_id, get_db, get_delivery
from utils.delivery import DeliveryGateway
from logging_config import get_logger

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])
logger = get_logger("notifications")


class NotificationUpdate(BaseModel):
    read: Optional[bool] = None
    dismissed: Optional[bool] = None
    snoozed_until: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


@router.get("", response_model=List[dict])
async def get_notifications(
    unread_only: bool = False,
    dismissed: Optional[bool] = None,
    type: Optional[str] = Query(default=None, description="Comma separated notification types"),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Get notifications for the current user, newest first."""
    types = [t for t in type.split(",") if t] if type else None
    notifications = await db.notifications.list_for_user(
        user_id, unread_only=unread_only, types=types, limit=limit, dismissed=dismissed
    )
    return [n.model_dump(mode="json") for n in notifications]


@router.get("/unread-count")
async def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Get count of unread notifications."""
    count = await db.notifications.count_unread(user_id)
    return {"count": count}


@router.patch("/{notification_id}")
async def update_notification(
    notification_id: str,
    updates: NotificationUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Mark a notification read/dismissed or snooze it."""
    fields = updates.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    notification = await db.notifications.update_for_user(notification_id, user_id, fields)
    if notification is None:
        logger.warning(f"Notification not found for update", extra={"data": {"notification_id": notification_id}})
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification.model_dump(mode="json")


@router.post("/mark-all-read")
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Mark all notifications as read for the current user."""
    updated = await db.notifications.mark_all_read(user_id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.post("/check-due-dates")
async def check_due_dates(
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db),
    gateway: DeliveryGateway = Depends(get_delivery)
):
    """Run the notification sweep now, scoped to the current user."""
    counts = await notification_worker.run_now(db, gateway, scope_user_id=user_id)
    logger.info(f"Manual notification check", extra={"data": counts})
    return {"created": sum(counts.values()), **counts}
