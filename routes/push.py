import time
from fastapi import APIRouter, Depends, HTTPException, Body
from pydantic import ValidationError
from repositories.store import Store
from routes.deps import get_current_user_id, get_db, get_delivery
from utils.delivery import DeliveryGateway
from utils.push import is_web_push_configured
from constants import PUSH_TAG_PREFIX
from config import config
from models.push_subscription import PushSubscriptionModel
from logging_config import get_logger

router = APIRouter(prefix="/api/push", tags=["Push Notifications"])
logger = get_logger("push")

@router.get("/vapid-public-key")
async def get_vapid_public_key():
    """Return the VAPID public key for the frontend to use when subscribing."""
    public_key = config.VAPID_PUBLIC_KEY
    if not public_key:
        raise HTTPException(status_code=500, detail="VAPID_PUBLIC_KEY is not configured on the server")
    return {"public_key": public_key}

@router.post("/subscribe")
async def subscribe_push(
    subscription: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Save a push subscription for the current user."""
    try:
        model = PushSubscriptionModel(
            user_id=user_id,
            endpoint=subscription.get("endpoint"),
            keys=subscription.get("keys"),
        )
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid push subscription payload")

    await db.push_subscriptions.upsert(model)

    logger.info(f"Push subscription saved", extra={"data": {"user_id": user_id}})
    return {"message": "Subscription saved"}

@router.delete("/subscribe")
async def unsubscribe_push(
    subscription: dict = Body(...),
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db)
):
    """Remove a push subscription for the current user."""
    endpoint = subscription.get("endpoint")
    if not endpoint:
        raise HTTPException(status_code=400, detail="Endpoint is required")

    if await db.push_subscriptions.delete(user_id, endpoint):
        logger.info(f"Push subscription removed", extra={"data": {"user_id": user_id}})

    return {"message": "Subscription removed"}

@router.post("/test")
async def send_test_push(
    user_id: str = Depends(get_current_user_id),
    db: Store = Depends(get_db),
    gateway: DeliveryGateway = Depends(get_delivery)
):
    """Send a test push to every device the current user has subscribed."""
    if not is_web_push_configured():
        raise HTTPException(status_code=503, detail="Push notifications are not configured on this server (VAPID keys missing)")

    subscriptions = await db.push_subscriptions.list_for_user(user_id)
    if not subscriptions:
        raise HTTPException(status_code=404, detail="No push subscriptions found. Enable browser push notifications first.")

    sent = await gateway.send_push(user_id, {
        "title": "Test Push Notification",
        "message": "Your push notification pipeline is working end-to-end!",
        "tag": f"{PUSH_TAG_PREFIX}-test-{int(time.time() * 1000)}",
        "url": "/",
    })
    total = len(subscriptions)
    return {
        "sent": sent,
        "total": total,
        "message": f"Push notification sent to {sent} of {total} device(s)" if sent > 0
        else "Push notification failed to send to any device",
    }
