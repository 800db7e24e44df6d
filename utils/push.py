import asyncio
import json
from typing import Any, Dict

from pywebpush import webpush, WebPushException
from config import config
from logging_config import get_logger
from repositories.push_subscriptions import PushSubscriptionRepository

logger = get_logger("push_utils")


def is_web_push_configured() -> bool:
    return bool(config.VAPID_PUBLIC_KEY and config.VAPID_PRIVATE_KEY and config.VAPID_CLAIM_EMAIL)


async def send_push_to_user(
    subscriptions: PushSubscriptionRepository,
    user_id: str,
    payload: Dict[str, Any],
) -> int:
    """
    Send a Web Push Notification to all active subscriptions for a user.
    Returns the number of successful pushes.
    """
    if not is_web_push_configured():
        logger.warning("VAPID keys not configured. Skipping push notification.")
        return 0

    user_subscriptions = await subscriptions.list_for_user(user_id)
    if not user_subscriptions:
        return 0

    vapid_claims = {
        "sub": config.VAPID_CLAIM_EMAIL
    }
    data = json.dumps(payload, default=str)

    success_count = 0
    endpoints_to_remove = []

    for sub in user_subscriptions:
        try:
            # pywebpush is synchronous; keep it off the event loop
            await asyncio.to_thread(
                webpush,
                subscription_info={"endpoint": sub.endpoint, "keys": sub.keys.model_dump()},
                data=data,
                vapid_private_key=config.VAPID_PRIVATE_KEY,
                vapid_claims=dict(vapid_claims),
            )
            success_count += 1
        except WebPushException as ex:
            # 410 Gone / 404 Not Found: the subscription is expired or was revoked
            if ex.response is not None and ex.response.status_code in (410, 404):
                endpoints_to_remove.append(sub.endpoint)
            else:
                logger.error(f"Failed to send Web Push: {repr(ex)}", extra={"data": {"user_id": user_id}})

    if endpoints_to_remove:
        removed = await subscriptions.delete_endpoints(user_id, endpoints_to_remove)
        logger.info(f"Removed {removed} expired push subscriptions for user {user_id}")

    return success_count
