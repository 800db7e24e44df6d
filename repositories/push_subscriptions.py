from typing import Iterable, List

from models.push_subscription import PushSubscriptionModel


class PushSubscriptionRepository:

    def __init__(self, collection):
        self._collection = collection

    async def list_for_user(self, user_id: str, limit: int = 10) -> List[PushSubscriptionModel]:
        docs = await self._collection.find({"user_id": user_id}).to_list(limit)
        return [PushSubscriptionModel(**doc) for doc in docs]

    async def upsert(self, subscription: PushSubscriptionModel) -> None:
        # The endpoint is the unique identifier of a browser subscription
        await self._collection.update_one(
            {"user_id": subscription.user_id, "endpoint": subscription.endpoint},
            {
                "$set": {"keys": subscription.keys.model_dump()},
                "$setOnInsert": {"created_at": subscription.created_at},
            },
            upsert=True
        )

    async def delete(self, user_id: str, endpoint: str) -> bool:
        result = await self._collection.delete_one({"user_id": user_id, "endpoint": endpoint})
        return result.deleted_count > 0

    async def delete_endpoints(self, user_id: str, endpoints: Iterable[str]) -> int:
        endpoints = list(endpoints)
        if not endpoints:
            return 0
        result = await self._collection.delete_many({
            "user_id": user_id,
            "endpoint": {"$in": endpoints}
        })
        return result.deleted_count
