from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from hashview_chat.models.device import DeviceDocument
from hashview_chat.utils.time import to_storage, utcnow


class DeviceRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["devices"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("user_id", ASCENDING), ("platform", ASCENDING), ("token", ASCENDING)], unique=True)

    async def register(self, user_id: str, platform: str, token: str) -> DeviceDocument:
        now = to_storage(utcnow())
        await self.collection.update_one(
            {"user_id": user_id, "platform": platform, "token": token},
            {"$set": {"last_seen_at": now}, "$setOnInsert": {"registered_at": now}},
            upsert=True,
        )
        return {"user_id": user_id, "platform": platform, "token": token}  # type: ignore[typeddict-item]

    async def unregister(self, user_id: str, token: str) -> bool:
        result = await self.collection.delete_many({"user_id": user_id, "token": token})
        return result.deleted_count > 0

    async def get_tokens(self, user_id: str, platform: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"user_id": user_id}
        if platform:
            query["platform"] = platform
        cur = self.collection.find(query)
        return await cur.to_list(length=100)
