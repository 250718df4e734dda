from datetime import datetime
from typing import Dict, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from hashview_chat.models.user import UserDocument
from hashview_chat.repositories.message_repository import to_object_id
from hashview_chat.utils.time import from_storage, to_storage


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("email", ASCENDING)], unique=True)

    async def create_user(self, email: str, hashed_password: str, name: str) -> str:

        doc = {"email": email, "hashed_password": hashed_password, "name": name, "is_active": True, "last_seen": None}
        result = await self._collection.insert_one(doc)
        return str(result.inserted_id)

    async def get_user_by_email(self, email: str) -> Optional[UserDocument]:

        user = await self._collection.find_one({"email": email})
        return self._normalize(user) if user else None

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:

        oid = to_object_id(user_id)
        if oid is None:
            return None
        user = await self._collection.find_one({"_id": oid})
        return self._normalize(user) if user else None

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, UserDocument]:
        oids = [oid for oid in (to_object_id(uid) for uid in set(user_ids)) if oid is not None]
        if not oids:
            return {}
        cur = self._collection.find({"_id": {"$in": oids}}, {"hashed_password": 0})
        users = [self._normalize(u) for u in await cur.to_list(length=len(oids))]
        return {u["_id"]: u for u in users}

    async def touch_last_seen(self, user_id: str, when: datetime) -> None:
        await self._collection.update_one({"_id": to_object_id(user_id)}, {"$set": {"last_seen": to_storage(when)}})

    def _normalize(self, user: dict) -> UserDocument:
        user["_id"] = str(user["_id"])  # normalize to string for API layer
        user["last_seen"] = from_storage(user.get("last_seen"))
        return user  # type: ignore[return-value]
