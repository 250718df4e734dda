import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from hashview_chat.core.exceptions import ValidationError
from hashview_chat.models.conversation import ConversationDocument
from hashview_chat.models.message import MessageDocument
from hashview_chat.repositories.message_repository import to_object_id
from hashview_chat.utils.time import from_storage, to_storage, utcnow


logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200
MEDIA_PLACEHOLDERS = {"image": "📷 Image", "file": "📎 File"}


def direct_key(user_a: str, user_b: str) -> str:
    first, second = sorted([user_a, user_b])
    return f"direct:{first}:{second}"


def message_preview(message: MessageDocument) -> str:
    text = message.get("text")
    if text:
        return text[:PREVIEW_LENGTH]
    return MEDIA_PLACEHOLDERS.get(message.get("type", ""), MEDIA_PLACEHOLDERS["file"])


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participant_key", ASCENDING)], unique=True)
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("last_timestamp", DESCENDING)])

    async def find_or_create_direct(self, user_a: str, user_b: str) -> ConversationDocument:
        if user_a == user_b:
            raise ValidationError("Cannot start a conversation with yourself")
        key = direct_key(user_a, user_b)
        existing = await self._reactivate(key)
        if existing:
            return existing
        now = to_storage(utcnow())
        doc = self._new_document(key, "direct", [user_a, user_b], None, now)
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            # a concurrent call created the pair first
            logger.debug("Direct conversation %s created concurrently, reusing it", key)
            existing = await self._reactivate(key)
            if existing is None:
                raise
            return existing
        doc["_id"] = result.inserted_id
        return self._normalize(doc)

    async def create_group(self, creator_id: str, participant_ids: Iterable[str], name: Optional[str] = None) -> ConversationDocument:
        participants = list(dict.fromkeys([creator_id, *participant_ids]))
        if len(participants) < 3:
            raise ValidationError("A group needs at least three participants")
        now = to_storage(utcnow())
        doc = self._new_document(f"group:{ObjectId()}", "group", participants, name, now)
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return self._normalize(doc)

    async def get_for_participant(self, conversation_id: str, user_id: str, active_only: bool = True) -> Optional[ConversationDocument]:
        oid = to_object_id(conversation_id)
        if oid is None:
            return None
        query: Dict[str, Any] = {"_id": oid, "participants": user_id}
        if active_only:
            query["is_active"] = True
        doc = await self.collection.find_one(query)
        return self._normalize(doc) if doc else None

    async def record_new_message(self, conversation_id: str, message: MessageDocument) -> ConversationDocument:
        oid = to_object_id(conversation_id)
        sent_at = to_storage(message["created_at"])
        current = await self.collection.find_one({"_id": oid}, {"participants": 1})
        if current is None:
            raise ValidationError("Conversation not found")
        increments = {
            f"unread_counts.{participant}": 1
            for participant in current["participants"]
            if participant != message["sender_id"]
        }
        summary = {
            "text": message_preview(message),
            "sender_id": message["sender_id"],
            "message_id": message["_id"],
            "timestamp": sent_at,
        }
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "last_timestamp": {"$lte": sent_at}},
            {
                "$set": {"last_message": summary, "last_timestamp": sent_at, "updated_at": sent_at},
                "$inc": increments,
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            # a newer message already owns the summary; only the counters move
            doc = await self.collection.find_one_and_update(
                {"_id": oid},
                {"$inc": increments},
                return_document=ReturnDocument.AFTER,
            )
        return self._normalize(doc)

    async def reset_unread(self, conversation_id: str, user_id: str) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(conversation_id), "participants": user_id},
            {"$set": {f"unread_counts.{user_id}": 0}},
            return_document=ReturnDocument.AFTER,
        )
        return self._normalize(doc) if doc else None

    async def list_for_user(self, user_id: str, page: int = 1, limit: int = 20) -> Tuple[List[ConversationDocument], int]:
        query = {"participants": user_id, "is_active": True}
        sort = [("last_timestamp", DESCENDING), ("_id", DESCENDING)]
        cur = self.collection.find(query).sort(sort).skip((page - 1) * limit).limit(limit)
        items = [self._normalize(it) for it in await cur.to_list(length=limit)]
        total = await self.collection.count_documents(query)
        return items, total

    async def deactivate_for_user(self, conversation_id: str, user_id: str) -> bool:
        # TODO: per-participant archive flags; the shared flag hides the conversation for everyone
        result = await self.collection.update_one(
            {"_id": to_object_id(conversation_id), "participants": user_id},
            {"$set": {"is_active": False, "updated_at": to_storage(utcnow())}},
        )
        return bool(result.matched_count)

    async def _reactivate(self, key: str) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one_and_update(
            {"participant_key": key},
            {"$set": {"is_active": True}},
            return_document=ReturnDocument.AFTER,
        )
        return self._normalize(doc) if doc else None

    def _new_document(self, key: str, kind: str, participants: List[str], name: Optional[str], now) -> Dict[str, Any]:
        return {
            "participants": participants,
            "participant_key": key,
            "type": kind,
            "name": name,
            "last_message": None,
            "last_timestamp": now,
            "unread_counts": {participant: 0 for participant in participants},
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }

    def _normalize(self, doc: Dict[str, Any]) -> ConversationDocument:
        doc["_id"] = str(doc["_id"])
        for field in ("last_timestamp", "created_at", "updated_at"):
            doc[field] = from_storage(doc.get(field))
        last = doc.get("last_message")
        if last:
            last["timestamp"] = from_storage(last.get("timestamp"))
        return doc  # type: ignore[return-value]
