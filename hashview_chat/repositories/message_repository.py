from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from hashview_chat.core.exceptions import AlreadyDeleted, InvalidContent, NotFound, NotOwner, ValidationError
from hashview_chat.models.message import DELETED_MESSAGE_TEXT, MessageDocument
from hashview_chat.utils.time import from_storage, to_storage, utcnow


_DATE_FIELDS = ("created_at", "delivered_at", "read_at", "edited_at", "deleted_at")


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


@dataclass
class MessagePage:
    # newest first, as fetched
    items: List[MessageDocument]
    has_more: bool
    total: int
    next_cursor: Optional[str]


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", DESCENDING), ("_id", DESCENDING)])
        await self.collection.create_index([("sender_id", ASCENDING)])

    async def append(
        self,
        conversation_id: str,
        sender_id: str,
        content: Dict[str, Any],
    ) -> MessageDocument:
        text = (content.get("text") or "").strip() or None
        media_url = content.get("media_url") or None
        if not text and not media_url:
            raise InvalidContent()
        reply_to = content.get("reply_to")
        doc: Dict[str, Any] = {
            "conversation_id": to_object_id(conversation_id),
            "sender_id": sender_id,
            "text": text,
            "type": content.get("type") or "text",
            "media_url": media_url,
            "media_metadata": content.get("media_metadata"),
            "reply_to": to_object_id(reply_to) if reply_to else None,
            "created_at": to_storage(utcnow()),
            "delivered_at": None,
            "read_at": None,
            "is_edited": False,
            "edited_at": None,
            "is_deleted": False,
            "deleted_at": None,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return self._normalize(doc)

    async def get(self, message_id: str) -> Optional[MessageDocument]:
        oid = to_object_id(message_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        return self._normalize(doc) if doc else None

    async def list_page(
        self,
        conversation_id: str,
        cursor: Optional[str] = None,
        limit: int = 50,
        skip: int = 0,
    ) -> MessagePage:
        base: Dict[str, Any] = {"conversation_id": to_object_id(conversation_id), "is_deleted": False}
        query = dict(base)
        if cursor:
            # keyset on (created_at, _id) so inserts between requests cannot shift pages
            anchor = await self.collection.find_one({"_id": to_object_id(cursor), "conversation_id": base["conversation_id"]})
            if anchor is None:
                raise ValidationError("Cursor must be a message of this conversation")
            query["$or"] = [
                {"created_at": {"$lt": anchor["created_at"]}},
                {"created_at": anchor["created_at"], "_id": {"$lt": anchor["_id"]}},
            ]
        sort = [("created_at", DESCENDING), ("_id", DESCENDING)]
        cur = self.collection.find(query).sort(sort).skip(skip).limit(limit)
        items = [self._normalize(it) for it in await cur.to_list(length=limit)]

        matching = await self.collection.count_documents(query)
        total = matching if not cursor else await self.collection.count_documents(base)
        has_more = skip + len(items) < matching
        next_cursor = items[-1]["_id"] if items and has_more else None
        return MessagePage(items=items, has_more=has_more, total=total, next_cursor=next_cursor)

    async def edit(self, message_id: str, editor_id: str, new_text: str) -> MessageDocument:
        message = await self._get_owned(message_id, editor_id)
        text = (new_text or "").strip()
        if not text:
            raise ValidationError("Message text cannot be empty")
        now = to_storage(utcnow())
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(message["_id"]), "is_deleted": False},
            {"$set": {"text": text, "is_edited": True, "edited_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise AlreadyDeleted()
        return self._normalize(doc)

    async def soft_delete(self, message_id: str, requester_id: str) -> MessageDocument:
        message = await self._get_owned(message_id, requester_id)
        now = to_storage(utcnow())
        # replies pointing here are left alone; consumers render the tombstone
        doc = await self.collection.find_one_and_update(
            {"_id": to_object_id(message["_id"]), "is_deleted": False},
            {
                "$set": {
                    "text": DELETED_MESSAGE_TEXT,
                    "media_url": None,
                    "media_metadata": None,
                    "is_deleted": True,
                    "deleted_at": now,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise AlreadyDeleted()
        return self._normalize(doc)

    async def mark_read(self, message_id: str) -> bool:
        now = to_storage(utcnow())
        oid = to_object_id(message_id)
        result = await self.collection.update_one({"_id": oid, "read_at": None}, {"$set": {"read_at": now}})
        if result.modified_count:
            await self.collection.update_one({"_id": oid, "delivered_at": None}, {"$set": {"delivered_at": now}})
        return bool(result.modified_count)

    async def mark_delivered(self, message_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(message_id), "delivered_at": None},
            {"$set": {"delivered_at": to_storage(utcnow())}},
        )
        return bool(result.modified_count)

    async def mark_conversation_read(self, conversation_id: str, reader_id: str) -> int:
        now = to_storage(utcnow())
        query = {"conversation_id": to_object_id(conversation_id), "sender_id": {"$ne": reader_id}}
        await self.collection.update_many({**query, "delivered_at": None}, {"$set": {"delivered_at": now}})
        result = await self.collection.update_many({**query, "read_at": None}, {"$set": {"read_at": now}})
        return result.modified_count or 0

    async def _get_owned(self, message_id: str, user_id: str) -> MessageDocument:
        message = await self.get(message_id)
        if message is None:
            raise NotFound("Message not found")
        if message["sender_id"] != user_id:
            raise NotOwner("Only the sender can change this message")
        if message["is_deleted"]:
            raise AlreadyDeleted()
        return message

    def _normalize(self, doc: Dict[str, Any]) -> MessageDocument:
        doc["_id"] = str(doc["_id"])
        doc["conversation_id"] = str(doc["conversation_id"])
        if doc.get("reply_to") is not None:
            doc["reply_to"] = str(doc["reply_to"])
        for field in _DATE_FIELDS:
            doc[field] = from_storage(doc.get(field))
        return doc  # type: ignore[return-value]
