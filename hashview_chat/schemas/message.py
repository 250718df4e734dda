from datetime import datetime
from typing import Literal, Optional

from pydantic import AnyHttpUrl, Field, field_validator, model_validator

from hashview_chat.schemas.common import CamelModel


MAX_TEXT_LENGTH = 1000


class MediaMetadata(CamelModel):
    filename: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)
    mime_type: Optional[str] = None


class MessageContent(CamelModel):

    text: Optional[str] = Field(default=None, max_length=MAX_TEXT_LENGTH)
    type: Literal["text", "image", "file"] = "text"
    media_url: Optional[AnyHttpUrl] = None
    media_metadata: Optional[MediaMetadata] = None
    reply_to: Optional[str] = None

    @model_validator(mode="after")
    def _has_body(self):
        if not (self.text and self.text.strip()) and self.media_url is None:
            raise ValueError("Message must have text or media")
        return self

    def to_content(self) -> dict:
        return {
            "text": self.text,
            "type": self.type,
            "media_url": str(self.media_url) if self.media_url else None,
            "media_metadata": self.media_metadata.model_dump() if self.media_metadata else None,
            "reply_to": self.reply_to,
        }


class SendMessageRequest(MessageContent):
    conversation_id: str


class EditMessageRequest(CamelModel):
    text: str = Field(min_length=1, max_length=MAX_TEXT_LENGTH)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message text must be between 1 and 1000 characters")
        return value


class ReplyPreview(CamelModel):
    id: str
    text: Optional[str] = None
    sender_id: Optional[str] = None
    is_deleted: bool = False


class MessageOut(CamelModel):
    id: str
    conversation_id: str
    sender_id: str
    sender_name: Optional[str] = None
    text: Optional[str] = None
    type: str
    media_url: Optional[str] = None
    media_metadata: Optional[MediaMetadata] = None
    reply_to: Optional[str] = None
    reply_preview: Optional[ReplyPreview] = None
    created_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_document(
        cls,
        doc: dict,
        reply_target: Optional[dict] = None,
        sender_name: Optional[str] = None,
    ) -> "MessageOut":
        preview = None
        if doc.get("reply_to"):
            if reply_target is None:
                # target is gone or belongs elsewhere; render as deleted
                preview = ReplyPreview(id=doc["reply_to"], is_deleted=True)
            else:
                preview = ReplyPreview(
                    id=reply_target["_id"],
                    text=reply_target.get("text"),
                    sender_id=reply_target.get("sender_id"),
                    is_deleted=reply_target.get("is_deleted", False),
                )
        return cls(
            id=doc["_id"],
            conversation_id=doc["conversation_id"],
            sender_id=doc["sender_id"],
            sender_name=sender_name,
            text=doc.get("text"),
            type=doc.get("type", "text"),
            media_url=doc.get("media_url"),
            media_metadata=doc.get("media_metadata"),
            reply_to=doc.get("reply_to"),
            reply_preview=preview,
            created_at=doc["created_at"],
            delivered_at=doc.get("delivered_at"),
            read_at=doc.get("read_at"),
            is_edited=doc.get("is_edited", False),
            edited_at=doc.get("edited_at"),
            is_deleted=doc.get("is_deleted", False),
            deleted_at=doc.get("deleted_at"),
        )
