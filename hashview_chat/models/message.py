from datetime import datetime
from typing import Literal, Optional, TypedDict


MessageType = Literal["text", "image", "file", "system"]

DELETED_MESSAGE_TEXT = "This message was deleted"


class MediaMetadata(TypedDict, total=False):
    filename: str
    size: int
    mime_type: str


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    sender_id: str
    text: Optional[str]
    type: MessageType
    media_url: Optional[str]
    media_metadata: Optional[MediaMetadata]
    reply_to: Optional[str]
    created_at: datetime
    # delivery states, each set at most once
    delivered_at: Optional[datetime]
    read_at: Optional[datetime]
    is_edited: bool
    edited_at: Optional[datetime]
    is_deleted: bool
    deleted_at: Optional[datetime]
