from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from hashview_chat.schemas.common import CamelModel


class StartConversationRequest(CamelModel):
    participant_id: str = Field(min_length=1)


class CreateGroupRequest(CamelModel):
    participant_ids: List[str] = Field(min_length=2)
    name: Optional[str] = Field(default=None, max_length=100)


class LastMessageOut(CamelModel):
    text: str
    sender_id: str
    message_id: str
    timestamp: datetime


class ParticipantOut(CamelModel):
    id: str
    name: Optional[str] = None
    last_seen: Optional[datetime] = None


class ConversationSummary(CamelModel):
    """What a ``new_message`` or read event carries about the conversation."""

    id: str
    last_message: Optional[LastMessageOut] = None
    last_timestamp: datetime
    unread_counts: Dict[str, int]

    @classmethod
    def from_document(cls, doc: dict) -> "ConversationSummary":
        return cls(
            id=doc["_id"],
            last_message=doc.get("last_message"),
            last_timestamp=doc["last_timestamp"],
            unread_counts=doc.get("unread_counts", {}),
        )


class ConversationOut(ConversationSummary):
    participants: List[str]
    type: str
    name: Optional[str] = None
    is_active: bool
    unread_count: int = 0
    created_at: datetime
    participant_details: List[ParticipantOut] = []

    @classmethod
    def from_document(
        cls,
        doc: dict,
        viewer_id: Optional[str] = None,
        profiles: Optional[Dict[str, dict]] = None,
    ) -> "ConversationOut":
        unread = doc.get("unread_counts", {})
        profiles = profiles or {}
        details = [
            ParticipantOut(
                id=participant,
                name=profiles.get(participant, {}).get("name"),
                last_seen=profiles.get(participant, {}).get("last_seen"),
            )
            for participant in doc["participants"]
        ]
        return cls(
            id=doc["_id"],
            participants=doc["participants"],
            type=doc.get("type", "direct"),
            name=doc.get("name"),
            last_message=doc.get("last_message"),
            last_timestamp=doc["last_timestamp"],
            unread_counts=unread,
            unread_count=unread.get(viewer_id, 0) if viewer_id else 0,
            is_active=doc.get("is_active", True),
            created_at=doc["created_at"],
            participant_details=details,
        )
