from datetime import datetime
from typing import Dict, List, Literal, Optional, TypedDict


ConversationType = Literal["direct", "group"]


class LastMessage(TypedDict):
    text: str
    sender_id: str
    message_id: str
    timestamp: datetime


class ConversationDocument(TypedDict, total=False):
    _id: str
    participants: List[str]
    # "direct:<a>:<b>" with sorted ids, or "group:<oid>"; unique
    participant_key: str
    type: ConversationType
    name: Optional[str]
    last_message: Optional[LastMessage]
    last_timestamp: datetime
    # participant id -> messages not yet acknowledged
    unread_counts: Dict[str, int]
    is_active: bool
    created_at: datetime
    updated_at: datetime
