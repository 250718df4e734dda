"""Payloads of client→server realtime events."""

from typing import Optional

from pydantic import Field

from hashview_chat.schemas.common import CamelModel
from hashview_chat.schemas.message import MessageContent


class ConversationEvent(CamelModel):
    conversation_id: str = Field(min_length=1)


class SendMessageEvent(MessageContent):
    conversation_id: str = Field(min_length=1)
    client_message_id: Optional[str] = None


class MarkMessageReadEvent(CamelModel):
    message_id: str = Field(min_length=1)
