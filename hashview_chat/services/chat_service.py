import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from hashview_chat.core.exceptions import NotFound, NotParticipant, ValidationError
from hashview_chat.models.conversation import ConversationDocument
from hashview_chat.models.message import MessageDocument
from hashview_chat.repositories.conversation_repository import ConversationRepository
from hashview_chat.repositories.message_repository import MessagePage, MessageRepository
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.schemas.conversation import ConversationOut, ConversationSummary
from hashview_chat.schemas.message import MessageOut
from hashview_chat.services.notification_service import NotificationService
from hashview_chat.utils.websocket_manager import RoomManager


logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    message: MessageDocument
    conversation: ConversationDocument
    pushed_to: List[str]


class ChatService:
    """
    Conversation and message operations shared by the REST routes and the
    realtime gateway.

    Every mutation follows the same order: authorize against the conversation,
    write the message store, update the conversation store, broadcast to the
    conversation room, then run secondary side effects (push). Secondary
    failures are logged and never undo or fail the primary write.
    """

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        rooms: RoomManager,
        notifier: NotificationService,
        user_repo: Optional[UserRepository] = None,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._rooms = rooms
        self._notifier = notifier
        self._user_repo = user_repo

    # conversations

    async def start_direct(self, user_id: str, participant_id: str) -> ConversationDocument:
        if self._user_repo is not None and await self._user_repo.get_user_by_id(participant_id) is None:
            raise NotFound("Participant not found")
        return await self._conversation_repo.find_or_create_direct(user_id, participant_id)

    async def create_group(self, user_id: str, participant_ids: Iterable[str], name: Optional[str] = None) -> ConversationDocument:
        participant_ids = list(participant_ids)
        if self._user_repo is not None:
            for participant_id in participant_ids:
                if await self._user_repo.get_user_by_id(participant_id) is None:
                    raise NotFound("Participant not found")
        return await self._conversation_repo.create_group(user_id, participant_ids, name)

    async def get_conversation(self, conversation_id: str, user_id: str, active_only: bool = True) -> ConversationDocument:
        conversation = await self._conversation_repo.get_for_participant(conversation_id, user_id, active_only=active_only)
        if conversation is None:
            raise NotParticipant()
        return conversation

    async def list_conversations(self, user_id: str, page: int = 1, limit: int = 20) -> Tuple[List[ConversationDocument], int]:
        return await self._conversation_repo.list_for_user(user_id, page=page, limit=limit)

    async def delete_conversation(self, conversation_id: str, user_id: str) -> None:
        if not await self._conversation_repo.deactivate_for_user(conversation_id, user_id):
            raise NotParticipant()

    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> ConversationDocument:
        await self.get_conversation(conversation_id, user_id, active_only=False)
        await self._message_repo.mark_conversation_read(conversation_id, user_id)
        conversation = await self._conversation_repo.reset_unread(conversation_id, user_id)
        if conversation is None:
            raise NotParticipant()
        await self._rooms.broadcast(conversation_id, "conversation_read", {
            "conversationId": conversation_id,
            "readBy": user_id,
            "unreadCounts": conversation["unread_counts"],
        })
        return conversation

    # messages

    async def send_message(
        self,
        sender_id: str,
        conversation_id: str,
        content: Dict[str, Any],
    ) -> SendResult:
        conversation = await self.get_conversation(conversation_id, sender_id)
        reply_to = content.get("reply_to")
        if reply_to:
            target = await self._message_repo.get(reply_to)
            if target is None or target["conversation_id"] != conversation["_id"]:
                raise ValidationError("Reply target must be a message of this conversation")

        message = await self._message_repo.append(conversation["_id"], sender_id, content)
        conversation = await self._conversation_repo.record_new_message(conversation["_id"], message)

        payload = {
            "message": (await self.render_messages([message]))[0],
            "conversation": ConversationSummary.from_document(conversation).dump(),
        }
        received_by = await self._rooms.broadcast(conversation["_id"], "new_message", payload)
        if any(session.user_id and session.user_id != sender_id for session in received_by):
            await self._mark_delivered(message)

        pushed_to: List[str] = []
        try:
            pushed_to = await self._notifier.notify_offline(conversation, message, sender_id)
        except Exception:
            logger.exception("Offline notification for message %s failed", message["_id"])
        return SendResult(message=message, conversation=conversation, pushed_to=pushed_to)

    async def get_history(
        self,
        conversation_id: str,
        user_id: str,
        cursor: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> MessagePage:
        await self.get_conversation(conversation_id, user_id)
        skip = 0 if cursor else (page - 1) * limit
        return await self._message_repo.list_page(conversation_id, cursor=cursor, limit=limit, skip=skip)

    async def get_message(self, message_id: str, user_id: str) -> MessageDocument:
        message = await self._message_repo.get(message_id)
        if message is None:
            raise NotFound("Message not found")
        await self._require_participant(message, user_id)
        return message

    async def edit_message(self, message_id: str, user_id: str, text: str) -> MessageDocument:
        message = await self.get_message(message_id, user_id)
        message = await self._message_repo.edit(message["_id"], user_id, text)
        await self._rooms.broadcast(message["conversation_id"], "message_updated", {
            "message": (await self.render_messages([message]))[0],
        })
        return message

    async def delete_message(self, message_id: str, user_id: str) -> MessageDocument:
        message = await self.get_message(message_id, user_id)
        message = await self._message_repo.soft_delete(message["_id"], user_id)
        await self._rooms.broadcast(message["conversation_id"], "message_deleted", {
            "messageId": message["_id"],
            "conversationId": message["conversation_id"],
            "deletedAt": message["deleted_at"],
        })
        return message

    async def mark_message_read(self, message_id: str, user_id: str) -> Tuple[bool, MessageDocument]:
        """Set read_at once; the receipt is broadcast only by the call that set it."""
        message = await self.get_message(message_id, user_id)
        if message["sender_id"] == user_id:
            return False, message
        changed = await self._message_repo.mark_read(message["_id"])
        message = await self._message_repo.get(message["_id"])
        if changed:
            await self._rooms.broadcast(message["conversation_id"], "message_read", {
                "messageId": message["_id"],
                "conversationId": message["conversation_id"],
                "readBy": user_id,
                "readAt": message["read_at"],
            })
        return changed, message

    async def render_messages(self, messages: List[MessageDocument]) -> List[Dict[str, Any]]:
        """Serialize messages with a preview of the message each one replies to."""
        targets: Dict[str, MessageDocument] = {}
        for reply_id in {m["reply_to"] for m in messages if m.get("reply_to")}:
            target = await self._message_repo.get(reply_id)
            if target is not None:
                targets[reply_id] = target
        senders = await self._profiles(m["sender_id"] for m in messages)
        rendered = []
        for message in messages:
            target = targets.get(message.get("reply_to") or "")
            if target is not None and target["conversation_id"] != message["conversation_id"]:
                target = None
            sender_name = senders.get(message["sender_id"], {}).get("name")
            rendered.append(MessageOut.from_document(message, target, sender_name).dump())
        return rendered

    async def render_conversations(self, conversations: List[ConversationDocument], viewer_id: str) -> List[Dict[str, Any]]:
        """Serialize conversations with participant names and last-seen times."""
        profiles = await self._profiles(p for c in conversations for p in c["participants"])
        return [ConversationOut.from_document(c, viewer_id, profiles).dump() for c in conversations]

    async def _profiles(self, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        if self._user_repo is None:
            return {}
        return await self._user_repo.get_users_by_ids(user_ids)

    async def _mark_delivered(self, message: MessageDocument) -> None:
        if await self._message_repo.mark_delivered(message["_id"]):
            delivered = await self._message_repo.get(message["_id"])
            await self._rooms.broadcast(message["conversation_id"], "message_delivered", {
                "messageId": message["_id"],
                "conversationId": message["conversation_id"],
                "deliveredAt": delivered["delivered_at"],
            })

    async def _require_participant(self, message: MessageDocument, user_id: str) -> ConversationDocument:
        conversation = await self._conversation_repo.get_for_participant(message["conversation_id"], user_id, active_only=False)
        if conversation is None:
            raise NotParticipant("Message not found")
        return conversation
