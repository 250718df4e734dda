import logging
from typing import List

from hashview_chat.models.conversation import ConversationDocument
from hashview_chat.models.message import MessageDocument
from hashview_chat.repositories.conversation_repository import MEDIA_PLACEHOLDERS
from hashview_chat.repositories.device_repository import DeviceRepository
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.utils.websocket_manager import ConnectionRegistry


logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New message"
BODY_LENGTH = 100


def push_body(message: MessageDocument) -> str:
    text = message.get("text")
    if text:
        return text[:BODY_LENGTH]
    return MEDIA_PLACEHOLDERS.get(message.get("type", ""), MEDIA_PLACEHOLDERS["file"])


class NotificationService:
    """Pushes new messages to participants with no live realtime session."""

    def __init__(self, registry: ConnectionRegistry, device_repo: DeviceRepository, user_repo: UserRepository, push) -> None:
        self._registry = registry
        self._device_repo = device_repo
        self._user_repo = user_repo
        self._push = push

    async def notify_offline(self, conversation: ConversationDocument, message: MessageDocument, sender_id: str) -> List[str]:
        """
        Push ``message`` to every offline participant except the sender.

        Presence may already be stale when the push goes out; a user who just
        came online gets a redundant notification rather than none. Returns the
        ids of the recipients a push was attempted for.
        """
        recipients = [p for p in conversation["participants"] if p != sender_id and not self._registry.is_online(p)]
        if not recipients:
            return []

        sender = await self._user_repo.get_user_by_id(sender_id)
        title = (sender or {}).get("name") or DEFAULT_TITLE
        body = push_body(message)
        data = {
            "type": "message",
            "conversationId": message["conversation_id"],
            "messageId": message["_id"],
        }

        attempted = []
        for recipient_id in recipients:
            try:
                devices = await self._device_repo.get_tokens(recipient_id, platform="fcm")
                tokens = [d["token"] for d in devices]
                if not tokens:
                    logger.debug("No push endpoints for user %s", recipient_id)
                    continue
                attempted.append(recipient_id)
                await self._push.send_fcm(tokens, title, body, data)
            except Exception:
                logger.warning("Push notification to user %s failed", recipient_id, exc_info=True)
        return attempted
