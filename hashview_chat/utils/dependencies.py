from typing import Optional

from fastapi import Depends, Request, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

from hashview_chat.core.exceptions import AccountDisabled, AuthenticationError
from hashview_chat.database.connection import mongo_db_dependency
from hashview_chat.repositories.conversation_repository import ConversationRepository
from hashview_chat.repositories.device_repository import DeviceRepository
from hashview_chat.repositories.message_repository import MessageRepository
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.services.chat_service import ChatService
from hashview_chat.services.notification_service import NotificationService
from hashview_chat.utils.security import decode_access_token


bearer_scheme = HTTPBearer(auto_error=False)


async def resolve_user(token: Optional[str], db: AsyncIOMotorDatabase) -> dict:
    """Return the active user a token belongs to."""
    if not token:
        raise AuthenticationError("Missing authentication token")
    payload = decode_access_token(token)
    user = await UserRepository(db).get_user_by_id(payload["sub"])
    if user is None:
        raise AuthenticationError("User not found")
    if not user.get("is_active", True):
        raise AccountDisabled()
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
) -> dict:
    return await resolve_user(credentials.credentials if credentials else None, db)


def build_chat_service(app_state, db: AsyncIOMotorDatabase) -> ChatService:
    notifier = NotificationService(
        registry=app_state.registry,
        device_repo=DeviceRepository(db),
        user_repo=UserRepository(db),
        push=app_state.push,
    )
    return ChatService(
        message_repo=MessageRepository(db),
        conversation_repo=ConversationRepository(db),
        rooms=app_state.rooms,
        notifier=notifier,
        user_repo=UserRepository(db),
    )


def get_chat_service(request: Request, db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)) -> ChatService:
    return build_chat_service(request.app.state, db)


def get_ws_chat_service(websocket: WebSocket, db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)) -> ChatService:
    return build_chat_service(websocket.app.state, db)
