from typing import Optional

from fastapi import APIRouter, Depends, WebSocket
from motor.motor_asyncio import AsyncIOMotorDatabase

from hashview_chat.database.connection import mongo_db_dependency
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.services.chat_service import ChatService
from hashview_chat.utils.dependencies import get_ws_chat_service, resolve_user


router = APIRouter(tags=["chat"])


def _handshake_token(websocket: WebSocket) -> Optional[str]:
    # ?token= first, then an Authorization bearer header
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    service: ChatService = Depends(get_ws_chat_service),
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
):
    gateway = websocket.app.state.gateway

    async def authenticate(token: Optional[str]) -> dict:
        return await resolve_user(token, db)

    await gateway.serve(websocket, _handshake_token(websocket), service, UserRepository(db), authenticate)
