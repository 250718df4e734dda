import math

from fastapi import APIRouter, Depends, Query, status

from hashview_chat.schemas.common import success
from hashview_chat.schemas.conversation import CreateGroupRequest, StartConversationRequest
from hashview_chat.services.chat_service import ChatService
from hashview_chat.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    items, total = await service.list_conversations(current_user["_id"], page=page, limit=limit)
    return success({
        "conversations": await service.render_conversations(items, current_user["_id"]),
        "pagination": {
            "current": page,
            "pages": math.ceil(total / limit),
            "total": total,
            "limit": limit,
        },
    })


@router.post("", status_code=status.HTTP_201_CREATED)
async def start_conversation(
    body: StartConversationRequest,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    conversation = await service.start_direct(current_user["_id"], body.participant_id)
    return success({"conversation": (await service.render_conversations([conversation], current_user["_id"]))[0]})


@router.post("/group", status_code=status.HTTP_201_CREATED)
async def create_group(
    body: CreateGroupRequest,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    conversation = await service.create_group(current_user["_id"], body.participant_ids, body.name)
    return success({"conversation": (await service.render_conversations([conversation], current_user["_id"]))[0]})


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    conversation = await service.get_conversation(conversation_id, current_user["_id"])
    return success({"conversation": (await service.render_conversations([conversation], current_user["_id"]))[0]})


@router.patch("/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    conversation = await service.mark_conversation_read(conversation_id, current_user["_id"])
    return success(
        {"conversation": (await service.render_conversations([conversation], current_user["_id"]))[0]},
        message="Conversation marked as read",
    )


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    await service.delete_conversation(conversation_id, current_user["_id"])
    return success(message="Conversation deleted successfully")
