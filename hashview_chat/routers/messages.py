import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from hashview_chat.schemas.common import success
from hashview_chat.schemas.message import EditMessageRequest, SendMessageRequest
from hashview_chat.services.chat_service import ChatService
from hashview_chat.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/messages", tags=["chat"])


@router.get("")
async def list_messages(
    conversation_id: str = Query(..., alias="conversationId", min_length=1),
    cursor: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    result = await service.get_history(conversation_id, current_user["_id"], cursor=cursor, page=page, limit=limit)
    # fetched newest first; clients render oldest first
    messages = await service.render_messages(list(reversed(result.items)))
    return success({
        "messages": messages,
        "pagination": {
            "current": page,
            "pages": math.ceil(result.total / limit),
            "total": result.total,
            "limit": limit,
            "hasMore": result.has_more,
            "nextCursor": result.next_cursor,
        },
    })


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
    body: SendMessageRequest,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    result = await service.send_message(current_user["_id"], body.conversation_id, body.to_content())
    message = (await service.render_messages([result.message]))[0]
    return success({"message": message}, message="Message sent successfully")


@router.get("/{message_id}")
async def get_message(
    message_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.get_message(message_id, current_user["_id"])
    return success({"message": (await service.render_messages([message]))[0]})


@router.patch("/{message_id}")
async def edit_message(
    message_id: str,
    body: EditMessageRequest,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.edit_message(message_id, current_user["_id"], body.text)
    return success({"message": (await service.render_messages([message]))[0]}, message="Message updated successfully")


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    await service.delete_message(message_id, current_user["_id"])
    return success(message="Message deleted successfully")


@router.patch("/{message_id}/read")
async def mark_message_read(
    message_id: str,
    current_user: dict = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    changed, message = await service.mark_message_read(message_id, current_user["_id"])
    return success(
        {"readAt": message.get("read_at"), "changed": changed},
        message="Message marked as read",
    )
