from fastapi import APIRouter, Depends, Request

from hashview_chat.schemas.common import success
from hashview_chat.utils.dependencies import get_current_user


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{user_id}")
async def presence(user_id: str, request: Request, current_user: dict = Depends(get_current_user)):
    """
    Online status as seen by this process, falling back to the Redis presence
    key written by other instances when the mirror is enabled.
    """
    registry = request.app.state.registry
    online = registry.is_online(user_id)
    if not online:
        online = await request.app.state.bus.is_present(user_id)
    return success({"userId": user_id, "online": online, "lastSeen": registry.last_seen(user_id)})
