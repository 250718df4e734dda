from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from hashview_chat.core.exceptions import NotFound
from hashview_chat.database.connection import mongo_db_dependency
from hashview_chat.repositories.device_repository import DeviceRepository
from hashview_chat.schemas.common import success
from hashview_chat.schemas.device import DeviceRegisterRequest
from hashview_chat.utils.dependencies import get_current_user


router = APIRouter(prefix="/devices", tags=["push"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_device(body: DeviceRegisterRequest, current_user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)):
    repo = DeviceRepository(db)
    doc = await repo.register(current_user["_id"], body.platform, body.token)
    return success({"device": {"platform": doc["platform"], "token": doc["token"]}})


@router.delete("/{token}")
async def unregister_device(token: str, current_user: dict = Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)):
    if not await DeviceRepository(db).unregister(current_user["_id"], token):
        raise NotFound("Device not found")
    return success(message="Device unregistered")
