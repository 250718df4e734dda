from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from hashview_chat.database.connection import mongo_db_dependency
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.schemas.common import success
from hashview_chat.schemas.user import LoginRequest, UserCreate
from hashview_chat.services.user_service import UserService


router = APIRouter(prefix="/auth", tags=["auth"])


def get_user_service(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)) -> UserService:
    return UserService(UserRepository(db))


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: UserCreate, service: UserService = Depends(get_user_service)):
    token = await service.register_user(body.email, body.password, body.name)
    return success(token.dump(), message="User registered successfully")


@router.post("/login")
async def login(body: LoginRequest, service: UserService = Depends(get_user_service)):
    token = await service.authenticate_user(body.email, body.password)
    return success(token.dump())
