import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from hashview_chat.core.config import settings
from hashview_chat.repositories.conversation_repository import ConversationRepository
from hashview_chat.repositories.device_repository import DeviceRepository
from hashview_chat.repositories.message_repository import MessageRepository
from hashview_chat.repositories.user_repository import UserRepository


logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None


async def connect_to_mongo() -> None:
    global _client
    _client = AsyncIOMotorClient(settings.mongodb_url)
    logger.info("Connected to MongoDB database %s", settings.mongodb_db)
    await ensure_indexes(get_database())


async def close_mongo_connection() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


def get_database() -> AsyncIOMotorDatabase:
    if _client is None:
        raise RuntimeError("MongoDB is not connected. Call connect_to_mongo() during startup.")
    return _client[settings.mongodb_db]


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()
    await DeviceRepository(db).ensure_indexes()
    await UserRepository(db).ensure_indexes()
