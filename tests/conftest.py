import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from hashview_chat.core.config import settings
from hashview_chat.database import connection
from hashview_chat.main import app as fastapi_app
from hashview_chat.repositories.conversation_repository import ConversationRepository
from hashview_chat.repositories.device_repository import DeviceRepository
from hashview_chat.repositories.message_repository import MessageRepository
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.services.chat_service import ChatService
from hashview_chat.services.notification_service import NotificationService
from hashview_chat.utils.websocket_manager import ConnectionRegistry, ConnectionState, RealtimeSession, RoomManager


class FakePush:
    """Records push sends instead of calling FCM."""

    enabled = True

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []

    async def send_fcm(self, tokens, title, body, data=None) -> int:
        self.calls.append({"tokens": list(tokens), "title": title, "body": body, "data": data})
        return len(tokens)


class FakeWebSocket:

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def send_json(self, data) -> None:
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        return [frame for frame in self.sent if name is None or frame["event"] == name]


def make_session(user_id: str, name: Optional[str] = None) -> RealtimeSession:
    session = RealtimeSession(websocket=FakeWebSocket(), user_id=user_id, user_name=name)
    session.state = ConnectionState.CONNECTED
    return session


@dataclass
class ApiUser:
    id: str
    email: str
    name: str
    token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


# repository/service level


@pytest_asyncio.fixture
async def db():
    database = AsyncMongoMockClient()[f"test_{uuid.uuid4().hex}"]
    await connection.ensure_indexes(database)
    return database


@pytest.fixture
def message_repo(db) -> MessageRepository:
    return MessageRepository(db)


@pytest.fixture
def conversation_repo(db) -> ConversationRepository:
    return ConversationRepository(db)


@pytest.fixture
def device_repo(db) -> DeviceRepository:
    return DeviceRepository(db)


@pytest.fixture
def user_repo(db) -> UserRepository:
    return UserRepository(db)


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def rooms() -> RoomManager:
    return RoomManager()


@pytest.fixture
def push() -> FakePush:
    return FakePush()


@pytest.fixture
def chat_service(message_repo, conversation_repo, device_repo, user_repo, registry, rooms, push) -> ChatService:
    notifier = NotificationService(registry=registry, device_repo=device_repo, user_repo=user_repo, push=push)
    return ChatService(message_repo, conversation_repo, rooms=rooms, notifier=notifier, user_repo=user_repo)


@pytest_asyncio.fixture
async def people(user_repo) -> Dict[str, str]:
    """Three stored users, keyed by first name."""
    ids = {}
    for name in ("alice", "bob", "carol"):
        ids[name] = await user_repo.create_user(f"{name}@example.com", "not-a-real-hash", name.title())
    return ids


# application level


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(connection, "AsyncIOMotorClient", lambda url: AsyncMongoMockClient())
    monkeypatch.setattr(settings, "mongodb_db", f"test_{uuid.uuid4().hex}")
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(settings, "fcm_service_account_file", None)
    with TestClient(fastapi_app) as test_client:
        fastapi_app.state.push = FakePush()
        yield test_client


@pytest.fixture
def api_push(client) -> FakePush:
    return fastapi_app.state.push


def register_user(client: TestClient, name: str) -> ApiUser:
    email = f"{name.lower()}@example.com"
    response = client.post("/auth/register", json={"email": email, "password": "secret123", "name": name})
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    return ApiUser(id=data["user"]["id"], email=email, name=name, token=data["accessToken"])


@pytest.fixture
def alice(client) -> ApiUser:
    return register_user(client, "Alice")


@pytest.fixture
def bob(client) -> ApiUser:
    return register_user(client, "Bob")


@pytest.fixture
def carol(client) -> ApiUser:
    return register_user(client, "Carol")


@pytest.fixture
def direct_chat(client, alice, bob) -> str:
    response = client.post("/conversations", json={"participantId": bob.id}, headers=alice.headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["conversation"]["id"]
