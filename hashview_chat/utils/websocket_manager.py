"""
Process-local realtime state: who is connected, and which sessions sit in
which conversation room.

Both structures live for the lifetime of one server process and are created
in the application lifespan. Nothing here is shared between instances, so
presence must be treated as a cache: after a restart everybody is offline
until they reconnect.
"""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from hashview_chat.utils.time import utcnow


logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(eq=False)
class RealtimeSession:

    websocket: WebSocket
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ConnectionState = ConnectionState.CONNECTING
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def emit(self, event: str, data: Dict[str, Any]) -> bool:
        """Send one event frame; returns False if the socket is gone."""
        if self.state is not ConnectionState.CONNECTED:
            return False
        frame = jsonable_encoder({"event": event, "data": data})
        async with self._send_lock:
            try:
                await self.websocket.send_json(frame)
            except Exception:
                logger.debug("Dropping %s for closed session %s", event, self.session_id)
                return False
        return True


@dataclass
class PresenceEntry:
    user_id: str
    last_seen: datetime


class ConnectionRegistry:

    def __init__(self) -> None:
        self._sessions: Dict[str, PresenceEntry] = {}
        self._by_user: Dict[str, Set[str]] = {}
        self._last_seen: Dict[str, datetime] = {}

    def register(self, user_id: str, session_id: str) -> None:
        now = utcnow()
        self._sessions[session_id] = PresenceEntry(user_id=user_id, last_seen=now)
        self._by_user.setdefault(user_id, set()).add(session_id)
        self._last_seen[user_id] = now

    def unregister(self, session_id: str) -> Optional[str]:
        """Drop a session and return its user id when that user is now offline."""
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return None
        self._last_seen[entry.user_id] = utcnow()
        sessions = self._by_user.get(entry.user_id)
        if sessions is not None:
            sessions.discard(session_id)
            if not sessions:
                del self._by_user[entry.user_id]
                return entry.user_id
        return None

    def touch(self, session_id: str) -> None:
        entry = self._sessions.get(session_id)
        if entry is not None:
            entry.last_seen = utcnow()
            self._last_seen[entry.user_id] = entry.last_seen

    def is_online(self, user_id: str) -> bool:
        return bool(self._by_user.get(user_id))

    def sessions_for(self, user_id: str) -> Set[str]:
        return set(self._by_user.get(user_id, ()))

    def last_seen(self, user_id: str) -> Optional[datetime]:
        return self._last_seen.get(user_id)

    def online_users(self) -> List[str]:
        return list(self._by_user)


class RoomManager:
    """Conversation-scoped rooms of live sessions."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[str]] = {}
        self._sessions: Dict[str, RealtimeSession] = {}

    def attach(self, session: RealtimeSession) -> None:
        self._sessions[session.session_id] = session

    def detach(self, session: RealtimeSession) -> None:
        self._sessions.pop(session.session_id, None)
        for conversation_id in list(self._rooms):
            self.leave(session, conversation_id)

    def join(self, session: RealtimeSession, conversation_id: str) -> None:
        self._rooms.setdefault(conversation_id, set()).add(session.session_id)

    def leave(self, session: RealtimeSession, conversation_id: str) -> None:
        members = self._rooms.get(conversation_id)
        if members is None:
            return
        members.discard(session.session_id)
        if not members:
            del self._rooms[conversation_id]

    def is_member(self, session: RealtimeSession, conversation_id: str) -> bool:
        return session.session_id in self._rooms.get(conversation_id, ())

    def members(self, conversation_id: str) -> List[RealtimeSession]:
        return [self._sessions[sid] for sid in sorted(self._rooms.get(conversation_id, ())) if sid in self._sessions]

    async def broadcast(
        self,
        conversation_id: str,
        event: str,
        data: Dict[str, Any],
        exclude: Optional[RealtimeSession] = None,
    ) -> List[RealtimeSession]:
        """Emit to every session in the room; returns the sessions that got it."""
        delivered = []
        for session in self.members(conversation_id):
            if exclude is not None and session.session_id == exclude.session_id:
                continue
            if await session.emit(event, data):
                delivered.append(session)
        return delivered
