"""
Realtime gateway: one instance per process, one ``RealtimeSession`` per socket.

A connection walks CONNECTING → AUTHENTICATING → CONNECTED → DISCONNECTED.
The access token is checked once at handshake; a failed check closes the
socket before it is accepted. While connected, frames of the form
``{"event": name, "data": {...}}`` are dispatched to handlers. Room
membership is kept only in memory and is rebuilt by clients re-joining after
a reconnect; anything missed meanwhile is fetched over REST.
"""

import asyncio
import contextlib
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from hashview_chat.core.exceptions import AccountDisabled, AuthenticationError, ChatError, ValidationError
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.schemas.events import ConversationEvent, MarkMessageReadEvent, SendMessageEvent
from hashview_chat.services.chat_service import ChatService
from hashview_chat.utils.time import utcnow
from hashview_chat.utils.websocket_manager import ConnectionRegistry, ConnectionState, RealtimeSession, RoomManager


logger = logging.getLogger(__name__)

WS_UNAUTHORIZED = 4401
WS_FORBIDDEN = 4403

Handler = Callable[[RealtimeSession, ChatService, Any], Awaitable[None]]


class RealtimeGateway:

    def __init__(self, registry: ConnectionRegistry, rooms: RoomManager, bus, presence_ttl_seconds: int = 60) -> None:
        self.registry = registry
        self.rooms = rooms
        self._bus = bus
        self._presence_ttl = presence_ttl_seconds
        self._handlers: Dict[str, Handler] = {
            "join_conversation": self._on_join,
            "leave_conversation": self._on_leave,
            "typing_start": self._on_typing_start,
            "typing_stop": self._on_typing_stop,
            "send_message": self._on_send_message,
            "mark_message_read": self._on_mark_message_read,
            "mark_conversation_read": self._on_mark_conversation_read,
            "ping": self._on_ping,
        }

    async def serve(
        self,
        websocket: WebSocket,
        token: Optional[str],
        service: ChatService,
        user_repo: UserRepository,
        resolve_user: Callable[[Optional[str]], Awaitable[dict]],
    ) -> None:
        session = RealtimeSession(websocket=websocket)
        session.state = ConnectionState.AUTHENTICATING
        try:
            user = await resolve_user(token)
        except AuthenticationError as exc:
            session.state = ConnectionState.DISCONNECTED
            code = WS_FORBIDDEN if isinstance(exc, AccountDisabled) else WS_UNAUTHORIZED
            logger.info("Rejected realtime connection: %s", exc.message)
            await websocket.close(code=code)
            return

        await websocket.accept()
        session.user_id = user["_id"]
        session.user_name = user.get("name")
        session.state = ConnectionState.CONNECTED
        await self._connected(session, user_repo)
        heartbeat = asyncio.create_task(self._presence_heartbeat(session)) if self._bus.enabled else None

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                if message.get("text") is not None:
                    await self.dispatch(session, service, message["text"])
                else:
                    await session.emit("error", {"message": "Frames must be JSON text"})
        except WebSocketDisconnect:
            pass
        finally:
            if heartbeat is not None:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat
            await self._disconnected(session, user_repo)

    async def dispatch(self, session: RealtimeSession, service: ChatService, raw: str) -> None:
        """Run one inbound frame; failures become an ``error`` event."""
        event = None
        try:
            frame = json.loads(raw)
            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                raise ValidationError("Frames must look like {\"event\": ..., \"data\": {...}}")
            event = frame["event"]
            handler = self._handlers.get(event)
            if handler is None:
                raise ValidationError(f"Unknown event '{event}'")
            data = frame.get("data")
            if data is None:
                data = {}
            self.registry.touch(session.session_id)
            await handler(session, service, data)
        except json.JSONDecodeError:
            await session.emit("error", {"message": "Invalid JSON frame"})
        except PydanticValidationError as exc:
            await session.emit("error", {
                "event": event,
                "message": "Validation failed",
                "errors": json.loads(exc.json(include_url=False)),
            })
        except ChatError as exc:
            await session.emit("error", {"event": event, "message": exc.message})
        except Exception:
            logger.exception("Realtime handler for %s failed (session %s)", event, session.session_id)
            await session.emit("error", {"event": event, "message": "Internal server error"})

    # lifecycle

    async def _connected(self, session: RealtimeSession, user_repo: UserRepository) -> None:
        self.registry.register(session.user_id, session.session_id)
        self.rooms.attach(session)
        logger.info("User %s connected with session %s", session.user_id, session.session_id)
        await self._mirror(self._bus.set_presence(session.user_id, ttl_seconds=self._presence_ttl))
        await user_repo.touch_last_seen(session.user_id, utcnow())

    async def _disconnected(self, session: RealtimeSession, user_repo: UserRepository) -> None:
        session.state = ConnectionState.DISCONNECTED
        self.rooms.detach(session)
        offline_user = self.registry.unregister(session.session_id)
        logger.info("User %s disconnected (session %s)", session.user_id, session.session_id)
        if offline_user is not None:
            await self._mirror(self._bus.clear_presence(offline_user))
        try:
            await user_repo.touch_last_seen(session.user_id, utcnow())
        except Exception:
            logger.warning("Could not record last_seen for user %s", session.user_id, exc_info=True)

    async def _presence_heartbeat(self, session: RealtimeSession) -> None:
        interval = max(1, self._presence_ttl // 2)
        while session.state is ConnectionState.CONNECTED:
            await asyncio.sleep(interval)
            await self._mirror(self._bus.set_presence(session.user_id, ttl_seconds=self._presence_ttl))

    async def _mirror(self, call: Awaitable[None]) -> None:
        try:
            await call
        except Exception:
            logger.warning("Presence mirror update failed", exc_info=True)

    # handlers

    @staticmethod
    def _conversation_payload(data: Any) -> ConversationEvent:
        # mobile clients send the bare conversation id
        if isinstance(data, str):
            data = {"conversationId": data}
        return ConversationEvent.model_validate(data)

    async def _on_join(self, session: RealtimeSession, service: ChatService, data: Any) -> None:
        payload = self._conversation_payload(data)
        await service.get_conversation(payload.conversation_id, session.user_id)
        self.rooms.join(session, payload.conversation_id)
        logger.debug("Session %s joined conversation %s", session.session_id, payload.conversation_id)
        await session.emit("joined_conversation", {"conversationId": payload.conversation_id})

    async def _on_leave(self, session: RealtimeSession, service: ChatService, data: Any) -> None:
        payload = self._conversation_payload(data)
        self.rooms.leave(session, payload.conversation_id)
        await session.emit("left_conversation", {"conversationId": payload.conversation_id})

    async def _on_typing_start(self, session: RealtimeSession, service: ChatService, data: Dict[str, Any]) -> None:
        await self._relay_typing(session, data, "typing_start")

    async def _on_typing_stop(self, session: RealtimeSession, service: ChatService, data: Dict[str, Any]) -> None:
        await self._relay_typing(session, data, "typing_stop")

    async def _relay_typing(self, session: RealtimeSession, data: Dict[str, Any], event: str) -> None:
        payload = ConversationEvent.model_validate(data)
        if not self.rooms.is_member(session, payload.conversation_id):
            raise ValidationError("Join the conversation before sending typing indicators")
        await self.rooms.broadcast(payload.conversation_id, event, {
            "conversationId": payload.conversation_id,
            "userId": session.user_id,
            "userName": session.user_name,
        }, exclude=session)

    async def _on_send_message(self, session: RealtimeSession, service: ChatService, data: Dict[str, Any]) -> None:
        payload = SendMessageEvent.model_validate(data)
        result = await service.send_message(session.user_id, payload.conversation_id, payload.to_content())
        await session.emit("message_sent", {
            "clientMessageId": payload.client_message_id,
            "message": (await service.render_messages([result.message]))[0],
        })

    async def _on_mark_message_read(self, session: RealtimeSession, service: ChatService, data: Dict[str, Any]) -> None:
        payload = MarkMessageReadEvent.model_validate(data)
        await service.mark_message_read(payload.message_id, session.user_id)

    async def _on_mark_conversation_read(self, session: RealtimeSession, service: ChatService, data: Dict[str, Any]) -> None:
        payload = ConversationEvent.model_validate(data)
        await service.mark_conversation_read(payload.conversation_id, session.user_id)

    async def _on_ping(self, session: RealtimeSession, service: ChatService, data: Dict[str, Any]) -> None:
        await session.emit("pong", {"timestamp": utcnow()})
