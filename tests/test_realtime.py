import asyncio

import pytest
from bson import ObjectId
from starlette.websockets import WebSocketDisconnect

from hashview_chat.database.connection import get_database
from hashview_chat.services.realtime_gateway import WS_FORBIDDEN, WS_UNAUTHORIZED


def _join(ws, conversation_id):
    ws.send_json({"event": "join_conversation", "data": {"conversationId": conversation_id}})
    return ws.receive_json()


def test_handshake_without_token_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws"):
            pass
    assert exc.value.code == WS_UNAUTHORIZED


def test_handshake_with_bad_token_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert exc.value.code == WS_UNAUTHORIZED


def test_disabled_account_is_rejected(client, alice):
    async def disable():
        await get_database()["users"].update_one({"_id": ObjectId(alice.id)}, {"$set": {"is_active": False}})

    client.portal.call(disable)

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/ws?token={alice.token}"):
            pass
    assert exc.value.code == WS_FORBIDDEN


def test_bearer_header_is_accepted(client, alice):
    with client.websocket_connect("/ws", headers=alice.headers) as ws:
        ws.send_json({"event": "ping"})
        assert ws.receive_json()["event"] == "pong"


def test_join_requires_participation(client, alice, bob, carol, direct_chat):
    with client.websocket_connect(f"/ws?token={carol.token}") as ws:
        frame = _join(ws, direct_chat)
        assert frame["event"] == "error"
        assert frame["data"]["message"] == "Conversation not found"

    with client.websocket_connect(f"/ws?token={alice.token}") as ws:
        frame = _join(ws, direct_chat)
        assert frame == {"event": "joined_conversation", "data": {"conversationId": direct_chat}}


def test_message_reaches_joined_recipient(client, alice, bob, direct_chat, api_push):
    with client.websocket_connect(f"/ws?token={alice.token}") as ws_a, \
            client.websocket_connect(f"/ws?token={bob.token}") as ws_b:
        _join(ws_a, direct_chat)
        _join(ws_b, direct_chat)

        ws_a.send_json({
            "event": "send_message",
            "data": {"conversationId": direct_chat, "text": "hello bob", "clientMessageId": "tmp-1"},
        })

        received = ws_b.receive_json()
        assert received["event"] == "new_message"
        assert received["data"]["message"]["text"] == "hello bob"
        assert received["data"]["conversation"]["unreadCounts"][bob.id] == 1
        assert ws_b.receive_json()["event"] == "message_delivered"

        events_a = [ws_a.receive_json() for _ in range(3)]
        assert [e["event"] for e in events_a] == ["new_message", "message_delivered", "message_sent"]
        assert events_a[2]["data"]["clientMessageId"] == "tmp-1"

    assert api_push.calls == []


def test_conversation_read_is_broadcast(client, alice, bob, direct_chat):
    client.post("/messages", json={"conversationId": direct_chat, "text": "hi"}, headers=alice.headers)

    with client.websocket_connect(f"/ws?token={alice.token}") as ws_a:
        _join(ws_a, direct_chat)

        response = client.patch(f"/conversations/{direct_chat}/read", headers=bob.headers)
        assert response.status_code == 200

        frame = ws_a.receive_json()
        assert frame["event"] == "conversation_read"
        assert frame["data"]["readBy"] == bob.id
        assert frame["data"]["unreadCounts"][bob.id] == 0


def test_typing_is_relayed_to_others_only(client, alice, bob, direct_chat):
    with client.websocket_connect(f"/ws?token={alice.token}") as ws_a, \
            client.websocket_connect(f"/ws?token={bob.token}") as ws_b:
        _join(ws_a, direct_chat)
        _join(ws_b, direct_chat)

        ws_a.send_json({"event": "typing_start", "data": {"conversationId": direct_chat}})
        frame = ws_b.receive_json()
        assert frame["event"] == "typing_start"
        assert frame["data"]["userId"] == alice.id
        assert frame["data"]["userName"] == "Alice"

        # the sender gets nothing back for its own typing event
        ws_a.send_json({"event": "ping"})
        assert ws_a.receive_json()["event"] == "pong"


def test_typing_before_join_is_an_error(client, alice, direct_chat):
    with client.websocket_connect(f"/ws?token={alice.token}") as ws:
        ws.send_json({"event": "typing_stop", "data": {"conversationId": direct_chat}})
        frame = ws.receive_json()
        assert frame["event"] == "error"
        assert frame["data"]["event"] == "typing_stop"


def test_bad_frames_keep_the_connection_open(client, alice):
    with client.websocket_connect(f"/ws?token={alice.token}") as ws:
        ws.send_text("{not json")
        assert ws.receive_json() == {"event": "error", "data": {"message": "Invalid JSON frame"}}

        ws.send_bytes(b"\x00\x01")
        assert ws.receive_json() == {"event": "error", "data": {"message": "Frames must be JSON text"}}

        ws.send_json({"event": "launch_rockets", "data": {}})
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"event": "send_message", "data": {"conversationId": "x"}})
        frame = ws.receive_json()
        assert frame["event"] == "error"
        assert frame["data"]["message"] == "Validation failed"

        ws.send_json({"event": "ping"})
        assert ws.receive_json()["event"] == "pong"


def test_presence_follows_connection(client, alice, bob):
    with client.websocket_connect(f"/ws?token={bob.token}") as ws:
        ws.send_json({"event": "ping"})
        ws.receive_json()
        assert client.get(f"/presence/{bob.id}", headers=alice.headers).json()["data"]["online"] is True

    assert client.get(f"/presence/{bob.id}", headers=alice.headers).json()["data"]["online"] is False


def test_offline_participant_is_pushed_once(client, alice, bob, direct_chat, api_push):
    client.post("/devices/register", json={"platform": "fcm", "token": "bob-phone"}, headers=bob.headers)

    with client.websocket_connect(f"/ws?token={alice.token}") as ws_a:
        _join(ws_a, direct_chat)
        ws_a.send_json({"event": "send_message", "data": {"conversationId": direct_chat, "text": "ping?"}})
        assert ws_a.receive_json()["event"] == "new_message"
        assert ws_a.receive_json()["event"] == "message_sent"

    assert len(api_push.calls) == 1
    assert api_push.calls[0]["tokens"] == ["bob-phone"]


def test_join_and_leave_accept_bare_conversation_id(client, alice, bob, direct_chat):
    with client.websocket_connect(f"/ws?token={alice.token}") as ws:
        ws.send_json({"event": "join_conversation", "data": direct_chat})
        assert ws.receive_json() == {"event": "joined_conversation", "data": {"conversationId": direct_chat}}

        ws.send_json({"event": "leave_conversation", "data": direct_chat})
        assert ws.receive_json() == {"event": "left_conversation", "data": {"conversationId": direct_chat}}

        ws.send_json({"event": "join_conversation", "data": ["not", "an", "id"]})
        assert ws.receive_json()["event"] == "error"


class RecordingBus:

    enabled = True

    def __init__(self) -> None:
        self.calls = []

    async def set_presence(self, user_id, ttl_seconds=60):
        self.calls.append(("set", user_id))

    async def clear_presence(self, user_id):
        self.calls.append(("clear", user_id))

    async def is_present(self, user_id):
        return False

    async def close(self):
        return None


def test_presence_heartbeat_ends_with_the_session(client, alice, monkeypatch):
    bus = RecordingBus()
    monkeypatch.setattr(client.app.state.gateway, "_bus", bus)

    with client.websocket_connect(f"/ws?token={alice.token}") as ws:
        ws.send_json({"event": "ping"})
        ws.receive_json()

    async def heartbeats():
        return [
            task for task in asyncio.all_tasks()
            if task.get_coro().__qualname__.endswith("_presence_heartbeat") and not task.done()
        ]

    assert client.portal.call(heartbeats) == []
    assert bus.calls[0] == ("set", alice.id)
    assert bus.calls[-1] == ("clear", alice.id)
