import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from tradedesk.services.realtime import ConnectionManager, PushEvent


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(payload)


def test_manager_rooms_and_exclusion():
    hub = ConnectionManager()
    a, b, dead = FakeSocket(), FakeSocket(), FakeSocket(fail=True)
    hub.connect(a, ["business:1", "conversation:9"])
    hub.connect(b, ["conversation:9"])
    hub.connect(dead, ["conversation:9"])

    asyncio.run(hub.publish([
        PushEvent("conversation:9", "typing_start", {"business_id": "1"}, exclude=a),
        PushEvent("business:1", "new_notification", {"title": "x"}),
    ]))
    assert b.sent == [{"event": "typing_start", "data": {"business_id": "1"}}]
    assert a.sent == [{"event": "new_notification", "data": {"title": "x"}}]
    # a failed send drops the connection from every room
    assert dead not in hub.memberships
    assert hub.members("conversation:9") == {a, b}

    hub.leave(b, "conversation:9")
    hub.disconnect(a)
    assert hub.rooms == {}


def _ws(client, party, **params):
    query = "&".join(f"{k}={v}" for k, v in {"token": party.token, **params}.items())
    return client.websocket_connect(f"/api/v1/ws?{query}")


def _join(ws, conversation_id):
    ws.send_json({"event": "join_conversation", "data": {"conversation_id": conversation_id}})
    reply = ws.receive_json()
    assert reply == {"event": "joined_conversation", "data": {"conversation_id": conversation_id}}


def test_handshake_without_token_is_closed(client):
    with client.websocket_connect("/api/v1/ws") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == 4001


def test_handshake_with_foreign_business_is_closed(client, buyer, seller):
    with _ws(client, buyer, business_id=seller.business_id) as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == 4001


def test_send_message_reaches_both_parties(client, buyer, seller, conversation):
    cid = conversation["conversation_id"]
    with _ws(client, seller) as s_ws, _ws(client, buyer) as b_ws:
        _join(s_ws, cid)
        _join(b_ws, cid)

        b_ws.send_json({"event": "send_message", "data": {"conversation_id": cid, "content": "Can you do 900?"}})

        echoed = b_ws.receive_json()
        assert echoed["event"] == "new_message"
        assert echoed["data"]["content"] == "Can you do 900?"

        frames = [s_ws.receive_json() for _ in range(3)]
        assert [f["event"] for f in frames] == ["new_message", "new_notification", "typing_stop"]
        assert frames[1]["data"]["title"] == "New Message"
        assert frames[2]["data"] == {"business_id": buyer.business_id, "conversation_id": cid}

    # persisted like a REST message
    messages = seller.get(f"/api/v1/chat/conversations/{cid}/messages").json()["messages"]
    assert [m["content"] for m in messages] == ["Can you do 900?"]


def test_typing_is_relayed_to_the_other_party(client, buyer, seller, conversation):
    cid = conversation["conversation_id"]
    with _ws(client, seller) as s_ws, _ws(client, buyer) as b_ws:
        _join(s_ws, cid)
        _join(b_ws, cid)
        b_ws.send_json({"event": "typing_start", "data": {"conversation_id": cid}})
        assert s_ws.receive_json() == {
            "event": "typing_start",
            "data": {"business_id": buyer.business_id, "conversation_id": cid},
        }


def test_typing_requires_joining(client, buyer, conversation):
    with _ws(client, buyer) as ws:
        ws.send_json({"event": "typing_start", "data": {"conversation_id": conversation["conversation_id"]}})
        reply = ws.receive_json()
    assert reply["event"] == "error"
    assert reply["data"]["status"] == 403


def test_outsider_cannot_join(client, register, conversation):
    outsider = register()
    with _ws(client, outsider) as ws:
        ws.send_json({"event": "join_conversation", "data": {"conversation_id": conversation["conversation_id"]}})
        reply = ws.receive_json()
    assert reply == {
        "event": "error",
        "data": {"message": "Access denied", "status": 403, "event": "join_conversation"},
    }


def test_bad_frames_get_error_events(client, buyer):
    with _ws(client, buyer) as ws:
        ws.send_text("not json")
        assert ws.receive_json() == {"event": "error", "data": {"message": "Invalid message format"}}
        ws.send_json({"event": "dance"})
        assert ws.receive_json()["data"]["message"] == "Unknown event: dance"
        ws.send_json({"event": "send_message", "data": {"conversation_id": "abc", "content": "x"}})
        assert ws.receive_json()["data"]["status"] == 400


def test_rest_message_pushes_notification(client, buyer, seller, conversation):
    with _ws(client, seller) as s_ws:
        r = buyer.post("/api/v1/chat/messages", json={
            "conversation_id": conversation["conversation_id"], "content": "over REST",
        })
        assert r.status_code == 201
        frame = s_ws.receive_json()
    assert frame["event"] == "new_notification"
    assert frame["data"]["message"] == "over REST"


def test_mark_read_over_socket(client, buyer, seller, conversation):
    cid = conversation["conversation_id"]
    buyer.post("/api/v1/chat/messages", json={"conversation_id": cid, "content": "unread"})
    with _ws(client, seller) as s_ws, _ws(client, buyer) as b_ws:
        _join(b_ws, cid)
        s_ws.send_json({"event": "mark_read", "data": {"conversation_id": cid}})
        assert b_ws.receive_json() == {
            "event": "messages_read",
            "data": {"business_id": seller.business_id, "conversation_id": cid},
        }
    notes = buyer.get(f"/api/v1/chat/conversations/{cid}/messages").json()["messages"]
    assert notes[0]["is_read"] is True


def test_order_created_is_pushed_to_seller(client, buyer, seller, conversation):
    with _ws(client, seller) as s_ws:
        buyer.post("/api/v1/chat/orders/create", json={
            "conversation_id": conversation["conversation_id"],
            "product_id": conversation["product_id"],
            "quantity": 1,
            "agreed_price": "950",
        })
        events = [s_ws.receive_json()["event"] for _ in range(2)]
    assert events == ["new_order", "new_notification"]
