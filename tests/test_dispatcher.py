import json

import pytest

from dispatcher import decode_frame
from errors import InvalidRequest, ParseError, UnknownMessageType
from schemas.messages import CreateRoomMessage, GameType, SignalMessage


def payloads_for(outbound, connection_id):
    return [item.payload for item in outbound if connection_id in item.recipients]


def only(outbound, connection_id):
    [payload] = payloads_for(outbound, connection_id)
    return payload


# ---- decoding ----

@pytest.mark.parametrize("raw", ["not json", "[1, 2]", "42", "{}", '{"type": 5}', '{"type": ""}', b"\xff\xfe"])
def test_decode_rejects_malformed_frames(raw):
    with pytest.raises(ParseError):
        decode_frame(raw)


def test_decode_deeply_nested_frame_is_parse_error():
    raw = '{"type": "chat", "text": "hi", "payload": ' + "[" * 200000 + "]" * 200000 + "}"
    with pytest.raises(ParseError):
        decode_frame(raw)


def test_deeply_nested_frame_is_dropped_and_host_keeps_room(message_router, connect, send, store):
    a = connect()
    room_id = only(send(a, type="createRoom", gameType="75ball"), a)["roomId"]

    assert message_router.handle_frame(a, "[" * 200000 + "]" * 200000) == []

    assert store.get_room(room_id).host_id == a
    assert only(send(a, type="startGame"), a)["type"] == "gameStarted"


def test_number_call_is_not_coerced():
    for number in ('"42"', "42.0", "true"):
        with pytest.raises(InvalidRequest):
            decode_frame('{"type": "numberCall", "number": %s}' % number)
    assert decode_frame('{"type": "numberCall", "number": 42}').number == 42


def test_decode_unknown_type():
    with pytest.raises(UnknownMessageType) as exc_info:
        decode_frame('{"type": "dance"}')
    assert exc_info.value.kind == "dance"


def test_decode_known_type_with_bad_fields_is_invalid_request():
    with pytest.raises(InvalidRequest):
        decode_frame('{"type": "numberCall", "number": "forty-two"}')
    with pytest.raises(InvalidRequest):
        decode_frame('{"type": "createRoom", "gameType": "bingo-9000"}')
    with pytest.raises(InvalidRequest):
        decode_frame('{"type": "joinRoom"}')


def test_decode_camel_case_fields():
    message = decode_frame('{"type": "createRoom", "gameType": "75ball", "roomName": "Lobby", "capacity": 10}')
    assert isinstance(message, CreateRoomMessage)
    assert message.game_type is GameType.BALL_75
    assert message.room_name == "Lobby"
    assert message.capacity == 10

    signal = decode_frame(b'{"type": "candidate", "targetId": "abc", "payload": {"sdpMid": "0"}}')
    assert isinstance(signal, SignalMessage)
    assert signal.target_id == "abc"
    assert signal.payload == {"sdpMid": "0"}


# ---- routing ----

def test_connect_sends_welcome(message_router, registry):
    connection_id, outbound = message_router.handle_connect()
    welcome = only(outbound, connection_id)
    assert welcome == {
        "type": "welcome",
        "connectionId": connection_id,
        "name": registry.lookup(connection_id).display_name,
    }


def test_malformed_and_unknown_frames_get_no_reply(message_router, connect, send):
    a = connect()
    assert message_router.handle_frame(a, "{{{") == []
    assert send(a, type="teleport") == []


def test_invalid_fields_get_error_reply(connect, send):
    a = connect()
    reply = only(send(a, type="numberCall", number="lots"), a)
    assert reply["type"] == "error"
    assert reply["code"] == "InvalidRequest"
    assert "number" in reply["message"]


def test_create_join_call_scenario(connect, send, store):
    a = connect()
    b = connect()

    created = only(send(a, type="createRoom", gameType="75ball"), a)
    assert created["type"] == "roomCreated"
    assert created["hostId"] == a
    assert created["gameType"] == "75ball"
    room_id = created["roomId"]

    outbound = send(b, type="joinRoom", roomId=room_id)
    joined = only(outbound, b)
    assert joined["type"] == "roomJoined"
    assert [m["id"] for m in joined["members"]] == [a, b]
    assert joined["calledNumbers"] == []
    assert joined["gameActive"] is False
    player_joined = only(outbound, a)
    assert player_joined["type"] == "playerJoined"
    assert player_joined["playerId"] == b

    outbound = send(a, type="startGame")
    assert only(outbound, a) == {"type": "gameStarted", "roomId": room_id}
    assert only(outbound, b) == {"type": "gameStarted", "roomId": room_id}

    outbound = send(a, type="numberCall", number=42)
    for connection_id in (a, b):
        called = only(outbound, connection_id)
        assert called["type"] == "numberCalled"
        assert called["number"] == 42
        assert called["calledNumbers"] == [42]

    outbound = send(b, type="numberCall", number=7)
    assert payloads_for(outbound, a) == []
    error = only(outbound, b)
    assert error["type"] == "error"
    assert error["code"] == "Unauthorized"
    assert store.get_room(room_id).called_numbers == [42]


def test_duplicate_and_inactive_calls(connect, send):
    a = connect()
    send(a, type="createRoom", gameType="90ball")

    assert only(send(a, type="numberCall", number=3), a)["code"] == "NotActive"
    send(a, type="startGame")
    send(a, type="numberCall", number=3)
    assert only(send(a, type="numberCall", number=3), a)["code"] == "Duplicate"

    stopped = only(send(a, type="stopGame"), a)
    assert stopped["type"] == "gameStopped"
    assert stopped["calledNumbers"] == [3]


def test_game_commands_outside_room_are_not_found(connect, send):
    a = connect()
    for frame in ({"type": "startGame"}, {"type": "stopGame"}, {"type": "numberCall", "number": 1}):
        assert only(send(a, **frame), a)["code"] == "NotFound"


def test_host_disconnect_hands_off_and_notifies_remaining(message_router, connect, send, registry):
    a, b, c = connect(), connect(), connect()
    room_id = only(send(a, type="createRoom", gameType="pattern"), a)["roomId"]
    send(b, type="joinRoom", roomId=room_id)
    send(c, type="joinRoom", roomId=room_id)

    outbound = message_router.handle_disconnect(a)

    for connection_id in (b, c):
        received = payloads_for(outbound, connection_id)
        assert [p["type"] for p in received] == ["playerLeft", "newHost"]
        assert received[1]["hostId"] == b
    assert payloads_for(outbound, a) == []
    assert registry.lookup(b).is_host
    assert registry.lookup(a).connected is False


def test_disconnect_after_explicit_leave_is_safe(message_router, connect, send, store):
    a, b = connect(), connect()
    room_id = only(send(a, type="createRoom", gameType="75ball"), a)["roomId"]
    send(b, type="joinRoom", roomId=room_id)

    outbound = send(b, type="leaveRoom", roomId=room_id)
    assert only(outbound, b) == {"type": "roomLeft", "roomId": room_id}
    assert only(outbound, a)["type"] == "playerLeft"

    assert message_router.handle_disconnect(b) == []
    assert message_router.handle_disconnect(b) == []
    assert list(store.get_room(room_id).members) == [a]


def test_last_leave_then_join_is_not_found(connect, send):
    a, b = connect(), connect()
    room_id = only(send(a, type="createRoom", gameType="75ball"), a)["roomId"]

    assert only(send(a, type="leaveRoom", roomId=room_id), a)["type"] == "roomLeft"

    error = only(send(b, type="joinRoom", roomId=room_id), b)
    assert error["code"] == "NotFound"


def test_join_errors_are_replied(connect, send):
    a, b = connect(), connect()
    room_id = only(send(a, type="createRoom", gameType="75ball", capacity=1), a)["roomId"]

    assert only(send(b, type="joinRoom", roomId=room_id), b)["code"] == "Full"
    other = only(send(b, type="createRoom", gameType="30ball"), b)["roomId"]
    assert only(send(a, type="joinRoom", roomId=other), a)["code"] == "AlreadyInRoom"


def test_frames_from_closed_connection_are_ignored(message_router, connect, send):
    a = connect()
    message_router.handle_disconnect(a)
    assert send(a, type="createRoom", gameType="75ball") == []


def test_register_updates_name_and_profile(connect, send, registry):
    a = connect()
    reply = only(send(a, type="register", name="  Abebe ", phone="0911", stake=10, board=[1, 2, 3]), a)

    assert reply == {"type": "registered", "connectionId": a, "name": "Abebe"}
    connection = registry.lookup(a)
    assert connection.display_name == "Abebe"
    assert connection.profile == {"phone": "0911", "stake": 10.0, "board": [1, 2, 3]}


def test_register_blank_name_is_rejected(connect, send, registry):
    a = connect()
    original = registry.lookup(a).display_name
    assert only(send(a, type="register", name="   "), a)["code"] == "InvalidRequest"
    assert registry.lookup(a).display_name == original


def test_registered_name_shows_up_for_room(connect, send):
    a, b = connect(), connect()
    send(b, type="register", name="Hana")
    room_id = only(send(a, type="createRoom", gameType="75ball"), a)["roomId"]

    outbound = send(b, type="joinRoom", roomId=room_id)
    assert only(outbound, a)["name"] == "Hana"
    assert [m["name"] for m in only(outbound, b)["members"]][1] == "Hana"


def test_chat_is_broadcast_to_whole_room(connect, send):
    a, b, outsider = connect(), connect(), connect()
    room_id = only(send(a, type="createRoom", gameType="75ball"), a)["roomId"]
    send(b, type="joinRoom", roomId=room_id)

    outbound = send(b, type="chat", text="bingo soon")

    for connection_id in (a, b):
        chat = only(outbound, connection_id)
        assert chat["type"] == "chat"
        assert chat["fromId"] == b
        assert chat["text"] == "bingo soon"
    assert payloads_for(outbound, outsider) == []


def test_chat_rules(connect, send):
    a = connect()
    assert only(send(a, type="chat", text="hello?"), a)["code"] == "NotFound"
    send(a, type="createRoom", gameType="75ball")
    assert only(send(a, type="chat", text="hi", roomId="elsewhere"), a)["code"] == "InvalidRequest"
    assert only(send(a, type="chat", text=""), a)["code"] == "InvalidRequest"


def test_error_reply_shape_is_stable(connect, send):
    a = connect()
    reply = only(send(a, type="joinRoom", roomId="nowhere"), a)
    assert set(reply) == {"type", "code", "message"}
    assert json.loads(json.dumps(reply)) == reply


def test_leave_room_not_joined_is_not_found(connect, send, store):
    a, b = connect(), connect()
    room_id = only(send(a, type="createRoom", gameType="75ball"), a)["roomId"]

    outbound = send(b, type="leaveRoom", roomId=room_id)

    error = only(outbound, b)
    assert error["type"] == "error"
    assert error["code"] == "NotFound"
    assert payloads_for(outbound, a) == []
    assert list(store.get_room(room_id).members) == [a]
