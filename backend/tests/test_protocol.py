import json

import pytest

from clinic.errors import InvalidInput, RoleConflict
from teleconsultation import protocol
from teleconsultation.rooms import RoomRegistry


# ── wire format ──────────────────────────────────────────────────────────────

def test_encode_wraps_event_and_data():
    assert json.loads(protocol.encode("joined", {"role": "doctor"})) == {"event": "joined", "data": {"role": "doctor"}}
    assert json.loads(protocol.encode("call-ended")) == {"event": "call-ended", "data": {}}


def test_decode_defaults_missing_data():
    assert protocol.decode('{"event": "end-call"}') == ("end-call", {})


@pytest.mark.parametrize("text", [
    "",
    "not json",
    "[1, 2]",
    '{"data": {}}',
    '{"event": "", "data": {}}',
    '{"event": "offer", "data": "sdp"}',
])
def test_decode_rejects_malformed_frames(text):
    with pytest.raises(InvalidInput):
        protocol.decode(text)


def test_error_frame():
    frame = json.loads(protocol.error("RoleConflict", "The doctor is already in this room"))
    assert frame["event"] == "error"
    assert frame["data"]["code"] == "RoleConflict"


def test_room_group_names():
    assert protocol.room_group("dr0123456789abcdef01234567") == "room_dr0123456789abcdef01234567"
    assert protocol.room_group("has spaces") is None
    assert protocol.room_group(None) is None
    assert protocol.room_group("x" * 91) is None


# ── registry ─────────────────────────────────────────────────────────────────

@pytest.fixture
def rooms():
    return RoomRegistry()


def test_one_member_per_role(rooms):
    rooms.join("r1", "c1", "doctor", "chan-1")
    rooms.join("r1", "c2", "patient", "chan-2")

    with pytest.raises(RoleConflict):
        rooms.join("r1", "c3", "doctor", "chan-3")
    assert rooms.is_ready("r1")
    assert rooms.peer("c1").connection_id == "c2"
    assert rooms.by_role("r1", "patient").channel_name == "chan-2"


def test_rejoin_same_connection_is_allowed(rooms):
    rooms.join("r1", "c1", "doctor", "chan-1")
    rooms.join("r1", "c1", "doctor", "chan-1")
    assert rooms.stats() == {"activeRooms": 1, "activeConnections": 1}


def test_switching_rooms_leaves_the_old_one(rooms):
    rooms.join("r1", "c1", "doctor", "chan-1")
    rooms.join("r1", "c2", "patient", "chan-2")

    member, (room_name, gone, survivors) = rooms.join("r2", "c1", "doctor", "chan-1")
    assert member.role == "doctor"
    assert (room_name, gone.connection_id) == ("r1", "c1")
    assert [s.connection_id for s in survivors] == ["c2"]
    assert rooms.join("r2", "c1", "doctor", "chan-1")[1] is None
    assert [m.connection_id for m in rooms.members("r1")] == ["c2"]
    assert rooms.room_of("c1") == "r2"
    assert rooms.stats() == {"activeRooms": 2, "activeConnections": 2}


def test_leave_reports_survivors_and_drops_empty_rooms(rooms):
    rooms.join("r1", "c1", "doctor", "chan-1")
    rooms.join("r1", "c2", "patient", "chan-2")

    room_name, member, survivors = rooms.leave("c2")
    assert (room_name, member.role) == ("r1", "patient")
    assert [s.connection_id for s in survivors] == ["c1"]
    assert rooms.presence("r1") == {"doctorPresent": True, "patientPresent": False}

    rooms.leave("c1")
    assert rooms.stats() == {"activeRooms": 0, "activeConnections": 0}
    assert rooms.leave("c1") is None
