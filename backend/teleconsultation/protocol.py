# teleconsultation/protocol.py
#
# Signaling wire format. Every frame is one JSON object:
#
#   {"event": "offer", "data": {"roomName": "dr3f…", "sdp": "..."}}
#
# Errors travel back to the sender as
#
#   {"event": "error", "data": {"code": "RoleConflict", "message": "..."}}

import json
import re

from clinic.errors import InvalidInput

# inbound
JOIN_ROOM     = "join-room"
OFFER         = "offer"
ANSWER        = "answer"
ICE_CANDIDATE = "ice-candidate"
INITIATE_CALL = "initiate-call"
ACCEPT_CALL   = "accept-call"
REJECT_CALL   = "reject-call"
END_CALL      = "end-call"

# outbound
JOINED        = "joined"
USER_JOINED   = "user-joined"
ROOM_READY    = "room-ready"
USER_LEFT     = "user-left"
INCOMING_CALL = "incoming-call"
CALL_ACCEPTED = "call-accepted"
CALL_REJECTED = "call-rejected"
CALL_ENDED    = "call-ended"
ERROR         = "error"

INBOUND_EVENTS = (
    JOIN_ROOM, OFFER, ANSWER, ICE_CANDIDATE,
    INITIATE_CALL, ACCEPT_CALL, REJECT_CALL, END_CALL,
)

ROLES = ("doctor", "patient")

GROUP_NAME_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,90}$")


def encode(event: str, data=None) -> str:
    return json.dumps({"event": event, "data": data if data is not None else {}})


def decode(text):
    """Return (event, data) or raise InvalidInput for anything malformed."""
    if not text:
        raise InvalidInput("Empty frame")
    try:
        frame = json.loads(text)
    except (TypeError, ValueError):
        raise InvalidInput("Frame is not valid JSON")
    if not isinstance(frame, dict):
        raise InvalidInput("Frame must be a JSON object")

    event = frame.get("event")
    data = frame.get("data", {})
    if not isinstance(event, str) or not event:
        raise InvalidInput("Frame has no event")
    if not isinstance(data, dict):
        raise InvalidInput("Frame data must be an object")
    return event, data


def error(code: str, message: str) -> str:
    return encode(ERROR, {"code": code, "message": message})


def room_group(room_name):
    """Channel-layer group for a room, or None when the name can't be a group name."""
    if isinstance(room_name, str) and GROUP_NAME_RE.match(room_name):
        return f"room_{room_name}"
    return None
