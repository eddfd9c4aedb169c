# teleconsultation/rooms.py
#
# In-memory room registry for the signaling relay. Lives as long as the
# server process.
#
#   rooms       { room_name: { connection_id: Member } }
#   connections { connection_id: room_name }
#
# Only the event loop mutates it, so there is no lock.

from dataclasses import dataclass
from typing import Dict, List, Optional

from clinic.errors import RoleConflict


@dataclass
class Member:
    connection_id: str
    role: str
    channel_name: str
    user_id: Optional[str] = None


class RoomRegistry:

    def __init__(self):
        self._rooms: Dict[str, Dict[str, Member]] = {}
        self._connections: Dict[str, str] = {}

    # ── Mutations ─────────────────────────────────────────────────────────────

    def join(self, room_name, connection_id, role, channel_name, user_id=None):
        """Attach a connection; at most one doctor and one patient per room.

        Returns (member, left) where `left` is the leave() result for the room
        the connection switched away from, or None.
        """
        room = self._rooms.get(room_name, {})
        for other in room.values():
            if other.role == role and other.connection_id != connection_id:
                raise RoleConflict(f"The {role} is already in this room")

        # switching rooms leaves the old one
        left = None
        if self._connections.get(connection_id) not in (None, room_name):
            left = self.leave(connection_id)

        member = Member(connection_id, role, channel_name, user_id)
        self._rooms.setdefault(room_name, {})[connection_id] = member
        self._connections[connection_id] = room_name
        return member, left

    def leave(self, connection_id):
        """Detach a connection. Returns (room_name, member, survivors) or None."""
        room_name = self._connections.pop(connection_id, None)
        if room_name is None:
            return None
        room = self._rooms.get(room_name, {})
        member = room.pop(connection_id, None)
        survivors = list(room.values())
        if not room:
            self._rooms.pop(room_name, None)
        return room_name, member, survivors

    def clear(self):
        self._rooms.clear()
        self._connections.clear()

    # ── Queries ───────────────────────────────────────────────────────────────

    def member(self, connection_id) -> Optional[Member]:
        room_name = self._connections.get(connection_id)
        if room_name is None:
            return None
        return self._rooms.get(room_name, {}).get(connection_id)

    def room_of(self, connection_id) -> Optional[str]:
        return self._connections.get(connection_id)

    def members(self, room_name) -> List[Member]:
        return list(self._rooms.get(room_name, {}).values())

    def peer(self, connection_id) -> Optional[Member]:
        """The other participant in the caller's room, if any."""
        me = self.member(connection_id)
        if me is None:
            return None
        for other in self._rooms[self._connections[connection_id]].values():
            if other.connection_id != connection_id:
                return other
        return None

    def by_role(self, room_name, role) -> Optional[Member]:
        for member in self._rooms.get(room_name, {}).values():
            if member.role == role:
                return member
        return None

    def presence(self, room_name):
        roles = {m.role for m in self.members(room_name)}
        return {"doctorPresent": "doctor" in roles, "patientPresent": "patient" in roles}

    def is_ready(self, room_name) -> bool:
        presence = self.presence(room_name)
        return presence["doctorPresent"] and presence["patientPresent"]

    def stats(self):
        return {"activeRooms": len(self._rooms), "activeConnections": len(self._connections)}


registry = RoomRegistry()
