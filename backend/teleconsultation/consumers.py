"""
teleconsultation/consumers.py

SignalingConsumer – WebRTC signalling between exactly two peers (doctor, patient)

Each socket gets a connection id on connect and must send join-room within
SIGNALING_JOIN_TIMEOUT seconds or it is closed with code 4008. Offers,
answers and ICE candidates are forwarded verbatim to the one other member of
the room; nothing is broadcast. A frame for a peer that isn't there is dropped.
"""

import asyncio
import logging
import uuid

from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings

from clinic.errors import ClinicError, InvalidInput

from . import protocol
from .rooms import registry

logger = logging.getLogger(__name__)

CLOSE_JOIN_TIMEOUT = 4008
MAX_ROOM_NAME = 100


class SignalingConsumer(AsyncWebsocketConsumer):

    async def connect(self):
        self.connection_id = str(uuid.uuid4())
        self.closed        = False
        self.group_name    = None
        await self.accept()
        self.join_timer = asyncio.ensure_future(self._join_deadline(settings.SIGNALING_JOIN_TIMEOUT))
        logger.debug("connection %s open", self.connection_id)

    async def disconnect(self, close_code):
        self.closed = True
        self._stop_timer()

        await self._announce_leave(registry.leave(self.connection_id), f"code={close_code}")

        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        if self.closed:
            return
        try:
            event, data = protocol.decode(text_data)
            handler = self.handlers.get(event)
            if handler is None:
                raise InvalidInput(f"Unknown event {event!r}")
            await handler(self, data)
        except ClinicError as exc:
            await self.send(text_data=protocol.error(exc.kind, exc.message))

    # ── Inbound events ────────────────────────────────────────────────────────

    async def on_join_room(self, data):
        room_name = data.get("roomName")
        role      = data.get("role")
        if not isinstance(room_name, str) or not room_name or len(room_name) > MAX_ROOM_NAME:
            raise InvalidInput("roomName is required")
        if role not in protocol.ROLES:
            raise InvalidInput("role must be 'doctor' or 'patient'")

        previous = registry.room_of(self.connection_id)
        try:
            _, left = registry.join(room_name, self.connection_id, role, self.channel_name, data.get("userId"))
        except ClinicError:
            logger.info("role conflict: %s already present in room %s", role, room_name)
            raise
        self._stop_timer()
        await self._announce_leave(left, f"moved to {room_name}")

        if previous is not None and previous != room_name and self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
            self.group_name = None
        group = protocol.room_group(room_name)
        if group and group != self.group_name:
            await self.channel_layer.group_add(group, self.channel_name)
            self.group_name = group

        peer = registry.peer(self.connection_id)
        await self.send(text_data=protocol.encode(protocol.JOINED, {
            "roomName"    : room_name,
            "role"        : role,
            "connectionId": self.connection_id,
            "peers"       : [peer.role] if peer else [],
        }))
        if peer is not None:
            await self._deliver(peer, protocol.USER_JOINED, {
                "roomName"    : room_name,
                "connectionId": self.connection_id,
                "role"        : role,
            })
        if registry.is_ready(room_name):
            ready = {"roomName": room_name, **registry.presence(room_name)}
            await self.send(text_data=protocol.encode(protocol.ROOM_READY, ready))
            await self._deliver(peer, protocol.ROOM_READY, ready)

        logger.info("%s joined room %s (connection %s)", role, room_name, self.connection_id)

    async def on_relay(self, event, data):
        """offer / answer / ice-candidate: payload goes to the peer untouched."""
        self._require_room(data)
        await self._deliver(registry.peer(self.connection_id), event, data)

    async def on_offer(self, data):
        await self.on_relay(protocol.OFFER, data)

    async def on_answer(self, data):
        await self.on_relay(protocol.ANSWER, data)

    async def on_ice_candidate(self, data):
        await self.on_relay(protocol.ICE_CANDIDATE, data)

    async def on_initiate_call(self, data):
        room_name = self._require_room(data)
        me = registry.member(self.connection_id)
        if me.role == "patient":
            raise InvalidInput("Only the doctor can initiate a call")
        payload = {"callType": "video", **data, "roomName": room_name}
        await self._deliver(registry.by_role(room_name, "patient"), protocol.INCOMING_CALL, payload)

    async def on_accept_call(self, data):
        room_name = self._require_room(data)
        await self._deliver(registry.peer(self.connection_id), protocol.CALL_ACCEPTED, {"roomName": room_name})

    async def on_reject_call(self, data):
        room_name = self._require_room(data)
        await self._deliver(registry.peer(self.connection_id), protocol.CALL_REJECTED, {"roomName": room_name})

    async def on_end_call(self, data):
        room_name = self._require_room(data)
        await self._deliver(registry.peer(self.connection_id), protocol.CALL_ENDED, {"roomName": room_name})

    handlers = {
        protocol.JOIN_ROOM    : on_join_room,
        protocol.OFFER        : on_offer,
        protocol.ANSWER       : on_answer,
        protocol.ICE_CANDIDATE: on_ice_candidate,
        protocol.INITIATE_CALL: on_initiate_call,
        protocol.ACCEPT_CALL  : on_accept_call,
        protocol.REJECT_CALL  : on_reject_call,
        protocol.END_CALL     : on_end_call,
    }

    # ── Channel-layer events ──────────────────────────────────────────────────

    async def signal_message(self, event):
        if self.closed:
            return
        await self.send(text_data=event["text"])

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _require_room(self, data):
        room_name = registry.room_of(self.connection_id)
        if room_name is None:
            raise InvalidInput("Send join-room first")
        if data.get("roomName") not in (None, room_name):
            raise InvalidInput("roomName does not match the joined room")
        return room_name

    async def _announce_leave(self, left, why):
        """Tell whoever is still in the room that this connection went away."""
        if left is None:
            return
        room_name, member, survivors = left
        for other in survivors:
            await self._deliver(other, protocol.USER_LEFT, {
                "roomName"    : room_name,
                "connectionId": self.connection_id,
                "role"        : member.role if member else None,
            })
        logger.info("%s left room %s (%s, %d remaining)",
                    member.role if member else "?", room_name, why, len(survivors))

    async def _deliver(self, member, event, data):
        if member is None:
            return
        await self.channel_layer.send(member.channel_name, {
            "type": "signal.message",
            "text": protocol.encode(event, data),
        })

    def _stop_timer(self):
        timer = getattr(self, "join_timer", None)
        if timer is not None and not timer.done():
            timer.cancel()

    async def _join_deadline(self, timeout):
        await asyncio.sleep(timeout)
        if self.closed or registry.member(self.connection_id) is not None:
            return
        logger.info("connection %s closed: no join-room within %ss", self.connection_id, timeout)
        await self.send(text_data=protocol.error("JoinTimeout", "join-room not received in time"))
        self.closed = True
        await self.close(code=CLOSE_JOIN_TIMEOUT)
