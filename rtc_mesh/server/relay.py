"""WebSocket signaling relay for room-based mesh sessions.

The relay terminates one WebSocket per participant. It records which member
each connection speaks for, keeps the RoomRegistry up to date, and forwards
offers, answers and ICE candidates without looking at their payloads.

Addressed frames (those carrying ``target_id``) are delivered only to the
connection of that member. Frames without a target go to every other member
of the sender's room, and receivers drop the ones they cannot use.

Delivery is fire-and-forget: a failed send to one member is logged and does
not stop delivery to the others.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Tuple

import websockets

from rtc_mesh.protocol import (
    ERROR_ALREADY_JOINED,
    ERROR_INVALID_MESSAGE,
    ERROR_UNKNOWN_MEMBER,
    ERROR_UNKNOWN_ROOM,
    MSG_ERROR,
    MSG_EXISTING_USERS,
    MSG_JOIN_ROOM,
    MSG_USER_CONNECTED,
    MSG_USER_DISCONNECTED,
    RELAYED_TYPES,
    ProtocolError,
    format_message,
    parse_message,
    require_id,
)
from rtc_mesh.server.room_registry import RoomRegistry

if TYPE_CHECKING:
    from websockets.asyncio.server import ServerConnection

logger = logging.getLogger(__name__)


class RelayError(ProtocolError):
    """A well-formed frame the relay cannot act on.

    Attributes:
        reason: Error code sent back to the client.
    """

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class SignalingRelay:
    """Routes signaling frames between members of the same room.

    Attributes:
        registry: Room membership shared by every connection.
    """

    def __init__(self, registry: Optional[RoomRegistry] = None):
        self.registry = registry if registry is not None else RoomRegistry()

        # room_id -> member_id -> connection
        self._connections: Dict[str, Dict[str, "ServerConnection"]] = {}
        # connection -> (room_id, member_id)
        self._memberships: Dict["ServerConnection", Tuple[str, str]] = {}

    async def handler(self, websocket: "ServerConnection"):
        """Serve one participant connection until it closes."""
        logger.info(f"Connection opened: {websocket.remote_address}")

        try:
            async for message in websocket:
                try:
                    data = parse_message(message)
                    await self._dispatch(websocket, data)
                except RelayError as e:
                    logger.warning(f"Dropped frame: {e}")
                    await self._send_error(websocket, e.reason, str(e))
                except ProtocolError as e:
                    logger.warning(f"Dropped invalid frame: {e}")
                    await self._send_error(websocket, ERROR_INVALID_MESSAGE, str(e))

        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Connection closed: {self.member_of(websocket)}")
        finally:
            await self.disconnect(websocket)

    def member_of(self, websocket) -> Optional[Tuple[str, str]]:
        """(room_id, member_id) a connection joined as, or None."""
        return self._memberships.get(websocket)

    async def _dispatch(self, websocket, data):
        msg_type = data["type"]

        if msg_type == MSG_JOIN_ROOM:
            await self.join(websocket, require_id(data, "room_id"), require_id(data, "member_id"))
        elif msg_type in RELAYED_TYPES:
            await self.relay(websocket, data)
        else:
            raise ProtocolError(f"Clients may not send {msg_type}")

    async def join(self, websocket, room_id: str, member_id: str):
        """Handle join-room: register the member and tell everyone who is here.

        Other members receive user-connected first, then the joining
        connection receives existing-users.
        """
        current = self._memberships.get(websocket)
        if current is not None and current != (room_id, member_id):
            raise RelayError(
                ERROR_ALREADY_JOINED,
                f"Connection already joined {current[0]} as {current[1]}",
            )

        existing = self.registry.join(room_id, member_id)

        room_connections = self._connections.setdefault(room_id, {})
        previous = room_connections.get(member_id)
        if previous is not None and previous is not websocket:
            logger.warning(
                f"Member id {member_id} reused in {room_id}; "
                "routing to the newest connection"
            )
        room_connections[member_id] = websocket
        self._memberships[websocket] = (room_id, member_id)

        if current is None:
            await self.broadcast(
                room_id,
                format_message(MSG_USER_CONNECTED, member_id=member_id),
                exclude=member_id,
            )

        await self._send_all(
            [websocket], format_message(MSG_EXISTING_USERS, members=existing)
        )
        logger.info(f"{member_id} joined {room_id}; existing members: {existing}")

    async def relay(self, websocket, data):
        """Forward an offer, answer or ICE candidate within the sender's room."""
        membership = self._memberships.get(websocket)
        if membership is None:
            raise RelayError(
                ERROR_UNKNOWN_MEMBER, f"{data['type']} sent before join-room"
            )

        own_room, own_member = membership
        room_id = data.get("room_id", own_room)
        if room_id != own_room:
            raise RelayError(
                ERROR_UNKNOWN_ROOM,
                f"{own_member} is not a member of {room_id}",
            )

        sender_id = own_member
        if data.get("member_id") is not None:
            sender_id = require_id(data, "member_id")

        target_id = None
        if data.get("target_id") is not None:
            target_id = require_id(data, "target_id")
        message = format_message(
            data["type"],
            payload=data.get("payload"),
            member_id=sender_id,
            target_id=target_id,
        )

        if target_id is None:
            await self.broadcast(room_id, message, exclude=own_member)
            logger.debug(f"Fanned out {data['type']} from {sender_id} in {room_id}")
            return

        target = self._connections.get(room_id, {}).get(target_id)
        if target is None or target is websocket:
            raise RelayError(
                ERROR_UNKNOWN_MEMBER, f"{target_id} is not connected to {room_id}"
            )

        await self._send_all([target], message)
        logger.debug(f"Forwarded {data['type']} from {sender_id} to {target_id}")

    async def disconnect(self, websocket):
        """Drop a connection's membership and announce the departure."""
        membership = self._memberships.pop(websocket, None)
        if membership is None:
            return

        room_id, member_id = membership
        room_connections = self._connections.get(room_id, {})
        if room_connections.get(member_id) is websocket:
            del room_connections[member_id]
        if not room_connections:
            self._connections.pop(room_id, None)

        departed_rooms = self.registry.leave(member_id)
        message = format_message(MSG_USER_DISCONNECTED, member_id=member_id)
        for departed_room in departed_rooms:
            await self.broadcast(departed_room, message, exclude=member_id)

        logger.info(f"{member_id} disconnected from {departed_rooms}")

    async def broadcast(self, room_id: str, message: str, exclude: Optional[str] = None):
        """Send a frame to every connected member of a room except ``exclude``."""
        targets = [
            connection
            for member_id, connection in self._connections.get(room_id, {}).items()
            if member_id != exclude
        ]
        await self._send_all(targets, message)

    async def _send_all(self, connections: Iterable, message: str):
        connections = list(connections)
        results = await asyncio.gather(
            *(connection.send(message) for connection in connections),
            return_exceptions=True,
        )
        for connection, result in zip(connections, results):
            if isinstance(result, Exception):
                logger.warning(
                    f"Failed to deliver to {self.member_of(connection)}: {result}"
                )

    async def _send_error(self, websocket, reason: str, message: str):
        await self._send_all(
            [websocket], format_message(MSG_ERROR, reason=reason, message=message)
        )


async def serve(host: str, port: int, registry: Optional[RoomRegistry] = None):
    """Run the signaling relay until cancelled."""
    relay = SignalingRelay(registry)
    async with websockets.serve(relay.handler, host, port):
        logger.info(f"Signaling relay running on ws://{host}:{port}")
        await asyncio.Future()
