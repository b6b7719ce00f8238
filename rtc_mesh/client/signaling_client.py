"""Client end of the signaling relay connection."""

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

import websockets

from rtc_mesh.protocol import (
    MSG_JOIN_ROOM,
    ProtocolError,
    format_message,
    parse_message,
)

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)


class SignalingClient:
    """Speaks the rtc-mesh protocol to the relay for one member.

    Attributes:
        url: Relay WebSocket URL.
        room_id: Room to join.
        member_id: Id this client joins as and signs outbound frames with.
        websocket: Open connection, or None before ``connect``.
    """

    def __init__(self, url: str, room_id: str, member_id: str):
        self.url = url
        self.room_id = room_id
        self.member_id = member_id
        self.websocket: Optional["ClientConnection"] = None

    async def connect(self):
        self.websocket = await websockets.connect(self.url)
        logger.info(f"Connected to signaling relay at {self.url}")

    async def join(self):
        await self._send(
            format_message(MSG_JOIN_ROOM, room_id=self.room_id, member_id=self.member_id)
        )
        logger.info(f"Joining {self.room_id} as {self.member_id}")

    async def send_signal(
        self, msg_type: str, payload: Dict[str, Any], target_id: Optional[str] = None
    ):
        """Send an offer, answer or candidate addressed to ``target_id``."""
        await self._send(
            format_message(
                msg_type,
                payload=payload,
                room_id=self.room_id,
                member_id=self.member_id,
                target_id=target_id,
            )
        )

    async def listen(self, on_message: Callable[[Dict[str, Any]], Awaitable[None]]):
        """Feed every valid frame to ``on_message`` until the relay closes."""
        try:
            async for raw in self.websocket:
                try:
                    data = parse_message(raw)
                except ProtocolError as e:
                    logger.warning(f"Dropped frame from relay: {e}")
                    continue

                try:
                    await on_message(data)
                except Exception as e:
                    logger.error(f"Failed to handle {data.get('type')} frame: {e}")
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"Signaling connection closed: {e}")

    async def close(self):
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None

    async def _send(self, message: str):
        if self.websocket is None:
            raise ConnectionError("Signaling client is not connected")
        await self.websocket.send(message)
