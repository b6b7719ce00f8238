"""Server side of rtc-mesh: room registry and signaling relay."""

from rtc_mesh.server.relay import SignalingRelay, serve
from rtc_mesh.server.room_registry import Room, RoomRegistry

__all__ = ["Room", "RoomRegistry", "SignalingRelay", "serve"]
