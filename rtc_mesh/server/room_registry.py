"""Authoritative room membership for the signaling relay.

The registry maps room ids to their ordered membership and current host. It
knows nothing about connections; the relay owns those. Every public method
takes the registry lock for its whole duration, so a join and a leave touching
the same room can never interleave, and callers only ever see copies of the
internal state.

Host selection is deterministic: the first member to join a room becomes its
host, and when the host leaves the earliest-joined remaining member takes over.
A room that empties keeps its entry with no host.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class Room:
    """Membership state of a single room.

    Attributes:
        room_id: Caller-chosen room identifier.
        members: Member ids in join order, without duplicates.
        host: Current host, always one of ``members``; None when empty.
    """

    room_id: str
    members: List[str] = field(default_factory=list)
    host: Optional[str] = None

    def snapshot(self) -> "Room":
        return Room(room_id=self.room_id, members=list(self.members), host=self.host)


class RoomRegistry:
    """Thread-safe registry of rooms, their members and hosts."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def join(self, room_id: str, member_id: str) -> List[str]:
        """Add a member to a room, creating the room on first use.

        Re-adding a member that is already present does not duplicate it.

        Args:
            room_id: Room to join.
            member_id: Joining member.

        Returns:
            The other members of the room in join order, excluding
            ``member_id`` itself.
        """
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = Room(room_id=room_id)
                self._rooms[room_id] = room
                logger.info(f"Created room {room_id}")

            if member_id in room.members:
                logger.info(f"{member_id} is already a member of {room_id}")
            else:
                room.members.append(member_id)
                logger.info(
                    f"{member_id} joined {room_id} ({len(room.members)} members)"
                )

            if room.host is None:
                room.host = member_id
                logger.info(f"{member_id} is now host of {room_id}")

            return [mid for mid in room.members if mid != member_id]

    def leave(self, member_id: str) -> List[str]:
        """Remove a member from every room it belongs to.

        Where the member was host, the earliest-joined remaining member
        becomes host, or the room is left empty with no host.

        Args:
            member_id: Departing member.

        Returns:
            Ids of the rooms the member was removed from.
        """
        left_rooms = []
        with self._lock:
            for room in self._rooms.values():
                if member_id not in room.members:
                    continue

                room.members.remove(member_id)
                left_rooms.append(room.room_id)
                logger.info(
                    f"{member_id} left {room.room_id} ({len(room.members)} remaining)"
                )

                if room.host == member_id:
                    room.host = room.members[0] if room.members else None
                    if room.host:
                        logger.info(f"{room.host} is now host of {room.room_id}")
                    else:
                        logger.info(f"{room.room_id} is empty")

        return left_rooms

    def members(self, room_id: str) -> List[str]:
        """Members of a room in join order; empty if the room is unknown."""
        with self._lock:
            room = self._rooms.get(room_id)
            return list(room.members) if room else []

    def host(self, room_id: str) -> Optional[str]:
        with self._lock:
            room = self._rooms.get(room_id)
            return room.host if room else None

    def rooms(self) -> Dict[str, Room]:
        """Copy of every room, keyed by room id. Empty rooms are included."""
        with self._lock:
            return {room_id: room.snapshot() for room_id, room in self._rooms.items()}

    def __contains__(self, room_id: str) -> bool:
        with self._lock:
            return room_id in self._rooms
