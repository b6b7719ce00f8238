"""Full-mesh topology maintenance for one room member.

The MeshController keeps one PeerSession per other member of the room. It
reacts to the relay's membership notifications:

- existing-users: create a session per listed member and offer to each
- user-connected: create a session for the newcomer and offer to it
- user-disconnected: close that member's session and drop its view

and routes relayed offers, answers and candidates to the session of the
member that sent them.

Sessions are always created, even before local media exists. Without local
tracks a session is receive-only and does not originate an offer; the remote
side offers instead. When media becomes available later, ``attach_local_media``
adds tracks to every session still waiting in IDLE and offers from there.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from rtc_mesh.client.peer_session import PeerSession, SessionState
from rtc_mesh.protocol import (
    MSG_ANSWER,
    MSG_ERROR,
    MSG_EXISTING_USERS,
    MSG_ICE_CANDIDATE,
    MSG_OFFER,
    MSG_USER_CONNECTED,
    MSG_USER_DISCONNECTED,
)

if TYPE_CHECKING:
    from rtc_mesh.client.media import MediaCollaborator

logger = logging.getLogger(__name__)


class MeshController:
    """Creates and destroys PeerSessions as room membership changes.

    Attributes:
        room_id: Room this controller maintains a mesh in.
        member_id: Local member id.
        sessions: Live sessions keyed by remote member id.
        members: Remote members currently known to be in the room, in the
            order they became known.
    """

    def __init__(
        self,
        room_id: str,
        member_id: str,
        signaling,
        media: "MediaCollaborator",
        connection_factory: Optional[Callable[[], Any]] = None,
    ):
        """Initialize MeshController.

        Args:
            room_id: Room to maintain a mesh in.
            member_id: Local member id.
            signaling: Outbound signaling channel, see PeerSession.
            media: Media collaborator shared by all sessions.
            connection_factory: Passed through to every PeerSession.
        """
        self.room_id = room_id
        self.member_id = member_id
        self.signaling = signaling
        self.media = media
        self.connection_factory = connection_factory

        self.sessions: Dict[str, PeerSession] = {}
        self.members: List[str] = []
        self._media_warned = False

    async def handle_message(self, data: Dict[str, Any]):
        """Dispatch a parsed frame from the relay."""
        msg_type = data.get("type")

        if msg_type == MSG_EXISTING_USERS:
            await self.on_existing_users(data.get("members") or [])
        elif msg_type == MSG_USER_CONNECTED:
            await self.on_user_connected(data.get("member_id"))
        elif msg_type == MSG_USER_DISCONNECTED:
            await self.on_user_disconnected(data.get("member_id"))
        elif msg_type in (MSG_OFFER, MSG_ANSWER, MSG_ICE_CANDIDATE):
            self.on_signal(
                msg_type, data.get("payload"), data.get("member_id"), data.get("target_id")
            )
        elif msg_type == MSG_ERROR:
            logger.warning(
                f"Relay rejected a message: {data.get('reason')}: {data.get('message')}"
            )
        else:
            logger.debug(f"Ignoring message type: {msg_type}")

    async def on_existing_users(self, members: List[str]):
        if not isinstance(members, list):
            logger.warning(f"Ignoring malformed existing-users: {members!r}")
            return
        logger.info(f"{len(members)} member(s) already in {self.room_id}: {members}")
        for member_id in members:
            if not isinstance(member_id, str) or not member_id or member_id == self.member_id:
                logger.warning(f"Ignoring existing member {member_id!r}")
                continue
            self._connect(member_id)

    async def on_user_connected(self, member_id: Optional[str]):
        if not isinstance(member_id, str) or not member_id or member_id == self.member_id:
            logger.warning(f"Ignoring user-connected for {member_id!r}")
            return
        logger.info(f"{member_id} joined {self.room_id}")
        self._connect(member_id)

    async def on_user_disconnected(self, member_id: Optional[str]):
        if not isinstance(member_id, str):
            logger.warning(f"Ignoring user-disconnected for {member_id!r}")
            return

        known = member_id in self.members
        if known:
            self.members.remove(member_id)

        session = self.sessions.pop(member_id, None)
        if session is None and not known:
            logger.debug(f"No session for departed member {member_id}")
            return

        logger.info(f"{member_id} left {self.room_id}")
        if session is not None:
            await session.close()
        self.media.on_remote_left(member_id)

    def on_signal(
        self,
        msg_type: str,
        payload: Any,
        sender_id: Optional[str],
        target_id: Optional[str] = None,
    ):
        """Route a relayed offer, answer or candidate to its session."""
        if target_id is not None and target_id != self.member_id:
            logger.debug(f"Dropping {msg_type} addressed to {target_id}")
            return
        if not isinstance(sender_id, str) or not sender_id:
            logger.warning(f"Dropping {msg_type} with invalid sender {sender_id!r}")
            return
        if sender_id == self.member_id:
            return

        session = self.sessions.get(sender_id)
        if session is None:
            if msg_type != MSG_OFFER or sender_id not in self.members:
                logger.warning(f"Dropping {msg_type} from unknown member {sender_id}")
                return
            session = self._create_session(sender_id)

        if msg_type == MSG_OFFER:
            session.receive_offer(payload)
        elif msg_type == MSG_ANSWER:
            session.receive_answer(payload)
        else:
            session.receive_candidate(payload)

    async def attach_local_media(self):
        """Offer to every member that only has a receive-only session so far.

        For embedding applications that obtain local media after joining, such
        as a UI that asks for camera permission later. The rtc-mesh CLI opens
        media before it joins and does not call this.
        """
        tracks_available = False
        for session in list(self.sessions.values()):
            if session.state is not SessionState.IDLE or session.local_tracks:
                continue
            tracks = self.media.get_local_tracks()
            if not tracks:
                break
            tracks_available = True
            session.attach_tracks(tracks)
            session.negotiate()

        if tracks_available:
            logger.info("Local media attached to waiting sessions")

    async def settle(self):
        """Wait for every session's queued events to be handled."""
        await asyncio.gather(*(session.settle() for session in list(self.sessions.values())))

    async def close(self):
        """Local leave: close every session."""
        sessions = list(self.sessions.values())
        self.sessions.clear()
        self.members.clear()
        for session in sessions:
            await session.close()
            self.media.on_remote_left(session.remote_id)
        logger.info(f"Left mesh in {self.room_id}")

    def _connect(self, member_id: str):
        if member_id not in self.members:
            self.members.append(member_id)

        if member_id in self.sessions:
            logger.debug(f"Session for {member_id} already exists")
            return

        session = self._create_session(member_id)
        tracks = self.media.get_local_tracks()
        if tracks:
            session.attach_tracks(tracks)
            session.negotiate()
        else:
            logger.info(f"No local media; session with {member_id} is receive-only")
            if not self._media_warned:
                self._media_warned = True
                self.media.on_media_unavailable(
                    "No local media available; other members will not see you"
                )

    def _create_session(self, member_id: str) -> PeerSession:
        session = PeerSession(
            room_id=self.room_id,
            local_id=self.member_id,
            remote_id=member_id,
            signaling=self.signaling,
            media=self.media,
            connection_factory=self.connection_factory,
            on_closed=self._forget,
        )
        self.sessions[member_id] = session
        logger.debug(f"Created {session}")
        return session

    def _forget(self, session: PeerSession):
        if self.sessions.get(session.remote_id) is session:
            del self.sessions[session.remote_id]
