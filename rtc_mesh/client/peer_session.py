"""Per-peer negotiation state machine.

One PeerSession exists for every other member of the room. It owns a single
RTCPeerConnection and the CandidateBuffer for that connection, and walks the
offer/answer exchange:

    IDLE -> HAVE_LOCAL_OFFER -> HAVE_REMOTE_ANSWER -> CONNECTED   (offering side)
    IDLE -> HAVE_REMOTE_OFFER -> CONNECTED                        (answering side)
    any  -> CLOSED                                                 (terminal)

Everything that can change the state arrives as an event on the session's own
queue and is handled by one task, so the steps of a negotiation never
interleave. Sessions do not share tasks, and a failure in one only closes that
one.

Glare (both sides offering at once) is settled by comparing member ids: the
side with the greater id is polite. An impolite session ignores a colliding
offer. A polite session throws away its own pending offer by replacing its
connection with a fresh one, then answers the remote offer.
"""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from aiortc import (
    RTCConfiguration,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from rtc_mesh.client.candidate_buffer import CandidateBuffer
from rtc_mesh.protocol import MSG_ANSWER, MSG_ICE_CANDIDATE, MSG_OFFER, ProtocolError

if TYPE_CHECKING:
    from rtc_mesh.client.media import MediaCollaborator

logger = logging.getLogger(__name__)

CANDIDATE_PREFIX = "candidate:"


class SessionState(str, Enum):
    IDLE = "idle"
    HAVE_LOCAL_OFFER = "have-local-offer"
    HAVE_REMOTE_OFFER = "have-remote-offer"
    HAVE_REMOTE_ANSWER = "have-remote-answer"
    CONNECTED = "connected"
    CLOSED = "closed"


def create_peer_connection(ice_servers: Optional[List[str]] = None) -> RTCPeerConnection:
    """Build an RTCPeerConnection using the given STUN/TURN URLs."""
    servers = [RTCIceServer(urls=url) for url in ice_servers or []]
    return RTCPeerConnection(configuration=RTCConfiguration(iceServers=servers))


def description_from_payload(payload: Any, expected_type: str) -> RTCSessionDescription:
    """Turn a relayed description payload into an RTCSessionDescription.

    Raises:
        ProtocolError: The payload is not a description of ``expected_type``.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("sdp"), str):
        raise ProtocolError(f"Malformed {expected_type} payload")

    desc_type = payload.get("type", expected_type)
    if desc_type != expected_type:
        raise ProtocolError(f"Expected an {expected_type}, got {desc_type!r}")

    return RTCSessionDescription(sdp=payload["sdp"], type=desc_type)


def description_to_payload(description: RTCSessionDescription) -> Dict[str, str]:
    return {"sdp": description.sdp, "type": description.type}


def candidate_from_payload(payload: Dict[str, Any]) -> RTCIceCandidate:
    """Parse a relayed candidate payload (browser RTCIceCandidateInit shape)."""
    sdp = payload["candidate"]
    if sdp.startswith(CANDIDATE_PREFIX):
        sdp = sdp[len(CANDIDATE_PREFIX):]

    candidate = candidate_from_sdp(sdp)
    candidate.sdpMid = payload.get("sdpMid")
    candidate.sdpMLineIndex = payload.get("sdpMLineIndex")
    return candidate


def candidate_to_payload(candidate: RTCIceCandidate) -> Dict[str, Any]:
    return {
        "candidate": CANDIDATE_PREFIX + candidate_to_sdp(candidate),
        "sdpMid": candidate.sdpMid,
        "sdpMLineIndex": candidate.sdpMLineIndex,
    }


class PeerSession:
    """Negotiates and owns the connection to one remote member.

    Attributes:
        room_id: Room both members are in.
        local_id: This client's member id.
        remote_id: The member on the other end.
        polite: Whether this side yields when both sides offer at once.
        local_tracks: Outbound tracks attached to the current connection.
    """

    def __init__(
        self,
        room_id: str,
        local_id: str,
        remote_id: str,
        signaling,
        media: "MediaCollaborator",
        connection_factory: Optional[Callable[[], Any]] = None,
        on_closed: Optional[Callable[["PeerSession"], None]] = None,
    ):
        """Initialize PeerSession.

        Args:
            room_id: Room both members are in.
            local_id: This client's member id.
            remote_id: The member on the other end.
            signaling: Object with an async ``send_signal(msg_type, payload,
                target_id)`` used for outbound offers, answers and candidates.
            media: Media collaborator that receives remote tracks.
            connection_factory: Zero-argument callable returning a new peer
                connection. Defaults to a plain RTCPeerConnection.
            on_closed: Called once when the session reaches CLOSED.
        """
        self.room_id = room_id
        self.local_id = local_id
        self.remote_id = remote_id
        self.signaling = signaling
        self.media = media
        self.polite = local_id > remote_id
        self.local_tracks: List[Any] = []

        self._connection_factory = connection_factory or create_peer_connection
        self._on_closed = on_closed
        self._state = SessionState.IDLE
        self._remote_applied = False
        self._candidates = CandidateBuffer()
        self._events: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

        self.pc = self._new_connection()

    def __repr__(self):
        return f"PeerSession({self.local_id} -> {self.remote_id}, {self._state.value})"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is SessionState.CLOSED

    @property
    def pending_candidates(self) -> int:
        return len(self._candidates)

    # ------------------------------------------------------------------
    # Connection wiring
    # ------------------------------------------------------------------

    def _new_connection(self):
        pc = self._connection_factory()
        pc.on("track", lambda track: self._on_track(pc, track))
        pc.on("icecandidate", lambda candidate: self._on_local_candidate(pc, candidate))
        pc.on("connectionstatechange", lambda: self._on_connection_state(pc))
        return pc

    def attach_tracks(self, tracks: List[Any]):
        """Add outbound tracks to the connection. Only valid while IDLE."""
        if self._state is not SessionState.IDLE:
            logger.warning(f"{self}: cannot attach tracks outside IDLE")
            return
        for track in tracks:
            self.pc.addTrack(track)
        self.local_tracks.extend(tracks)

    def _on_track(self, pc, track):
        if pc is not self.pc or self.closed:
            return
        logger.info(f"{self}: remote {track.kind} track arrived")
        self.media.on_remote_track(self.remote_id, track)

    def _on_local_candidate(self, pc, candidate):
        if pc is not self.pc or self.closed or candidate is None:
            return
        asyncio.ensure_future(
            self._send(MSG_ICE_CANDIDATE, candidate_to_payload(candidate))
        )

    def _on_connection_state(self, pc):
        if pc is not self.pc or self.closed:
            return
        logger.info(f"{self}: connection state is {pc.connectionState}")
        if pc.connectionState == "failed":
            asyncio.ensure_future(self.close())

    def _set_state(self, state: SessionState):
        logger.debug(f"{self}: -> {state.value}")
        self._state = state

    async def _send(self, msg_type: str, payload: Dict[str, Any]):
        try:
            await self.signaling.send_signal(msg_type, payload, self.remote_id)
        except Exception as e:
            logger.error(f"{self}: failed to send {msg_type}: {e}")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def negotiate(self):
        """Originate an offer to the remote member."""
        self._post(self._create_offer, None)

    def receive_offer(self, payload: Dict[str, Any]):
        self._post(self._handle_offer, payload)

    def receive_answer(self, payload: Dict[str, Any]):
        self._post(self._handle_answer, payload)

    def receive_candidate(self, payload: Dict[str, Any]):
        self._post(self._handle_candidate, payload)

    async def settle(self):
        """Wait until every event posted so far has been handled."""
        await self._events.join()

    def _post(self, handler, payload):
        if self.closed:
            logger.debug(f"{self}: dropping {handler.__name__} after close")
            return
        self._events.put_nowait((handler, payload))
        if self._worker is None:
            self._worker = asyncio.ensure_future(self._process_events())

    async def _process_events(self):
        while True:
            handler, payload = await self._events.get()
            try:
                if not self.closed:
                    await handler(payload)
            except Exception as e:
                logger.error(f"{self}: negotiation failed in {handler.__name__}: {e}")
                await self.close()
            finally:
                self._events.task_done()

            if self.closed:
                break

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _create_offer(self, _payload):
        if self._state is not SessionState.IDLE:
            logger.debug(f"{self}: not offering, negotiation already under way")
            return

        offer = await self.pc.createOffer()
        await self.pc.setLocalDescription(offer)
        if self.closed:
            return
        self._set_state(SessionState.HAVE_LOCAL_OFFER)
        await self._send(MSG_OFFER, description_to_payload(self.pc.localDescription))
        logger.info(f"{self}: sent offer")

    async def _handle_offer(self, payload):
        description = description_from_payload(payload, "offer")

        if self._state is SessionState.HAVE_LOCAL_OFFER:
            if not self.polite:
                logger.info(f"{self}: ignoring colliding offer (impolite side)")
                return
            logger.info(f"{self}: colliding offer, discarding our own")
            await self._replace_connection()

        if self._state is not SessionState.IDLE:
            logger.warning(f"{self}: unexpected offer, dropping")
            return

        await self.pc.setRemoteDescription(description)
        if self.closed:
            return
        self._remote_applied = True
        self._set_state(SessionState.HAVE_REMOTE_OFFER)

        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        if self.closed:
            return
        await self._send(MSG_ANSWER, description_to_payload(self.pc.localDescription))
        self._set_state(SessionState.CONNECTED)
        logger.info(f"{self}: sent answer")

        await self._drain_candidates()

    async def _handle_answer(self, payload):
        if self._state is not SessionState.HAVE_LOCAL_OFFER:
            logger.warning(f"{self}: answer without a pending offer, dropping")
            return

        await self.pc.setRemoteDescription(description_from_payload(payload, "answer"))
        if self.closed:
            return
        self._remote_applied = True
        self._set_state(SessionState.HAVE_REMOTE_ANSWER)
        self._set_state(SessionState.CONNECTED)
        logger.info(f"{self}: answer applied")

        await self._drain_candidates()

    async def _handle_candidate(self, payload):
        if not isinstance(payload, dict) or not payload.get("candidate"):
            logger.debug(f"{self}: end of remote candidates")
            return

        if self._remote_applied:
            await self._apply_candidate(payload)
        else:
            self._candidates.push(payload)
            logger.debug(f"{self}: buffered candidate ({len(self._candidates)} pending)")

    async def _drain_candidates(self):
        pending = self._candidates.drain()
        if pending:
            logger.debug(f"{self}: applying {len(pending)} buffered candidates")
        for payload in pending:
            if self.closed:
                return
            await self._apply_candidate(payload)

    async def _apply_candidate(self, payload):
        try:
            await self.pc.addIceCandidate(candidate_from_payload(payload))
        except Exception as e:
            logger.warning(f"{self}: could not add candidate: {e}")

    async def _replace_connection(self):
        old = self.pc
        self.pc = self._new_connection()
        tracks, self.local_tracks = self.local_tracks, []
        self._set_state(SessionState.IDLE)
        self.attach_tracks(tracks)
        await old.close()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self):
        """Close the connection and discard buffered candidates.

        The session is CLOSED as soon as this is called; later events for it
        are dropped.
        """
        if self.closed:
            return

        self._set_state(SessionState.CLOSED)
        self._candidates.discard()
        while not self._events.empty():
            self._events.get_nowait()
            self._events.task_done()

        if self._worker is not None and self._worker is not asyncio.current_task():
            self._worker.cancel()

        if self._on_closed is not None:
            self._on_closed(self)

        try:
            await self.pc.close()
        except Exception as e:
            logger.warning(f"{self}: error while closing connection: {e}")
        logger.info(f"{self}: closed")
