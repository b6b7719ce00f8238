"""Client side of rtc-mesh: per-peer sessions and mesh maintenance."""

from rtc_mesh.client.candidate_buffer import CandidateBuffer
from rtc_mesh.client.mesh_controller import MeshController
from rtc_mesh.client.peer_session import PeerSession, SessionState
from rtc_mesh.client.signaling_client import SignalingClient

__all__ = [
    "CandidateBuffer",
    "MeshController",
    "PeerSession",
    "SessionState",
    "SignalingClient",
]
