"""Shared fakes for rtc-mesh tests.

None of these open sockets or real peer connections; they record what the
code under test did so assertions can inspect it.
"""

import json

import pytest
from aiortc import RTCSessionDescription


class FakeWebSocket:
    """Stands in for a websockets server/client connection."""

    def __init__(self, incoming=(), fail_send=False, name="peer"):
        self.incoming = list(incoming)
        self.fail_send = fail_send
        self.sent = []
        self.closed = False
        self.remote_address = (name, 0)

    async def send(self, message):
        if self.fail_send:
            raise ConnectionError("send failed")
        self.sent.append(json.loads(message))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.incoming:
            yield message

    def types(self):
        return [message["type"] for message in self.sent]


class FakePeerConnection:
    """Records the calls a PeerSession makes on its connection."""

    def __init__(self):
        self.handlers = {}
        self.localDescription = None
        self.remoteDescription = None
        self.candidates = []
        self.tracks = []
        self.closed = False
        self.connectionState = "new"

    def on(self, event, handler=None):
        self.handlers.setdefault(event, []).append(handler)
        return handler

    def emit(self, event, *args):
        for handler in self.handlers.get(event, []):
            handler(*args)

    async def createOffer(self):
        return RTCSessionDescription(sdp="v=0 offer", type="offer")

    async def createAnswer(self):
        return RTCSessionDescription(sdp="v=0 answer", type="answer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        if description.sdp == "garbage":
            raise ValueError("Invalid SDP")
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        assert self.remoteDescription is not None, "candidate applied too early"
        self.candidates.append(candidate)

    def addTrack(self, track):
        self.tracks.append(track)

    async def close(self):
        self.closed = True


class FakeSignaling:
    def __init__(self):
        self.sent = []

    async def send_signal(self, msg_type, payload, target_id=None):
        self.sent.append((msg_type, payload, target_id))

    def of_type(self, msg_type):
        return [entry for entry in self.sent if entry[0] == msg_type]


class FakeMedia:
    def __init__(self, tracks=()):
        self.tracks = list(tracks)
        self.remote_tracks = []
        self.left = []
        self.unavailable = []

    def get_local_tracks(self):
        return list(self.tracks)

    def on_remote_track(self, member_id, track):
        self.remote_tracks.append((member_id, track))

    def on_remote_left(self, member_id):
        self.left.append(member_id)

    def on_media_unavailable(self, reason):
        self.unavailable.append(reason)

    def enumerate_video_sources(self):
        return []


class ConnectionFactory:
    """Callable that builds FakePeerConnections and remembers them."""

    def __init__(self):
        self.created = []

    def __call__(self):
        pc = FakePeerConnection()
        self.created.append(pc)
        return pc


def candidate_payload(port, mid="0"):
    return {
        "candidate": f"candidate:1 1 udp 2122252543 192.168.1.2 {port} typ host",
        "sdpMid": mid,
        "sdpMLineIndex": 0,
    }


OFFER = {"sdp": "v=0 remote offer", "type": "offer"}
ANSWER = {"sdp": "v=0 remote answer", "type": "answer"}


@pytest.fixture
def signaling():
    return FakeSignaling()


@pytest.fixture
def media():
    return FakeMedia(tracks=["local-video"])


@pytest.fixture
def no_media():
    return FakeMedia()


@pytest.fixture
def connections():
    return ConnectionFactory()
