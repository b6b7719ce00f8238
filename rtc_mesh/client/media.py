"""Local and remote media endpoints used by the mesh.

Sessions never touch devices or renderers directly. They talk to a media
collaborator with the small interface described by ``MediaCollaborator``:
local tracks go in, remote tracks come out keyed by the member that sent them.

``LocalMedia`` is the stock implementation on top of aiortc's media helpers.
It opens a capture device or file with MediaPlayer, hands every peer its own
MediaRelay subscription of the local tracks, and sinks remote tracks into a
MediaBlackhole per member so they are consumed.
"""

import asyncio
import glob
import logging
import platform
from typing import Any, Dict, List, Optional, Protocol

from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRelay

logger = logging.getLogger(__name__)


class MediaCollaborator(Protocol):
    """What the mesh needs from the media layer."""

    def get_local_tracks(self) -> List[Any]:
        """Fresh handles to the local outbound tracks; empty if no media."""
        ...

    def on_remote_track(self, member_id: str, track: Any) -> None:
        ...

    def on_remote_left(self, member_id: str) -> None:
        """Drop whatever is rendering ``member_id``."""
        ...

    def on_media_unavailable(self, reason: str) -> None:
        """Surface a missing-media failure to the user."""
        ...

    def enumerate_video_sources(self) -> List[str]:
        ...


class LocalMedia:
    """aiortc-backed media collaborator.

    Attributes:
        source: Explicit device or file to open. When None the enumerated
            video sources are tried in order.
        audio: Whether to also capture the default audio input.
    """

    def __init__(self, source: Optional[str] = None, audio: bool = False):
        self.source = source
        self.audio = audio
        self._player: Optional[MediaPlayer] = None
        self._relay = MediaRelay()
        self._sinks: Dict[str, MediaBlackhole] = {}
        self._tasks = set()

    def enumerate_video_sources(self) -> List[str]:
        """List capture devices the platform exposes."""
        system = platform.system()
        if system == "Linux":
            return sorted(glob.glob("/dev/video*"))
        if system == "Darwin":
            # avfoundation addresses cameras by index
            return ["0"]
        return []

    def open(self) -> bool:
        """Open the first usable video source.

        Falls back to the next enumerated source when one fails to open.

        Returns:
            True if a source was opened.
        """
        candidates = [self.source] if self.source else self.enumerate_video_sources()
        for candidate in candidates:
            try:
                self._player = self._open_player(candidate)
                logger.info(f"Opened video source {candidate}")
                return True
            except Exception as e:
                logger.warning(f"Could not open video source {candidate}: {e}")

        logger.error("No video source could be opened")
        return False

    def _open_player(self, source: str) -> MediaPlayer:
        if source.startswith("/dev/video"):
            return MediaPlayer(source, format="v4l2")
        if platform.system() == "Darwin" and source.isdigit():
            return MediaPlayer(source, format="avfoundation")
        return MediaPlayer(source)

    @property
    def is_open(self) -> bool:
        return self._player is not None

    def get_local_tracks(self) -> List[Any]:
        if self._player is None:
            return []

        tracks = [self._relay.subscribe(self._player.video)] if self._player.video else []
        if self.audio and self._player.audio:
            tracks.append(self._relay.subscribe(self._player.audio))
        return tracks

    def on_remote_track(self, member_id: str, track: Any) -> None:
        logger.info(f"Receiving {track.kind} from {member_id}")
        sink = self._sinks.get(member_id)
        if sink is None:
            sink = MediaBlackhole()
            self._sinks[member_id] = sink
        sink.addTrack(track)
        self._spawn(sink.start())

    def on_remote_left(self, member_id: str) -> None:
        sink = self._sinks.pop(member_id, None)
        if sink is not None:
            logger.info(f"Stopped rendering {member_id}")
            self._spawn(sink.stop())

    def on_media_unavailable(self, reason: str) -> None:
        logger.warning(f"Local media unavailable: {reason}")

    async def close(self):
        for member_id in list(self._sinks):
            await self._sinks.pop(member_id).stop()
        if self._player is not None:
            for track in (self._player.video, self._player.audio):
                if track is not None:
                    track.stop()
            self._player = None

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
