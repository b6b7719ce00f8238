"""Entry point for joining a room and maintaining the mesh."""

import asyncio
import functools
import logging
import random

from rtc_mesh.client.media import LocalMedia
from rtc_mesh.client.mesh_controller import MeshController
from rtc_mesh.client.peer_session import create_peer_connection
from rtc_mesh.client.signaling_client import SignalingClient
from rtc_mesh.config import get_config

logging.basicConfig(level=logging.INFO)


def random_member_id() -> str:
    return f"user-{random.randint(0, 999)}"


def random_room_id() -> str:
    return f"room-{random.randint(0, 999)}"


async def join_room(
    url: str,
    room_id: str,
    member_id: str,
    media: LocalMedia,
    ice_servers=None,
):
    """Join ``room_id`` and keep a session with every other member until
    the relay connection ends."""
    signaling = SignalingClient(url, room_id, member_id)
    controller = MeshController(
        room_id=room_id,
        member_id=member_id,
        signaling=signaling,
        media=media,
        connection_factory=functools.partial(create_peer_connection, ice_servers),
    )

    await signaling.connect()
    try:
        await signaling.join()
        await signaling.listen(controller.handle_message)
    finally:
        await controller.close()
        await signaling.close()
        await media.close()


def run_join(
    room_id=None,
    member_id=None,
    server=None,
    video=None,
    use_media=True,
):
    """Join a room from the command line.

    Args:
        room_id: Room to join. A random room is created when omitted.
        member_id: Id to join as. Random when omitted.
        server: Relay WebSocket URL. CLI option overrides config.
        video: Video device or file. Enumerated devices are tried when omitted.
        use_media: Whether to open local media at all.
    """
    config = get_config()
    url = server or config.signaling_websocket
    room_id = room_id or random_room_id()
    member_id = member_id or random_member_id()

    media = LocalMedia(source=video)
    if use_media and not media.open():
        media.on_media_unavailable("Could not open any video source")

    logging.info(f"Joining {room_id} as {member_id} via {url}")
    try:
        asyncio.run(
            join_room(url, room_id, member_id, media, ice_servers=config.ice_servers)
        )
    except KeyboardInterrupt:
        logging.info("Left room")
