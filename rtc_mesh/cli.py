"""Unified CLI for rtc-mesh using Click."""

import sys

import click
from loguru import logger

from rtc_mesh.rtc_join import run_join
from rtc_mesh.rtc_server import run_server


@click.group()
def cli():
    pass


@cli.command()
@click.option("--host", type=str, default=None, help="Interface to bind (default from config).")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default from config).")
def server(host, port):
    """Run the signaling relay.

    Example:
        rtc-mesh server --host 0.0.0.0 --port 8080
    """
    if port is not None and not 0 < port < 65536:
        logger.error(f"Invalid port: {port}")
        sys.exit(1)

    run_server(host=host, port=port)


@cli.command()
@click.option("--room", "-r", "room_id", type=str, default=None, help="Room ID to join.")
@click.option("--create", is_flag=True, help="Create a new room with a random ID.")
@click.option("--member", "-m", "member_id", type=str, default=None, help="Member ID to join as (random if omitted).")
@click.option("--server", "-s", "server_url", type=str, default=None, help="Signaling relay WebSocket URL.")
@click.option("--video", type=str, default=None, help="Video device or file to send.")
@click.option("--no-media", is_flag=True, help="Join receive-only, without opening local media.")
def join(room_id, create, member_id, server_url, video, no_media):
    """Join a room and connect to every other member.

    Examples:
        rtc-mesh join --room r1 --member alice
        rtc-mesh join --create --video /dev/video0
    """
    if room_id and create:
        logger.error("Use either --room or --create, not both")
        sys.exit(1)

    if not room_id and not create:
        logger.error("Specify a room with --room, or --create a new one")
        sys.exit(1)

    if room_id is not None and not room_id.strip():
        logger.error("Room ID cannot be empty")
        sys.exit(1)

    if member_id is not None and not member_id.strip():
        logger.error("Member ID cannot be empty")
        sys.exit(1)

    if video and no_media:
        logger.error("Cannot use --video together with --no-media")
        sys.exit(1)

    run_join(
        room_id=room_id,
        member_id=member_id,
        server=server_url,
        video=video,
        use_media=not no_media,
    )


@cli.command()
def devices():
    """List video sources available for sending."""
    from rtc_mesh.client.media import LocalMedia

    sources = LocalMedia().enumerate_video_sources()
    if not sources:
        click.echo("No video sources found")
        return

    for source in sources:
        click.echo(source)


if __name__ == "__main__":
    cli()
