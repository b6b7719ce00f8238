"""Entry point for the rtc-mesh signaling relay."""

import asyncio
import logging

from rtc_mesh.config import get_config
from rtc_mesh.server.relay import serve

logging.basicConfig(level=logging.INFO)


def run_server(host=None, port=None):
    """Run the signaling relay until interrupted.

    Args:
        host: Interface to bind. CLI option overrides config.
        port: Port to listen on. CLI option overrides config.
    """
    config = get_config()
    host = host or config.host
    port = port or config.port

    try:
        asyncio.run(serve(host, port))
    except KeyboardInterrupt:
        logging.info("Server stopped")
