# chatrelay/core/network.py

import logging
import socket

logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"


def detect_lan_address() -> str:
    """
    Best guess at the address other machines on the LAN reach us on.

    Connecting a UDP socket sends nothing; it only makes the OS pick the
    outbound interface, whose address we then read back. Falls back to the
    hostname lookup, then to loopback.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as udp:
            udp.connect(("8.8.8.8", 80))
            return udp.getsockname()[0]
    except OSError as exc:
        logger.debug("No routable interface (%s), trying hostname lookup", exc)

    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError as exc:
        logger.warning("Could not detect LAN address: %s", exc)
        return LOOPBACK


def access_urls(host: str, port: int) -> dict:
    """URLs to print at startup for a relay listening on ``host``."""
    return {
        "local": f"http://localhost:{port}",
        "lan": f"http://{host}:{port}",
        "websocket": f"ws://{host}:{port}/ws",
    }
