"""TCP socket tuning for pool connections."""

from __future__ import annotations

import socket
import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    import asyncio
    from hybrid_bridge.config.models import ClientConfig


def enable_tcp_keepalive(
    writer: asyncio.StreamWriter,
    config: ClientConfig,
    connection_name: str = "connection",
) -> bool:
    """
    Disable Nagle and enable TCP keepalive on a pool socket.

    A stalled pool never produces another read event, so keepalive probes
    are the only way the read loop learns that the peer is gone.

    Args:
        writer: The asyncio StreamWriter (contains the socket).
        config: Client configuration with keepalive settings.
        connection_name: Name for logging purposes.

    Returns:
        True if the socket was tuned.
    """
    sock = writer.get_extra_info("socket")
    if sock is None:
        logger.debug(f"[{connection_name}] Cannot get socket for tuning")
        return False

    try:
        # Submissions are small JSON lines that should leave immediately
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except (OSError, AttributeError) as e:
        logger.debug(f"[{connection_name}] TCP_NODELAY not available: {e}")

    if not config.tcp_keepalive:
        return True

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        if sys.platform == "linux":
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, config.keepalive_idle)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, config.keepalive_interval)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, config.keepalive_count)
        elif sys.platform == "darwin":
            # macOS only exposes the idle time
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, config.keepalive_idle)
    except (OSError, AttributeError) as e:
        logger.warning(f"[{connection_name}] Failed to enable TCP keepalive: {e}")
        return False

    logger.debug(
        f"[{connection_name}] TCP keepalive enabled: idle={config.keepalive_idle}s, "
        f"interval={config.keepalive_interval}s, count={config.keepalive_count}"
    )
    return True
