"""Bounded TCP liveness probe against the parent node."""

import enum
import logging
import socket
import time
from typing import Callable

logger = logging.getLogger(__name__)


class ProbeResult(enum.Enum):
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    INDETERMINATE = "indeterminate"

    def __str__(self):
        return self.value


def tcp_connect(host: str, port: int, timeout: float) -> bool:
    """Return True if a TCP connection to host:port is accepted within timeout."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as e:
        logger.debug(f"Connect to {host}:{port} failed: {e}")
        return False


def probe_parent(
    host: str,
    port: int,
    timeout: float = 3.0,
    attempts: int = 3,
    interval: float = 1.0,
    own_address_known: bool = True,
    connect: Callable[[str, int, float], bool] = tcp_connect,
    sleep: Callable[[float], None] = time.sleep,
) -> ProbeResult:
    """Probe the parent's node port.

    Args:
        host: Parent address
        port: Parent node listening port
        timeout: Per-attempt connect timeout in seconds
        attempts: Consecutive failed connects required before reporting UNREACHABLE
        interval: Pause between attempts in seconds
        own_address_known: Whether this host could determine its external address;
            if not, our own connectivity is in doubt and the result is INDETERMINATE

    Returns:
        ProbeResult
    """
    if not own_address_known:
        logger.debug("External address unknown; not trusting any probe of the parent")
        return ProbeResult.INDETERMINATE

    for attempt in range(1, attempts + 1):
        if connect(host, port, timeout):
            logger.debug(f"Parent {host}:{port} accepted a connection (attempt {attempt}/{attempts})")
            return ProbeResult.REACHABLE
        logger.debug(f"Parent {host}:{port} did not answer (attempt {attempt}/{attempts})")
        if attempt < attempts:
            sleep(interval)

    return ProbeResult.UNREACHABLE
