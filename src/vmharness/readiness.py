"""Port probing and readiness waiting for guests coming up or going down."""
from __future__ import annotations

import logging
import socket
import time
from typing import Callable, Optional

from vmharness.channel import GuestChannel

logger = logging.getLogger(__name__)

SSH_PORT = 22
PROBE_TIMEOUT = 2.0
RETRY_INTERVAL = 3.0
READY_MARKER = "vmharness-ready"


def probe_port(address: str, port: int = SSH_PORT, timeout: float = PROBE_TIMEOUT) -> bool:
    """Return True if a TCP connection to address:port completes within timeout."""
    if not address:
        logger.error("probe_port requires an address")
        return False

    try:
        with socket.create_connection((address, port), timeout=timeout):
            return True
    except OSError as e:
        logger.debug(f"Port {port} on {address} not reachable: {e}")
        return False


def wait_for_guest(
    target: str,
    channel_factory: Callable[[str], GuestChannel],
    timeout: float = 300,
    port: int = SSH_PORT,
    probe_timeout: float = PROBE_TIMEOUT,
    interval: float = RETRY_INTERVAL,
    resolve_address: Optional[Callable[[str], Optional[str]]] = None,
) -> bool:
    """
    Wait until a guest accepts SSH and answers a trivial command.

    Each attempt consumes probe_timeout from the budget regardless of how
    long it actually took, so at most timeout / probe_timeout attempts are
    made.

    Args:
        target: Guest address, or a VM name when resolve_address is given.
        channel_factory: Builds a GuestChannel for a resolved address.
        timeout: Overall budget in seconds.
        port: Port probed before the echo command.
        probe_timeout: Per-attempt cost and socket timeout.
        interval: Pause between attempts.
        resolve_address: Maps a VM name to its current address, or None if
            the VM has no address yet.

    Returns:
        True once the guest responded, False when the budget is exhausted.
    """
    if not target:
        logger.error("wait_for_guest requires a target")
        return False
    if probe_timeout <= 0:
        logger.error("probe_timeout must be positive")
        return False

    remaining = timeout
    attempts = 0
    while remaining > 0:
        attempts += 1
        address = _resolve(target, resolve_address)
        if address and probe_port(address, port, probe_timeout):
            ok, output = channel_factory(address).run_command(f"echo {READY_MARKER}")
            if ok and READY_MARKER in output:
                logger.info(f"Guest {target} ({address}) ready after {attempts} attempt(s)")
                return True

        remaining -= probe_timeout
        if remaining > 0:
            time.sleep(interval)

    logger.warning(f"Timed out waiting for guest {target} after {attempts} attempt(s)")
    return False


def wait_for_shutdown(
    address: str,
    timeout: float = 300,
    port: int = SSH_PORT,
    probe_timeout: float = PROBE_TIMEOUT,
    interval: float = RETRY_INTERVAL,
) -> bool:
    """Wait until address:port stops accepting connections. Same budget model as wait_for_guest."""
    if not address:
        logger.error("wait_for_shutdown requires an address")
        return False
    if probe_timeout <= 0:
        logger.error("probe_timeout must be positive")
        return False

    remaining = timeout
    while remaining > 0:
        if not probe_port(address, port, probe_timeout):
            logger.info(f"Guest {address} is no longer reachable on port {port}")
            return True

        remaining -= probe_timeout
        if remaining > 0:
            time.sleep(interval)

    logger.warning(f"Timed out waiting for guest {address} to shut down")
    return False


def _resolve(target: str, resolve_address: Optional[Callable[[str], Optional[str]]]) -> Optional[str]:
    if resolve_address is None:
        return target
    try:
        return resolve_address(target)
    except Exception as e:
        logger.warning(f"Could not resolve address of {target}: {e}")
        return None
