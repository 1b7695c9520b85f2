"""Read-only libvirt access: domains, their state and their addresses."""
import logging
import time
from typing import List, Optional

import libvirt

logger = logging.getLogger(__name__)

DOMAIN_STATES = {
    libvirt.VIR_DOMAIN_NOSTATE: "no state",
    libvirt.VIR_DOMAIN_RUNNING: "running",
    libvirt.VIR_DOMAIN_BLOCKED: "blocked",
    libvirt.VIR_DOMAIN_PAUSED: "paused",
    libvirt.VIR_DOMAIN_SHUTDOWN: "shutting down",
    libvirt.VIR_DOMAIN_SHUTOFF: "shut off",
    libvirt.VIR_DOMAIN_CRASHED: "crashed",
    libvirt.VIR_DOMAIN_PMSUSPENDED: "suspended",
}

UNKNOWN_STATE = "unknown"

ADDRESS_SOURCES = (
    libvirt.VIR_DOMAIN_INTERFACE_ADDRESSES_SRC_LEASE,
    libvirt.VIR_DOMAIN_INTERFACE_ADDRESSES_SRC_AGENT,
)


class HypervisorManager:
    """Connection to a libvirt hypervisor used to locate and watch test domains."""

    def __init__(self, uri: str = "qemu:///system"):
        """
        Open a libvirt connection.

        Raises:
            libvirt.libvirtError: If the hypervisor cannot be reached.
        """
        self.uri = uri
        self.conn: libvirt.virConnect = libvirt.open(uri)
        logger.debug(f"Connected to hypervisor {uri}")

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "HypervisorManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Active domains, optionally filtered by name prefix
    def domain_names(self, prefix: Optional[str] = None) -> List[str]:
        try:
            domains: List[libvirt.virDomain] = self.conn.listAllDomains(libvirt.VIR_CONNECT_LIST_DOMAINS_ACTIVE)
        except libvirt.libvirtError as e:
            logger.error(f"Unable to list domains on {self.uri}: {e}")
            return []

        names = [domain.name() for domain in domains]
        if prefix:
            return [name for name in names if name.startswith(prefix)]
        return names

    def _domain(self, name: str) -> Optional[libvirt.virDomain]:
        try:
            return self.conn.lookupByName(name)
        except libvirt.libvirtError:
            logger.error(f"Libvirt unable to find domain {name}")
            return None

    def domain_state(self, name: str) -> str:
        domain = self._domain(name)
        if domain is None:
            return UNKNOWN_STATE
        try:
            state, _reason = domain.state()
        except libvirt.libvirtError as e:
            logger.error(f"Unable to read state of domain {name}: {e}")
            return UNKNOWN_STATE
        return DOMAIN_STATES.get(state, UNKNOWN_STATE)

    # First IPv4 address from DHCP leases, then from the guest agent
    def ip_address(self, name: str) -> Optional[str]:
        domain = self._domain(name)
        if domain is None:
            return None

        for source in ADDRESS_SOURCES:
            try:
                interfaces = domain.interfaceAddresses(source, 0)
            except libvirt.libvirtError as e:
                logger.debug(f"Address source {source} unavailable for {name}: {e}")
                continue

            for interface in (interfaces or {}).values():
                for address in interface.get("addrs") or []:
                    if address.get("type") == libvirt.VIR_IP_ADDR_TYPE_IPV4 and address.get("addr"):
                        return address["addr"]

        logger.debug(f"Domain {name} has no IPv4 address yet")
        return None

    def wait_for_state(self, name: str, state: str, timeout: float = 300, interval: float = 2) -> bool:
        """Poll the domain state until it equals state or timeout seconds pass."""
        logger.info(f"Waiting up to {timeout}s for {name} to be {state}")
        deadline = time.monotonic() + timeout
        while True:
            current = self.domain_state(name)
            if current == state:
                return True
            if time.monotonic() >= deadline:
                logger.warning(f"Domain {name} is {current}, not {state}, after {timeout}s")
                return False
            time.sleep(interval)

    def wait_for_boot(self, name: str, timeout: float = 300, interval: float = 2) -> bool:
        return self.wait_for_state(name, "running", timeout, interval)

    def wait_for_shutdown(self, name: str, timeout: float = 300, interval: float = 2) -> bool:
        return self.wait_for_state(name, "shut off", timeout, interval)
