"""Guest inspection helpers: distribution and kernel module queries."""
import logging
import re
from typing import List, Optional, Tuple

from vmharness.channel import GuestChannel

logger = logging.getLogger(__name__)

UNKNOWN_DISTRIBUTION = "Unknown"

# First match wins; more specific names come before their parents. RHEL
# derivatives carry ID_LIKE="fedora", so fedora is checked after them.
DISTRIBUTION_RULES: List[Tuple[str, str]] = [
    (r"ubuntu", "Ubuntu"),
    (r"debian", "Debian"),
    (r"centos", "CentOS"),
    (r"oracle", "Oracle"),
    (r"red hat|rhel", "RedHat"),
    (r"fedora", "Fedora"),
    (r"opensuse", "openSUSE"),
    (r"suse|sles", "SUSE"),
    (r"coreos", "CoreOS"),
    (r"clear linux", "ClearLinux"),
    (r"alpine", "Alpine"),
    (r"arch linux", "Arch"),
]

DISTRIBUTION_QUERY = "cat /etc/os-release 2>/dev/null || cat /etc/*-release 2>/dev/null || uname -a"


def classify_distribution(text: str, rules: Optional[List[Tuple[str, str]]] = None) -> str:
    """Map free-form release text to a distribution label."""
    for pattern, label in rules or DISTRIBUTION_RULES:
        if re.search(pattern, text, re.IGNORECASE):
            return label
    return UNKNOWN_DISTRIBUTION


def detect_distribution(channel: GuestChannel) -> str:
    """Query the guest's release information and classify it."""
    ok, output = channel.run_command(DISTRIBUTION_QUERY)
    if not ok:
        logger.warning(f"Unable to read release information from {channel.endpoint.address}")
        return UNKNOWN_DISTRIBUTION

    distribution = classify_distribution(output)
    logger.info(f"Guest {channel.endpoint.address} runs {distribution}")
    return distribution


def loaded_modules(lsmod_output: str) -> List[str]:
    """Extract module names from lsmod output, skipping the header line."""
    names = []
    for line in lsmod_output.splitlines():
        fields = line.split()
        if not fields or fields[0] == "Module":
            continue
        names.append(fields[0])
    return names


def is_module_loaded(channel: GuestChannel, module_name: str) -> bool:
    """Return True if module_name is listed by lsmod on the guest."""
    if not module_name:
        logger.error("Module name is required")
        return False

    ok, output = channel.run_command("lsmod")
    if not ok:
        logger.warning(f"Unable to list kernel modules on {channel.endpoint.address}")
        return False

    # lsmod reports dashes as underscores
    wanted = module_name.replace("-", "_")
    if wanted in loaded_modules(output):
        logger.info(f"Module {module_name} is loaded on {channel.endpoint.address}")
        return True

    logger.info(f"Module {module_name} is not loaded on {channel.endpoint.address}")
    return False


def kernel_version(channel: GuestChannel) -> Optional[str]:
    """Return the guest kernel release, or None if it cannot be read."""
    ok, output = channel.run_command("uname -r")
    if not ok or not output.strip():
        return None
    return output.strip()
