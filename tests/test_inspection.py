import pytest
from pathlib import Path
from unittest.mock import MagicMock

from vmharness.inspection import (
    UNKNOWN_DISTRIBUTION,
    classify_distribution,
    detect_distribution,
    is_module_loaded,
    kernel_version,
    loaded_modules,
)
from vmharness.types import GuestEndpoint


LSMOD_OUTPUT = """Module                  Size  Used by
hv_netvsc              98304  0
hv_utils               40960  2
hv_storvsc             28672  3
scsi_transport_fc      73728  1 hv_storvsc
"""

RHEL_OS_RELEASE = """NAME="Red Hat Enterprise Linux"
VERSION="9.4 (Plow)"
ID="rhel"
ID_LIKE="fedora"
VERSION_ID="9.4"
PLATFORM_ID="platform:el9"
PRETTY_NAME="Red Hat Enterprise Linux 9.4 (Plow)"
ANSI_COLOR="0;31"
CPE_NAME="cpe:/o:redhat:enterprise_linux:9::baseos"
HOME_URL="https://www.redhat.com/"
REDHAT_BUGZILLA_PRODUCT="Red Hat Enterprise Linux 9"
REDHAT_SUPPORT_PRODUCT="Red Hat Enterprise Linux"
"""

FEDORA_OS_RELEASE = """NAME="Fedora Linux"
VERSION="40 (Server Edition)"
ID=fedora
VERSION_ID=40
PRETTY_NAME="Fedora Linux 40 (Server Edition)"
CPE_NAME="cpe:/o:fedoraproject:fedora:40"
HOME_URL="https://fedoraproject.org/"
REDHAT_BUGZILLA_PRODUCT="Fedora"
REDHAT_SUPPORT_PRODUCT="Fedora"
"""


def _channel(result):
    channel = MagicMock()
    channel.endpoint = GuestEndpoint(address="10.0.0.5", key_path=Path("ssh/id_rsa"))
    channel.run_command.return_value = result
    return channel


class TestClassifyDistribution:
    """Ordered first-match rules with an Unknown default."""

    @pytest.mark.parametrize("text,label", [
        ('NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\n', "Ubuntu"),
        ('PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"\nID=debian\n', "Debian"),
        ('NAME="CentOS Stream"\nID="centos"\nID_LIKE="rhel fedora"\n', "CentOS"),
        ('NAME="Oracle Linux Server"\nID="ol"\nID_LIKE="fedora"\n', "Oracle"),
        (RHEL_OS_RELEASE, "RedHat"),
        (FEDORA_OS_RELEASE, "Fedora"),
        ('NAME="openSUSE Leap"\nID_LIKE="suse opensuse"\n', "openSUSE"),
        ('NAME="SLES"\nID="sles"\n', "SUSE"),
    ])
    def test_known_distributions(self, text, label):
        assert classify_distribution(text) == label

    def test_unknown(self):
        assert classify_distribution("NAME=Plan9") == UNKNOWN_DISTRIBUTION

    def test_custom_rules(self):
        assert classify_distribution("mariner", [(r"mariner", "Mariner")]) == "Mariner"


def test_detect_distribution():
    channel = _channel((True, 'NAME="Ubuntu"\n'))
    assert detect_distribution(channel) == "Ubuntu"


def test_detect_distribution_transport_failure():
    channel = _channel((False, "timed out"))
    assert detect_distribution(channel) == UNKNOWN_DISTRIBUTION


class TestModules:
    """Exact module name matching against lsmod."""

    def test_loaded_modules_skips_header(self):
        assert loaded_modules(LSMOD_OUTPUT) == ["hv_netvsc", "hv_utils", "hv_storvsc", "scsi_transport_fc"]

    def test_module_loaded(self):
        assert is_module_loaded(_channel((True, LSMOD_OUTPUT)), "hv_utils") is True

    def test_dashed_name_matches_underscored(self):
        assert is_module_loaded(_channel((True, LSMOD_OUTPUT)), "hv-netvsc") is True

    def test_prefix_does_not_match(self):
        assert is_module_loaded(_channel((True, LSMOD_OUTPUT)), "hv_") is False

    def test_transport_failure(self):
        assert is_module_loaded(_channel((False, "")), "hv_utils") is False

    def test_empty_name(self):
        channel = _channel((True, LSMOD_OUTPUT))
        assert is_module_loaded(channel, "") is False
        channel.run_command.assert_not_called()


def test_kernel_version():
    assert kernel_version(_channel((True, "6.8.0-45-generic\n"))) == "6.8.0-45-generic"
    assert kernel_version(_channel((False, "error"))) is None
