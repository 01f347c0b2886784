"""Tests for platform.json parsing and port validation."""
import json

import pytest

from sonic_sync.errors import PlatformValidationError
from sonic_sync.platform import PlatformConfig, breakout_speed, normalize_speed

PLATFORM_JSON = json.dumps({
    "interfaces": {
        "Ethernet0": {
            "index": "1,1,1,1",
            "lanes": "0,1,2,3",
            "alias": "fortyGigE0/0",
            "speed": "100000",
            "supported_speeds": ["100000", "40000"],
            "breakout_modes": {"1x100G[40G]": ["Eth1"], "4x25G[10G]": ["Eth1/1", "Eth1/2", "Eth1/3", "Eth1/4"]},
        },
        "Ethernet4": {
            "index": 2,
            "lanes": "4,5,6,7",
            "speed": "100000",
            "breakout_modes": ["1x100G", "2x50G"],
        },
        # overlaps Ethernet4's lanes, as an alternate breakout child would
        "Ethernet6": {
            "index": 2,
            "lanes": "6,7",
            "speed": "50000",
        },
    }
})


@pytest.fixture
def platform():
    return PlatformConfig.from_json(PLATFORM_JSON, "x86_64-test-r0")


class TestSpeeds:
    """Tests for speed helpers."""

    def test_normalize_speed(self):
        assert normalize_speed("25G") == "25000"
        assert normalize_speed("100000") == "100000"
        with pytest.raises(PlatformValidationError):
            normalize_speed("fast")

    def test_breakout_speed(self):
        """Breakout modes give per-child speeds in Mb/s."""
        assert breakout_speed("4x25G") == "25000"
        assert breakout_speed("2x50G") == "50000"
        assert breakout_speed("1x100G[40G]") == "100000"
        assert breakout_speed("4x10G") == "10000"
        with pytest.raises(PlatformValidationError):
            breakout_speed("bogus")


class TestPlatformConfig:
    """Tests for PlatformConfig."""

    def test_parse(self, platform):
        """Both list and dict breakout formats parse."""
        eth0 = platform.get_port("Ethernet0")
        assert eth0.lanes == [0, 1, 2, 3]
        assert eth0.index == 1
        assert eth0.alias == "fortyGigE0/0"
        assert "4x25G[10G]" in eth0.breakout_modes
        assert platform.get_port("Ethernet4").breakout_modes == ["1x100G", "2x50G"]
        assert platform.get_port("Ethernet99") is None

    def test_invalid_json(self):
        with pytest.raises(PlatformValidationError):
            PlatformConfig.from_json("{not json")

    def test_validate_port(self, platform):
        """Known ports and supported speeds pass."""
        assert platform.validate_port("Ethernet0").name == "Ethernet0"
        platform.validate_port("Ethernet0", "40G")
        platform.validate_port("Ethernet4", "100000")

    def test_validate_port_rejects(self, platform):
        """Unknown ports and unsupported speeds fail."""
        with pytest.raises(PlatformValidationError):
            platform.validate_port("Ethernet99")
        with pytest.raises(PlatformValidationError):
            platform.validate_port("Ethernet0", "25G")

    def test_validate_breakout(self, platform):
        """Bracketed alternates match their base mode."""
        platform.validate_breakout("Ethernet0", "4x25G")
        platform.validate_breakout("Ethernet4", "2x50G")
        with pytest.raises(PlatformValidationError):
            platform.validate_breakout("Ethernet4", "4x25G")

    def test_child_ports(self, platform):
        """Children are numbered by lane offset."""
        assert platform.child_ports("Ethernet0", "4x25G") == [
            "Ethernet0", "Ethernet1", "Ethernet2", "Ethernet3",
        ]
        assert platform.child_ports("Ethernet4", "2x50G") == ["Ethernet4", "Ethernet6"]

    def test_conflicting_ports(self, platform):
        """Ports sharing a lane conflict."""
        assert platform.conflicting_ports("Ethernet4") == ["Ethernet6"]
        assert platform.has_conflicting_ports("Ethernet6")
        assert not platform.has_conflicting_ports("Ethernet0")
