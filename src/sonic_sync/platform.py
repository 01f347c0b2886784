"""SONiC platform.json parsing and port validation.

platform.json lives at /usr/share/sonic/device/<platform>/platform.json on the
switch and describes the physical ports: their SerDes lanes, default speed,
supported speeds and breakout modes. It is read over SSH and used to reject
port changes the hardware cannot do before anything is written.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Optional

from .errors import PlatformValidationError

PLATFORM_JSON_PATH = "/usr/share/sonic/device/{platform}/platform.json"

# "4x25G", "2x50G[40G]", "1x100G(4)+..." reduced to count and speed
_BREAKOUT_RE = re.compile(r"^(\d+)x(\d+)G", re.IGNORECASE)
_SPEED_RE = re.compile(r"^(\d+)([GM]?)$", re.IGNORECASE)
_PORT_RE = re.compile(r"^(\D+)(\d+)$")


def normalize_speed(speed: str) -> str:
    """Normalize "25G" or "25000" into SONiC's Mb/s form ("25000")."""
    match = _SPEED_RE.match(speed.strip())
    if not match:
        raise PlatformValidationError(f"invalid speed '{speed}'")
    value, unit = int(match.group(1)), match.group(2).upper()
    if unit == "G":
        value *= 1000
    return str(value)


def breakout_speed(mode: str) -> str:
    """Per-child speed of a breakout mode: "4x25G" -> "25000"."""
    match = _BREAKOUT_RE.match(mode.strip())
    if not match:
        raise PlatformValidationError(f"invalid breakout mode '{mode}'")
    return str(int(match.group(2)) * 1000)


def breakout_count(mode: str) -> int:
    match = _BREAKOUT_RE.match(mode.strip())
    if not match:
        raise PlatformValidationError(f"invalid breakout mode '{mode}'")
    return int(match.group(1))


@dataclass
class PortDefinition:
    """A single port's capabilities from platform.json."""
    name: str
    index: int = 0
    lanes: list[int] = field(default_factory=list)
    alias: str = ""
    speed: str = ""
    supported_speeds: list[str] = field(default_factory=list)
    breakout_modes: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, name: str, data: dict) -> "PortDefinition":
        lanes_raw = data.get("lanes", "")
        if isinstance(lanes_raw, list):
            lanes = [int(lane) for lane in lanes_raw]
        else:
            lanes = [int(lane) for lane in str(lanes_raw).split(",") if lane.strip()]

        # Older files list modes, newer ones map mode -> alias list
        modes = data.get("breakout_modes", [])
        if isinstance(modes, dict):
            modes = list(modes.keys())

        index = data.get("index", 0)
        if isinstance(index, str):
            index = int(index.split(",")[0] or 0)

        speeds = data.get("supported_speeds", [])
        if isinstance(speeds, str):
            speeds = speeds.split(",")

        return cls(
            name=name,
            index=index,
            lanes=lanes,
            alias=data.get("alias", ""),
            speed=str(data.get("speed", "") or data.get("default_speed", "")),
            supported_speeds=[str(s).strip() for s in speeds],
            breakout_modes=[str(m) for m in modes],
        )

    def supports_breakout(self, mode: str) -> bool:
        # Modes may carry alternate speeds in brackets: "1x100G[40G]"
        wanted = mode.strip().upper()
        for known in self.breakout_modes:
            if known.upper() == wanted or known.split("[")[0].upper() == wanted:
                return True
        return False


@dataclass
class PlatformConfig:
    """Parsed platform.json for one device."""
    platform: str = ""
    interfaces: dict[str, PortDefinition] = field(default_factory=dict)

    @classmethod
    def from_json(cls, text: str, platform: str = "") -> "PlatformConfig":
        try:
            raw = json.loads(text)
        except ValueError as e:
            raise PlatformValidationError(f"invalid platform.json for {platform or 'device'}: {e}") from e
        interfaces = {
            name: PortDefinition.from_json(name, data)
            for name, data in raw.get("interfaces", {}).items()
        }
        return cls(platform=platform, interfaces=interfaces)

    def get_port(self, name: str) -> Optional[PortDefinition]:
        return self.interfaces.get(name)

    def _require_port(self, name: str) -> PortDefinition:
        port = self.interfaces.get(name)
        if port is None:
            raise PlatformValidationError(f"port '{name}' not found in platform config")
        return port

    def validate_port(self, name: str, speed: str = "") -> PortDefinition:
        """Check that ``name`` exists and, if given, runs at ``speed``."""
        port = self._require_port(name)
        if speed:
            wanted = normalize_speed(speed)
            supported = [normalize_speed(s) for s in port.supported_speeds]
            if port.speed:
                supported.append(normalize_speed(port.speed))
            if supported and wanted not in supported:
                raise PlatformValidationError(
                    f"port '{name}' does not support speed {wanted} (supported: {', '.join(sorted(set(supported), key=int))})"
                )
        return port

    def validate_breakout(self, name: str, mode: str) -> PortDefinition:
        """Check that ``mode`` is a breakout the port advertises and its lanes divide evenly."""
        port = self._require_port(name)
        if not port.supports_breakout(mode):
            raise PlatformValidationError(
                f"port '{name}' does not support breakout mode {mode} "
                f"(supported: {', '.join(port.breakout_modes) or 'none'})"
            )
        count = breakout_count(mode)
        if port.lanes and len(port.lanes) % count:
            raise PlatformValidationError(
                f"port '{name}' has {len(port.lanes)} lanes; cannot split into {count}"
            )
        return port

    def child_ports(self, name: str, mode: str) -> list[str]:
        """Port names produced by breaking ``name`` out in ``mode``.

        SONiC numbers children by their first lane offset, so Ethernet0 with
        four lanes in 4x25G yields Ethernet0, Ethernet1, Ethernet2, Ethernet3.
        """
        port = self.validate_breakout(name, mode)
        count = breakout_count(mode)
        match = _PORT_RE.match(name)
        if not match:
            raise PlatformValidationError(f"cannot derive child ports from '{name}'")
        prefix, base = match.group(1), int(match.group(2))
        step = max(len(port.lanes) // count, 1)
        return [f"{prefix}{base + i * step}" for i in range(count)]

    def conflicting_ports(self, name: str) -> list[str]:
        """Other ports that share a SerDes lane with ``name``."""
        port = self._require_port(name)
        lanes = set(port.lanes)
        return sorted(
            other.name
            for other in self.interfaces.values()
            if other.name != name and lanes.intersection(other.lanes)
        )

    def has_conflicting_ports(self, name: str) -> bool:
        return bool(self.conflicting_ports(name))
