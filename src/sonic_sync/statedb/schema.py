"""Typed records for STATE_DB (Redis DB 6) operational tables."""
from dataclasses import dataclass

from ..configdb.schema import Record, wire


@dataclass
class PortStateEntry(Record):
    admin_status: str = ""
    oper_status: str = ""
    speed: str = ""
    mtu: str = ""
    link_training: str = ""


@dataclass
class LAGStateEntry(Record):
    oper_status: str = ""
    speed: str = ""
    mtu: str = ""


@dataclass
class LAGMemberStateEntry(Record):
    oper_status: str = ""
    collecting_distributing: str = ""
    selected: str = ""
    actor_port_num: str = ""
    partner_port_num: str = ""


@dataclass
class VLANStateEntry(Record):
    oper_status: str = ""
    state: str = ""


@dataclass
class VRFStateEntry(Record):
    state: str = ""


@dataclass
class VXLANTunnelStateEntry(Record):
    src_ip: str = ""
    oper_status: str = wire("operstatus")


@dataclass
class BGPNeighborStateEntry(Record):
    state: str = ""
    remote_asn: str = ""
    local_asn: str = ""
    peer_group: str = ""
    prefixes_received: str = ""
    prefixes_sent: str = ""
    msg_rcvd: str = ""
    msg_sent: str = ""
    uptime: str = ""
    holdtime: str = ""
    keepalive: str = ""
    connect_retry: str = ""
    last_reset_reason: str = ""


@dataclass
class InterfaceStateEntry(Record):
    vrf: str = ""
    proxy_arp: str = ""


@dataclass
class NeighStateEntry(Record):
    family: str = ""
    mac: str = wire("neigh")
    state: str = ""


@dataclass
class FDBStateEntry(Record):
    port: str = ""
    type: str = ""
    vni: str = ""
    remote_vtep: str = ""


@dataclass
class RouteStateEntry(Record):
    nexthop: str = ""
    ifname: str = ""
    protocol: str = ""


@dataclass
class TransceiverInfoEntry(Record):
    vendor_name: str = ""
    model: str = ""
    serial_num: str = ""
    hardware_version: str = ""
    type: str = ""
    media_interface: str = ""


@dataclass
class TransceiverStatusEntry(Record):
    present: str = ""
    temperature: str = ""
    voltage: str = ""
    tx_power: str = ""
    rx_power: str = ""
