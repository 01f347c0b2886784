"""Device state aggregation.

DeviceState is derived from both snapshots in one pass and always built
fresh; the device swaps the whole object rather than patching fields.
Objects are enumerated from CONFIG_DB and enriched from STATE_DB when it is
available. Without STATE_DB, operational fields stay "" (unknown).
"""
from dataclasses import dataclass, field
from typing import Optional

from .configdb.registry import ConfigDBSnapshot
from .statedb.registry import StateDBSnapshot
from .types import DEFAULT_VRF, normalize_vrf


@dataclass
class InterfaceState:
    name: str
    admin_status: str = ""
    oper_status: str = ""
    speed: str = ""
    mtu: int = 0
    vrf: str = ""
    ip_addresses: list[str] = field(default_factory=list)
    service: str = ""
    ingress_acl: str = ""
    egress_acl: str = ""
    lag_member: str = ""  # parent LAG if this port is a member


@dataclass
class PortChannelState:
    name: str
    admin_status: str = ""
    oper_status: str = ""
    members: list[str] = field(default_factory=list)
    active_members: list[str] = field(default_factory=list)


@dataclass
class VLANState:
    id: int
    name: str = ""
    oper_status: str = ""
    members: list[str] = field(default_factory=list)  # tagged ports carry "(t)"
    svi_status: str = ""
    l2_vni: int = 0


@dataclass
class VRFState:
    name: str
    state: str = ""
    interfaces: list[str] = field(default_factory=list)
    l3_vni: int = 0


@dataclass
class BGPNeighborState:
    address: str
    vrf: str = DEFAULT_VRF
    remote_as: int = 0
    state: str = ""
    prefixes_received: int = 0
    prefixes_sent: int = 0
    uptime: str = ""
    admin_status: str = ""


@dataclass
class BGPState:
    local_as: int = 0
    router_id: str = ""
    # keyed like CONFIG_DB BGP_NEIGHBOR: "ip" in the default VRF, "vrf|ip" otherwise
    neighbors: dict[str, BGPNeighborState] = field(default_factory=dict)


@dataclass
class EVPNState:
    vtep_state: str = ""
    remote_vteps: list[str] = field(default_factory=list)
    vni_count: int = 0


@dataclass
class InterfaceSummary:
    name: str
    admin_status: str = ""
    speed: str = ""
    ip_address: str = ""
    vrf: str = ""
    service: str = ""
    lag_member: str = ""


@dataclass
class DeviceState:
    interfaces: dict[str, InterfaceState] = field(default_factory=dict)
    port_channels: dict[str, PortChannelState] = field(default_factory=dict)
    vlans: dict[int, VLANState] = field(default_factory=dict)
    vrfs: dict[str, VRFState] = field(default_factory=dict)
    bgp: BGPState = field(default_factory=BGPState)
    evpn: EVPNState = field(default_factory=EVPNState)


def _to_int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def vlan_id_from_name(name: str) -> int:
    """Parse "Vlan100" into 100; 0 for anything else."""
    if name.startswith("Vlan"):
        return _to_int(name[4:])
    return 0


def populate_device_state(
    config_db: Optional[ConfigDBSnapshot],
    state_db: Optional[StateDBSnapshot],
) -> DeviceState:
    """Build a new DeviceState from the CONFIG_DB and STATE_DB snapshots."""
    state = DeviceState()
    if config_db is None:
        return state
    state.interfaces = _build_interfaces(config_db, state_db)
    state.port_channels = _build_port_channels(config_db, state_db)
    state.vlans = _build_vlans(config_db, state_db)
    state.vrfs = _build_vrfs(config_db, state_db)
    state.bgp = _build_bgp(config_db, state_db)
    state.evpn = _build_evpn(config_db, state_db)
    return state


def _build_interfaces(
    config_db: ConfigDBSnapshot, state_db: Optional[StateDBSnapshot]
) -> dict[str, InterfaceState]:
    interfaces: dict[str, InterfaceState] = {}

    for name, port in config_db.port.items():
        intf = InterfaceState(
            name=name,
            admin_status=port.admin_status,
            speed=port.speed,
            mtu=_to_int(port.mtu),
        )
        if state_db is not None:
            oper = state_db.port_table.get(name)
            if oper is not None:
                intf.oper_status = oper.oper_status
                if oper.speed:
                    intf.speed = oper.speed
                if oper.mtu:
                    intf.mtu = _to_int(oper.mtu)
        interfaces[name] = intf

    # INTERFACE|<name> carries the VRF binding, INTERFACE|<name>|<ip/mask> the IPs
    for key, entry in config_db.interface.items():
        base, sep, ip = key.partition("|")
        intf = interfaces.get(base)
        if intf is None:
            continue
        if sep:
            intf.ip_addresses.append(ip)
        elif entry.vrf_name:
            intf.vrf = entry.vrf_name

    for key in config_db.portchannel_member:
        lag, sep, member = key.partition("|")
        if sep and member in interfaces:
            interfaces[member].lag_member = lag

    for name, binding in config_db.service_binding.items():
        intf = interfaces.get(name)
        if intf is None:
            continue
        intf.service = binding.service_name
        if binding.ingress_acl:
            intf.ingress_acl = binding.ingress_acl
        if binding.egress_acl:
            intf.egress_acl = binding.egress_acl

    for acl_name, acl in config_db.acl_table.items():
        for port in acl.ports.split(","):
            intf = interfaces.get(port.strip())
            if intf is None:
                continue
            stage = acl.stage.lower()
            if stage == "ingress" and not intf.ingress_acl:
                intf.ingress_acl = acl_name
            elif stage == "egress" and not intf.egress_acl:
                intf.egress_acl = acl_name

    for intf in interfaces.values():
        intf.ip_addresses.sort()
    return interfaces


def _build_port_channels(
    config_db: ConfigDBSnapshot, state_db: Optional[StateDBSnapshot]
) -> dict[str, PortChannelState]:
    port_channels = {
        name: PortChannelState(name=name, admin_status=pc.admin_status)
        for name, pc in config_db.portchannel.items()
    }

    for key in config_db.portchannel_member:
        lag, sep, member = key.partition("|")
        if sep and lag in port_channels:
            port_channels[lag].members.append(member)

    if state_db is not None:
        for name, pc in port_channels.items():
            lag_state = state_db.lag_table.get(name)
            if lag_state is not None:
                pc.oper_status = lag_state.oper_status
            for member in pc.members:
                member_state = state_db.lag_member_table.get(f"{name}|{member}")
                if (
                    member_state is not None
                    and member_state.oper_status == "up"
                    and member_state.selected == "true"
                ):
                    pc.active_members.append(member)

    for pc in port_channels.values():
        pc.members.sort()
        pc.active_members.sort()
    return port_channels


def _build_vlans(
    config_db: ConfigDBSnapshot, state_db: Optional[StateDBSnapshot]
) -> dict[int, VLANState]:
    vlans: dict[int, VLANState] = {}

    for name, vlan in config_db.vlan.items():
        vlan_id = _to_int(vlan.vlanid) or vlan_id_from_name(name)
        if vlan_id == 0:
            continue
        vlans[vlan_id] = VLANState(id=vlan_id, name=name)

    for key, member in config_db.vlan_member.items():
        vlan_name, sep, port = key.partition("|")
        vlan = vlans.get(vlan_id_from_name(vlan_name))
        if not sep or vlan is None:
            continue
        vlan.members.append(f"{port}(t)" if member.tagging_mode == "tagged" else port)

    for mapping in config_db.vxlan_tunnel_map.values():
        vlan = vlans.get(vlan_id_from_name(mapping.vlan))
        if vlan is not None:
            vlan.l2_vni = _to_int(mapping.vni)

    for key in config_db.vlan_interface:
        vlan = vlans.get(vlan_id_from_name(key.partition("|")[0]))
        if vlan is not None:
            vlan.svi_status = "configured"

    if state_db is not None:
        for vlan in vlans.values():
            vlan_state = state_db.vlan_table.get(vlan.name)
            if vlan_state is not None:
                vlan.oper_status = vlan_state.oper_status or vlan_state.state

    for vlan in vlans.values():
        vlan.members.sort()
    return vlans


def _build_vrfs(
    config_db: ConfigDBSnapshot, state_db: Optional[StateDBSnapshot]
) -> dict[str, VRFState]:
    vrfs = {
        name: VRFState(name=name, l3_vni=_to_int(vrf.vni))
        for name, vrf in config_db.vrf.items()
    }

    for key, entry in config_db.interface.items():
        if "|" in key or not entry.vrf_name:
            continue
        vrf = vrfs.get(entry.vrf_name)
        if vrf is not None and key not in vrf.interfaces:
            vrf.interfaces.append(key)

    for key, fields in config_db.vlan_interface.items():
        if "|" in key:
            continue
        vrf = vrfs.get(fields.get("vrf_name", ""))
        if vrf is not None and key not in vrf.interfaces:
            vrf.interfaces.append(key)

    if state_db is not None:
        for name, vrf in vrfs.items():
            vrf_state = state_db.vrf_table.get(name)
            if vrf_state is not None:
                vrf.state = vrf_state.state

    for vrf in vrfs.values():
        vrf.interfaces.sort()
    return vrfs


def neighbor_key(vrf: str, address: str) -> str:
    if normalize_vrf(vrf) == DEFAULT_VRF:
        return address
    return f"{vrf}|{address}"


def _build_bgp(config_db: ConfigDBSnapshot, state_db: Optional[StateDBSnapshot]) -> BGPState:
    bgp = BGPState()
    globals_ = config_db.bgp_globals.get(DEFAULT_VRF)
    if globals_ is not None:
        bgp.local_as = _to_int(globals_.local_asn)
        bgp.router_id = globals_.router_id
    if not bgp.local_as:
        bgp.local_as = _to_int(config_db.device_metadata.get("localhost", {}).get("bgp_asn", ""))

    # CONFIG_DB keys are "vrf|ip" or just "ip"
    for key, neighbor in config_db.bgp_neighbor.items():
        vrf, sep, address = key.partition("|")
        if not sep:
            vrf, address = DEFAULT_VRF, key
        bgp.neighbors[neighbor_key(vrf, address)] = BGPNeighborState(
            address=address,
            vrf=vrf,
            remote_as=_to_int(neighbor.asn),
            admin_status=neighbor.admin_status,
        )

    if state_db is not None:
        for key, oper in state_db.bgp_neighbor_table.items():
            vrf, sep, address = key.partition("|")
            if not sep:
                vrf, address = DEFAULT_VRF, key
            nbr = bgp.neighbors.get(neighbor_key(vrf, address))
            if nbr is None:
                nbr = BGPNeighborState(address=address, vrf=vrf)
                bgp.neighbors[neighbor_key(vrf, address)] = nbr
            if oper.remote_asn:
                nbr.remote_as = _to_int(oper.remote_asn)
            nbr.state = oper.state
            nbr.prefixes_received = _to_int(oper.prefixes_received)
            nbr.prefixes_sent = _to_int(oper.prefixes_sent)
            nbr.uptime = oper.uptime
    return bgp


def _build_evpn(config_db: ConfigDBSnapshot, state_db: Optional[StateDBSnapshot]) -> EVPNState:
    evpn = EVPNState(vni_count=len(config_db.vxlan_tunnel_map))
    if state_db is None:
        return evpn
    for name, tunnel in state_db.vxlan_tunnel_table.items():
        if name in config_db.vxlan_tunnel:
            evpn.vtep_state = tunnel.oper_status
        else:
            evpn.remote_vteps.append(name)
    evpn.remote_vteps.sort()
    return evpn
